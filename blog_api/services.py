"""Data access for articles, categories and likes.

Every public read goes through ``published_articles`` so that drafts
(``published_at IS NULL``) never leak, and joins the category explicitly so
that responses carry its display fields.
"""
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session, joinedload

from blog_api.exceptions import (
    ArticleNotFoundError,
    CategoryNotFoundError,
    ConflictError,
    ServiceError,
)
from blog_api.models import Article, Category, DEFAULT_AUTHOR, Like
from blog_api.schemas import ArticleCreate
from blog_api.utils import MAX_LIMIT, estimate_reading_time, normalize_pagination, page_offset

logger = logging.getLogger(__name__)

POPULAR_LIMIT = 6
CATEGORY_LIMITED = 10
QUICK_SEARCH_LIMIT = 8


def published_articles(db: Session) -> Query:
    return (
        db.query(Article)
        .options(joinedload(Article.category))
        .filter(Article.published_at.isnot(None))
    )


def _newest_first(query: Query) -> Query:
    return query.order_by(Article.published_at.desc())


def _paginate(query: Query, page: int, limit: int) -> Query:
    page, limit = normalize_pagination(page, limit)
    return query.offset(page_offset(page, limit)).limit(limit)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _search_filter(term: str):
    pattern = f"%{_escape_like(term)}%"
    return or_(
        Article.title.ilike(pattern, escape="\\"),
        Article.content.ilike(pattern, escape="\\"),
        Article.excerpt.ilike(pattern, escape="\\"),
    )


def get_category_by_slug(db: Session, slug: str) -> Category:
    category = db.query(Category).filter(Category.slug == slug).first()
    if category is None:
        logger.info("Category not found with slug: %s", slug)
        raise CategoryNotFoundError()
    return category


def list_categories(db: Session) -> List[Category]:
    try:
        return db.query(Category).order_by(Category.name).all()
    except SQLAlchemyError:
        logger.exception("Error fetching categories")
        raise ServiceError("Failed to fetch categories")


def get_all_articles(db: Session, page: int = 1, limit: int = 10) -> List[Article]:
    try:
        return _paginate(_newest_first(published_articles(db)), page, limit).all()
    except SQLAlchemyError:
        logger.exception("Error fetching all articles")
        raise ServiceError("Failed to fetch articles")


def get_articles_by_category(
    db: Session, category_slug: str, page: int = 1, limit: int = 10
) -> List[Article]:
    try:
        category = get_category_by_slug(db, category_slug)
        query = published_articles(db).filter(Article.category_id == category.id)
        articles = _paginate(_newest_first(query), page, limit).all()
    except SQLAlchemyError:
        logger.exception("Error fetching articles by category")
        raise ServiceError("Failed to fetch articles by category")
    logger.info(
        "Returning %d articles for %s (page %s, limit %s)",
        len(articles), category_slug, page, limit,
    )
    return articles


def get_articles_by_category_limited(db: Session, category_slug: str) -> List[Article]:
    try:
        category = get_category_by_slug(db, category_slug)
        query = published_articles(db).filter(Article.category_id == category.id)
        return _newest_first(query).limit(CATEGORY_LIMITED).all()
    except SQLAlchemyError:
        logger.exception("Error fetching limited articles by category")
        raise ServiceError("Failed to fetch articles by category")


def get_most_liked_articles(db: Session) -> List[Article]:
    try:
        return (
            published_articles(db)
            .order_by(Article.likes.desc(), Article.published_at.desc())
            .limit(POPULAR_LIMIT)
            .all()
        )
    except SQLAlchemyError:
        logger.exception("Error fetching most liked articles")
        raise ServiceError("Failed to fetch most liked articles")


def get_article_by_slug(db: Session, slug: str) -> Optional[Article]:
    try:
        return published_articles(db).filter(Article.slug == slug).first()
    except SQLAlchemyError:
        logger.exception("Error fetching article by slug")
        raise ServiceError("Failed to fetch article")


def search_articles(db: Session, term: str, page: int = 1, limit: int = 10) -> List[Article]:
    try:
        query = published_articles(db).filter(_search_filter(term))
        return _paginate(_newest_first(query), page, limit).all()
    except SQLAlchemyError:
        logger.exception("Error searching articles")
        raise ServiceError("Failed to search articles")


def quick_search_articles(db: Session, term: str, limit: int = QUICK_SEARCH_LIMIT) -> List[Tuple]:
    """Autocomplete lookup returning only ``(id, title, slug)`` rows."""
    if limit is None or limit < 1:
        limit = QUICK_SEARCH_LIMIT
    limit = min(limit, MAX_LIMIT)
    try:
        return (
            db.query(Article.id, Article.title, Article.slug)
            .filter(Article.published_at.isnot(None), _search_filter(term))
            .order_by(Article.published_at.desc())
            .limit(limit)
            .all()
        )
    except SQLAlchemyError:
        logger.exception("Error in quick search")
        raise ServiceError("Quick search failed")


def get_article_count(db: Session, category_slug: Optional[str] = None) -> int:
    try:
        query = db.query(Article).filter(Article.published_at.isnot(None))
        if category_slug:
            category = get_category_by_slug(db, category_slug)
            query = query.filter(Article.category_id == category.id)
        return query.count()
    except SQLAlchemyError:
        logger.exception("Error getting article count")
        raise ServiceError("Failed to get article count")


def create_article(db: Session, data: ArticleCreate) -> Article:
    """Persist a new article; it is published immediately."""
    try:
        category = get_category_by_slug(db, data.category)
        if db.query(Article.id).filter(Article.slug == data.slug).first():
            raise ConflictError("Article with this slug already exists")

        reading_time = data.reading_time or estimate_reading_time(data.content)
        db_article = Article(
            title=data.title,
            slug=data.slug,
            content=data.content,
            excerpt=data.excerpt,
            author=DEFAULT_AUTHOR,
            category_id=category.id,
            published_at=datetime.utcnow(),
            views=0,
            likes=0,
            image_url=data.image_url,
            sources=data.sources or [],
            reading_time=reading_time,
        )
        db.add(db_article)
        db.commit()
    except IntegrityError:
        # lost a race against another create with the same slug
        db.rollback()
        raise ConflictError("Article with this slug already exists")
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Error creating article")
        raise ServiceError("Failed to create article")

    logger.info("Created article %s in category %s", db_article.slug, category.slug)
    return published_articles(db).filter(Article.id == db_article.id).one()


def increment_article_views(db: Session, slug: str) -> None:
    try:
        updated = (
            db.query(Article)
            .filter(Article.slug == slug)
            .update({Article.views: Article.views + 1}, synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Error incrementing article views")
        raise ServiceError("Failed to update article views")
    if not updated:
        raise ArticleNotFoundError()


def _current_likes(db: Session, article_id: str) -> int:
    return db.query(Article.likes).filter(Article.id == article_id).scalar() or 0


def toggle_like(db: Session, slug: str, ip_address: str) -> Optional[dict]:
    """Flip the like state of ``(article, ip_address)``.

    Returns ``None`` when the article does not exist, otherwise a dict with
    the resulting ``liked`` flag and the article's like counter.
    """
    try:
        article_id = db.query(Article.id).filter(Article.slug == slug).scalar()
        if article_id is None:
            return None

        removed = (
            db.query(Like)
            .filter(Like.article_id == article_id, Like.ip_address == ip_address)
            .delete(synchronize_session=False)
        )
        if removed:
            db.query(Article).filter(Article.id == article_id, Article.likes > 0).update(
                {Article.likes: Article.likes - 1}, synchronize_session=False
            )
            db.commit()
            return {"liked": False, "likes": _current_likes(db, article_id)}

        db.add(Like(article_id=article_id, ip_address=ip_address))
        try:
            db.flush()
        except IntegrityError:
            # a concurrent toggle from the same address already inserted and counted it
            db.rollback()
            return {"liked": True, "likes": _current_likes(db, article_id)}
        db.query(Article).filter(Article.id == article_id).update(
            {Article.likes: Article.likes + 1}, synchronize_session=False
        )
        db.commit()
        return {"liked": True, "likes": _current_likes(db, article_id)}
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Error toggling like")
        raise ServiceError("Failed to like article")


def get_like_status(db: Session, slug: str, ip_address: str) -> bool:
    try:
        article_id = db.query(Article.id).filter(Article.slug == slug).scalar()
        if article_id is None:
            raise ArticleNotFoundError()
        return (
            db.query(Like.id)
            .filter(Like.article_id == article_id, Like.ip_address == ip_address)
            .first()
            is not None
        )
    except SQLAlchemyError:
        logger.exception("Error checking like status")
        raise ServiceError("Failed to check like status")
