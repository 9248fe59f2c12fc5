from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime
import uuid


DEFAULT_AUTHOR = "Admin"

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class Category(Base):
    __tablename__ = "categories"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False, unique=True)
    slug = Column(String, nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    color = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    articles = relationship("Article", back_populates="category")


class Article(Base):
    __tablename__ = "articles"

    id = Column(String, primary_key=True, default=_uuid)
    slug = Column(String, nullable=False, unique=True, index=True)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    excerpt = Column(Text, nullable=True)
    author = Column(String, nullable=False, default=DEFAULT_AUTHOR)
    category_id = Column(String, ForeignKey("categories.id"), nullable=False, index=True)
    # NULL means draft; every public read filters on this column
    published_at = Column(DateTime, nullable=True, index=True)
    views = Column(Integer, nullable=False, default=0)
    likes = Column(Integer, nullable=False, default=0)
    image_url = Column(String, nullable=True)
    sources = Column(JSON, nullable=True)
    reading_time = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    category = relationship("Category", back_populates="articles")


class Like(Base):
    """One row per (article, client IP) that currently likes the article."""

    __tablename__ = "likes"
    __table_args__ = (
        UniqueConstraint("article_id", "ip_address", name="uq_like_article_ip"),
    )

    id = Column(String, primary_key=True, default=_uuid)
    article_id = Column(String, ForeignKey("articles.id"), nullable=False, index=True)
    ip_address = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
