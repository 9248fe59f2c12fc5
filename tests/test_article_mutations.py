from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from blog_api import services
from blog_api.db import SessionLocal
from blog_api.models import Article, Like


def article_payload(**overrides):
    payload = {
        "title": "  Writing Notes  ",
        "slug": "writing-notes",
        "content": " ".join(["word"] * 450),
        "excerpt": "Short summary",
        "category": "tech",
        "imageUrl": "https://cdn.example.com/cover.png",
        "sources": ["https://example.com/source"],
    }
    payload.update(overrides)
    return payload


def test_create_article_computes_reading_time(admin_client, make_category, db):
    make_category("tech", name="Technology")

    r = admin_client.post("/api/articles/create-article", json=article_payload())
    assert r.status_code == 201
    data = r.json()
    assert data["title"] == "Writing Notes"
    assert data["readingTime"] == 3
    assert data["views"] == 0
    assert data["likes"] == 0
    assert data["author"] == "Admin"
    assert data["publishedAt"] is not None
    assert data["imageUrl"] == "https://cdn.example.com/cover.png"
    assert data["sources"] == ["https://example.com/source"]
    assert data["category"]["name"] == "Technology"

    r = admin_client.get("/api/articles/writing-notes")
    assert r.status_code == 200
    assert r.json()["id"] == data["id"]


def test_create_article_keeps_explicit_reading_time(admin_client, make_category):
    make_category("tech")
    r = admin_client.post(
        "/api/articles/create-article", json=article_payload(readingTime=12)
    )
    assert r.status_code == 201
    assert r.json()["readingTime"] == 12


def test_create_article_duplicate_slug(admin_client, make_category, make_article, db):
    tech = make_category("tech")
    existing = make_article(tech, slug="writing-notes", title="Original")

    r = admin_client.post("/api/articles/create-article", json=article_payload())
    assert r.status_code == 409
    assert r.json() == {"message": "Article with this slug already exists"}

    db.expire_all()
    stored = db.query(Article).filter(Article.slug == "writing-notes").all()
    assert len(stored) == 1
    assert stored[0].id == existing.id
    assert stored[0].title == "Original"


def test_create_article_unknown_category(admin_client, make_category, db):
    make_category("tech")
    r = admin_client.post(
        "/api/articles/create-article", json=article_payload(category="missing")
    )
    assert r.status_code == 404
    assert r.json() == {"message": "Category not found"}
    assert db.query(Article).count() == 0


def test_create_article_validation(admin_client, make_category, db):
    make_category("tech")
    payload = article_payload()
    del payload["excerpt"]
    r = admin_client.post("/api/articles/create-article", json=payload)
    assert r.status_code == 400
    assert r.json()["message"] == "Invalid request data"

    r = admin_client.post("/api/articles/create-article", json=article_payload(title="   "))
    assert r.status_code == 400
    assert db.query(Article).count() == 0


def test_view_increment(client, make_category, make_article, db):
    tech = make_category("tech")
    article = make_article(tech, slug="viewed")

    for _ in range(3):
        r = client.post("/api/articles/viewed/view")
        assert r.status_code == 200
        assert r.json() == {"message": "Views updated successfully"}

    db.refresh(article)
    assert article.views == 3

    r = client.post("/api/articles/missing/view")
    assert r.status_code == 404


def test_like_toggle_round_trip(client, make_category, make_article, db):
    tech = make_category("tech")
    make_article(tech, slug="liked", likes=4)
    headers = {"X-Real-IP": "203.0.113.7"}

    r = client.get("/api/articles/liked/like-status", headers=headers)
    assert r.json() == {"liked": False}

    r = client.post("/api/articles/liked/like", headers=headers)
    assert r.status_code == 200
    assert r.json() == {"message": "Article liked successfully", "likes": 5, "liked": True}

    r = client.get("/api/articles/liked/like-status", headers=headers)
    assert r.json() == {"liked": True}

    r = client.post("/api/articles/liked/like", headers=headers)
    assert r.json() == {"message": "Article unliked successfully", "likes": 4, "liked": False}

    r = client.get("/api/articles/liked/like-status", headers=headers)
    assert r.json() == {"liked": False}
    assert db.query(Like).count() == 0


def test_likes_are_tracked_per_address(client, make_category, make_article, db):
    tech = make_category("tech")
    make_article(tech, slug="shared")

    r = client.post("/api/articles/shared/like", headers={"X-Real-IP": "198.51.100.1"})
    assert r.json()["likes"] == 1
    r = client.post(
        "/api/articles/shared/like",
        headers={"X-Forwarded-For": "198.51.100.2, 10.0.0.1"},
    )
    assert r.json() == {"message": "Article liked successfully", "likes": 2, "liked": True}

    # no proxy headers: falls back to the connection address
    r = client.post("/api/articles/shared/like")
    assert r.json()["likes"] == 3

    addresses = {like.ip_address for like in db.query(Like).all()}
    assert addresses == {"198.51.100.1", "198.51.100.2", "testclient"}

    r = client.get("/api/articles/shared/like-status", headers={"X-Real-IP": "198.51.100.9"})
    assert r.json() == {"liked": False}


def test_like_unknown_article(client):
    r = client.post("/api/articles/missing/like")
    assert r.status_code == 404
    assert r.json() == {"message": "Article not found"}
    assert client.get("/api/articles/missing/like-status").status_code == 404


def test_unlike_never_drives_counter_negative(client, make_category, make_article, db):
    tech = make_category("tech")
    article = make_article(tech, slug="drifted", likes=0)
    db.add(Like(article_id=article.id, ip_address="192.0.2.5"))
    db.commit()

    r = client.post("/api/articles/drifted/like", headers={"X-Real-IP": "192.0.2.5"})
    assert r.json() == {"message": "Article unliked successfully", "likes": 0, "liked": False}


def test_create_article_slug_taken_after_check(admin_client, make_category, db, monkeypatch):
    category_id = make_category("tech").id

    def insert_competing_article(content):
        other = SessionLocal()
        try:
            other.add(
                Article(
                    slug="writing-notes",
                    title="Competitor",
                    content="Body",
                    excerpt="Excerpt",
                    category_id=category_id,
                )
            )
            other.commit()
        finally:
            other.close()
        return 3

    # another request stores the same slug between the check and the insert
    monkeypatch.setattr(services, "estimate_reading_time", insert_competing_article)

    r = admin_client.post("/api/articles/create-article", json=article_payload())
    assert r.status_code == 409
    assert r.json() == {"message": "Article with this slug already exists"}

    db.expire_all()
    stored = db.query(Article).filter(Article.slug == "writing-notes").all()
    assert [a.title for a in stored] == ["Competitor"]


def test_concurrent_like_is_not_counted_twice(client, make_category, make_article, db, monkeypatch):
    tech = make_category("tech")
    make_article(tech, slug="raced", likes=4)
    original_flush = Session.flush
    calls = {"n": 0}

    def flush_once_conflicting(self, *args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            raise IntegrityError("INSERT INTO likes", {}, Exception("UNIQUE constraint failed"))
        return original_flush(self, *args, **kwargs)

    monkeypatch.setattr(Session, "flush", flush_once_conflicting)

    r = client.post("/api/articles/raced/like", headers={"X-Real-IP": "203.0.113.8"})
    assert r.status_code == 200
    assert r.json() == {"message": "Article liked successfully", "likes": 4, "liked": True}
    assert calls["n"] >= 1

    db.expire_all()
    assert db.query(Article.likes).filter(Article.slug == "raced").scalar() == 4
    assert db.query(Like).count() == 0


def test_like_rows_are_reached_only_through_queries():
    assert list(inspect(Like).relationships.keys()) == []
    assert list(inspect(Article).relationships.keys()) == ["category"]
