import os
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

# Configure environment before importing the app
os.environ["DATABASE_URL"] = "sqlite:///./test.db"

from blog_api import auth
from blog_api.config import Settings
from blog_api.db import SessionLocal, init_db
from blog_api.main import create_app
from blog_api.models import Article, Category

ADMIN_PASSWORD = "correct-horse"
ADMIN_PASSWORD_HASH = auth.get_password_hash(ADMIN_PASSWORD)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        admin_password_hash=ADMIN_PASSWORD_HASH,
        jwt_secret="test-secret",
        client_origin="http://client.example",
        static_dir=str(tmp_path / "no-client"),
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    init_db(reset=True)
    auth.reset_login_throttle()
    return TestClient(app)


@pytest.fixture
def db(client):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_category(db):
    def _make(slug="tech", name=None, **kwargs):
        category = Category(slug=slug, name=name or slug.title(), **kwargs)
        db.add(category)
        db.commit()
        db.refresh(category)
        return category

    return _make


@pytest.fixture
def make_article(db):
    """Insert an article directly; ``age`` shifts publication into the past."""
    counter = {"n": 0}

    def _make(category, slug=None, published=True, age=0, **kwargs):
        counter["n"] += 1
        slug = slug or f"article-{counter['n']}"
        values = {
            "title": f"Title {slug}",
            "content": f"Body of {slug}",
            "excerpt": f"Excerpt of {slug}",
        }
        values.update(kwargs)
        published_at = datetime(2024, 1, 1) - timedelta(hours=age) if published else None
        article = Article(
            slug=slug,
            category_id=category.id,
            published_at=published_at,
            **values,
        )
        db.add(article)
        db.commit()
        db.refresh(article)
        return article

    return _make


@pytest.fixture
def admin_client(client):
    r = client.post("/api/auth/login", json={"password": ADMIN_PASSWORD})
    assert r.status_code == 200
    return client
