import logging
import os
import time
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from blog_api import services
from blog_api.auth import require_admin, router as auth_router
from blog_api.config import Settings
from blog_api.db import get_db, init_db, wait_for_db
from blog_api.exceptions import BlogError
from blog_api.schemas import (
    ArticleCreate,
    ArticleOut,
    ArticleQuickHit,
    CategoryOut,
    CountOut,
    LikeStatusOut,
    LikeToggleOut,
    MessageOut,
)
from blog_api.security import SECURITY_HEADERS, add_security_headers, reject_suspicious_input
from blog_api.utils import get_client_ip

logger = logging.getLogger(__name__)
access_logger = logging.getLogger("blog_api.access")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FALLBACK_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE"]


def configure_logging(level: int = logging.INFO) -> None:
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    root_logger.setLevel(level)


article_router = APIRouter(prefix="/articles")
count_router = APIRouter(prefix="/count")
category_router = APIRouter(prefix="/categories")


def _require_search_term(q: Optional[str]) -> str:
    if not q or not q.strip():
        raise HTTPException(status_code=400, detail="Search term is required")
    return q.strip()


@article_router.get("", response_model=List[ArticleOut])
def list_articles(page: int = 1, limit: int = 10, db: Session = Depends(get_db)):
    return services.get_all_articles(db, page, limit)


@article_router.get("/popular", response_model=List[ArticleOut])
def popular_articles(db: Session = Depends(get_db)):
    return services.get_most_liked_articles(db)


@article_router.get("/search", response_model=List[ArticleOut])
def search_articles(
    q: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    db: Session = Depends(get_db),
):
    term = _require_search_term(q)
    return services.search_articles(db, term, page, limit)


@article_router.get("/search/quick", response_model=List[ArticleQuickHit])
def quick_search_articles(
    q: Optional[str] = None,
    limit: int = services.QUICK_SEARCH_LIMIT,
    db: Session = Depends(get_db),
):
    term = _require_search_term(q)
    rows = services.quick_search_articles(db, term, limit)
    return [ArticleQuickHit(id=r.id, title=r.title, slug=r.slug) for r in rows]


@article_router.get("/category/{category_slug}", response_model=List[ArticleOut])
def articles_by_category(
    category_slug: str,
    page: int = 1,
    limit: int = 10,
    db: Session = Depends(get_db),
):
    return services.get_articles_by_category(db, category_slug, page, limit)


@article_router.get("/category/{category_slug}/limited", response_model=List[ArticleOut])
def articles_by_category_limited(category_slug: str, db: Session = Depends(get_db)):
    return services.get_articles_by_category_limited(db, category_slug)


@article_router.post("/create-article", response_model=ArticleOut, status_code=201)
def create_article(
    article: ArticleCreate,
    db: Session = Depends(get_db),
    is_admin: bool = Depends(require_admin),
):
    return services.create_article(db, article)


@article_router.get("/{slug}", response_model=ArticleOut)
def get_article(slug: str, db: Session = Depends(get_db)):
    article = services.get_article_by_slug(db, slug)
    if article is None:
        raise HTTPException(status_code=404, detail="Article not found")
    return article


@article_router.post("/{slug}/view", response_model=MessageOut)
def increment_views(slug: str, db: Session = Depends(get_db)):
    services.increment_article_views(db, slug)
    return MessageOut(message="Views updated successfully")


@article_router.post("/{slug}/like", response_model=LikeToggleOut)
def toggle_like(slug: str, request: Request, db: Session = Depends(get_db)):
    result = services.toggle_like(db, slug, get_client_ip(request))
    if result is None:
        raise HTTPException(status_code=404, detail="Article not found")
    message = "Article liked successfully" if result["liked"] else "Article unliked successfully"
    return LikeToggleOut(message=message, likes=result["likes"], liked=result["liked"])


@article_router.get("/{slug}/like-status", response_model=LikeStatusOut)
def like_status(slug: str, request: Request, db: Session = Depends(get_db)):
    return LikeStatusOut(liked=services.get_like_status(db, slug, get_client_ip(request)))


@count_router.get("/articles/count", response_model=CountOut)
def article_count(category: Optional[str] = None, db: Session = Depends(get_db)):
    return CountOut(count=services.get_article_count(db, category))


@category_router.get("", response_model=List[CategoryOut])
def list_categories(db: Session = Depends(get_db)):
    return services.list_categories(db)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(BlogError)
    async def blog_error_handler(request: Request, exc: BlogError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail
        if exc.status_code == 404 and exc.detail == "Not Found":
            message = f"Not Found - {request.url.path}"
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": message},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
            for e in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content=jsonable_encoder({"message": "Invalid request data", "errors": errors}),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        content = {"message": "Internal Server Error"}
        if not request.app.state.settings.is_production:
            content["stack"] = f"{type(exc).__name__}: {exc}"
        # the middleware stack is bypassed for errors escaping to this handler
        return JSONResponse(status_code=500, content=content, headers=SECURITY_HEADERS)


def register_client(app: FastAPI, static_dir: str) -> None:
    """Serve the pre-built single page client, or a greeting when absent."""
    root = os.path.abspath(static_dir)
    index_path = os.path.join(root, "index.html")

    @app.get("/", include_in_schema=False)
    async def serve_index():
        if os.path.exists(index_path):
            return FileResponse(index_path)
        return {"message": "Hi there!"}

    @app.api_route("/{full_path:path}", methods=FALLBACK_METHODS, include_in_schema=False)
    async def serve_client(full_path: str, request: Request):
        if (
            request.method not in ("GET", "HEAD")
            or full_path == "api"
            or full_path.startswith("api/")
            or not os.path.exists(index_path)
        ):
            raise HTTPException(status_code=404, detail="Not Found")
        candidate = os.path.abspath(os.path.join(root, full_path))
        if candidate.startswith(root + os.sep) and os.path.isfile(candidate):
            return FileResponse(candidate)
        return FileResponse(index_path)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting blog API server...")
    wait_for_db()
    init_db()
    logger.info("Database tables created/verified")
    yield
    logger.info("Shutting down blog API server...")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    settings.validate()
    configure_logging()

    app = FastAPI(
        title="Blog API",
        description="Articles, categories, likes and admin authentication",
        version="1.0.0",
        lifespan=lifespan,
        dependencies=[Depends(reject_suspicious_input)],
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.client_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(add_security_headers)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = (time.perf_counter() - start) * 1000
        access_logger.info(
            "%s %s %s %.1f ms", request.method, request.url.path, response.status_code, elapsed
        )
        return response

    app.include_router(article_router, prefix="/api")
    app.include_router(count_router, prefix="/api")
    app.include_router(category_router, prefix="/api")
    app.include_router(auth_router, prefix="/api/auth")

    @app.get("/api/health")
    async def health():
        return {"status": "healthy"}

    register_error_handlers(app)
    register_client(app, settings.static_dir)
    return app


if __name__ == "__main__":
    import uvicorn

    app = create_app()
    uvicorn.run(app, host=app.state.settings.host, port=app.state.settings.port)
