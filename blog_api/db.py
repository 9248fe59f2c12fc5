import logging
import os
import time

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

load_dotenv()
logger = logging.getLogger(__name__)


def normalize_database_url(url: str) -> str:
    # hosted Postgres providers still hand out the legacy scheme
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


DATABASE_URL = normalize_database_url(os.getenv("DATABASE_URL", "sqlite:///./blog.db"))

# sync handlers run in a threadpool, so sqlite connections must be shareable
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(reset: bool = False) -> None:
    """Create the tables, optionally dropping existing ones first."""
    from blog_api.models import Base

    if reset:
        Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


def wait_for_db(max_attempts: int = 10, delay: int = 1) -> None:
    """Attempt to connect to the database until it is ready."""
    for attempt in range(1, max_attempts + 1):
        try:
            with engine.connect():
                return
        except OperationalError as e:
            logger.warning("Database not ready (attempt %d/%d): %s", attempt, max_attempts, e)
            time.sleep(delay)
    raise RuntimeError("Database is not ready")
