from collections.abc import Generator
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from coupon_engine.core.config import settings


def engine_options(dsn: str) -> dict[str, Any]:
    """Engine keyword arguments bounding how long a single lookup may wait."""
    if "sqlite" in dsn:
        return {
            "connect_args": {
                "check_same_thread": False,
                "timeout": settings.store_timeout_seconds,
            }
        }

    options: dict[str, Any] = {"pool_timeout": settings.store_timeout_seconds}
    if dsn.startswith("postgresql"):
        options["connect_args"] = {
            "options": f"-c statement_timeout={settings.STORE_TIMEOUT_MS}"
        }
    return options


engine = create_engine(settings.APP_DATABASE_DSN, **engine_options(settings.APP_DATABASE_DSN))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base: Any = declarative_base()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Initialize database tables."""
    import coupon_engine.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
