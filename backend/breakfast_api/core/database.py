from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from breakfast_api.core.config import settings
from breakfast_api.models.outlet import Base


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # Handlers run in the threadpool, so connections cross threads
        return {"connect_args": {"check_same_thread": False, "timeout": 30}}
    statement_ms = int(settings.request_timeout_seconds * 1000)
    return {
        "pool_pre_ping": True,
        "pool_timeout": settings.request_timeout_seconds,
        # Server-side cap so a query outliving the request timeout is cancelled
        "connect_args": {"options": f"-c statement_timeout={statement_ms}"},
    }


engine = create_engine(settings.database_url, **_engine_kwargs(settings.database_url))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    # Create tables in dev/test without running Alembic
    if settings.env in {"dev", "test"}:
        import breakfast_api.models  # noqa: F401  register every table

        Base.metadata.create_all(bind=engine)
