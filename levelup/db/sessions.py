import logging
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from levelup.core.config import settings
from levelup.core.errors import Conflict, PersistenceFailure

logger = logging.getLogger("levelup.db.session")


def create_db_engine(database_url: str):
    """Build the engine for a Postgres or SQLite URL."""
    if not database_url:
        raise RuntimeError("DATABASE_URL is not configured. Set the DATABASE_URL env var.")

    # SQLAlchemy only accepts the postgresql:// scheme
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)

    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # every connection must see the same in-memory database
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)

    # enable pool_pre_ping to avoid stale/closed connections to the hosted database
    return create_engine(database_url, pool_pre_ping=True, pool_recycle=300)


logger.info("DATABASE_URL configured: %s", bool(settings.DATABASE_URL))
engine = create_db_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def commit(db: Session, conflict_message: str = None) -> None:
    """
    Commit the request session, translating database errors into app errors.

    Constraint violations (duplicate slugs, missing required columns) become
    409 Conflict; any other database error becomes PersistenceFailure. The
    session is rolled back either way.
    """
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("Rejected write: %s", exc.orig)
        raise Conflict(conflict_message) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Database write failed")
        raise PersistenceFailure() from exc
