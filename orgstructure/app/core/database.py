from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import StaticPool
from contextlib import contextmanager
import os

from app.core.errors import ConflictError

SQLALCHEMY_DATABASE_URL = os.getenv(
    "DATABASE_URL",
    "sqlite:///./var/orgstructure.db"
)


def make_engine(url: str):
    """Build an engine; in-memory SQLite shares one connection across threads."""
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        else:
            # make sure the directory for a file database exists
            path = url.split("///", 1)[-1]
            if path:
                os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        return create_engine(url, future=True, **kwargs)
    return create_engine(url, future=True, pool_pre_ping=True)


engine = make_engine(SQLALCHEMY_DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Single source of truth for Base
Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session):
    """
    Commit everything done inside the block as one transaction.
    Constraint violations and stale version writes become ConflictError.
    """
    try:
        yield db
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError(f"Write rejected by a storage constraint: {e.orig}") from e
    except StaleDataError as e:
        db.rollback()
        raise ConflictError("Entity was modified concurrently; reload and retry") from e
    except Exception:
        db.rollback()
        raise
