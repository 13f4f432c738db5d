"""
Database engine, session management, and base model.

This module is the foundation for all database operations.
Every model inherits from Base. Every request gets a session
from get_db().
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from maker_checker.config import get_settings

settings = get_settings()

# --- Engine ---
# pool_pre_ping=True tests connections before handing them out,
# so a restarted database does not fail the next review decision.
engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
)

# --- Session Factory ---
# autocommit=False: the API layer decides when a workflow step is
# committed. autoflush=False: SQL is only sent on explicit flush.
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    pass


# --- Dependency for FastAPI ---
def get_db():
    """
    Provide a database session for a single request.

    The try/finally guarantees the session is closed (and any
    uncommitted work rolled back) even if the request fails.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
