import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
import logging
from base import Base

logger = logging.getLogger(__name__)

# Load DATABASE_URL from environment or use default
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///storefront.db")

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def init_db() -> None:
    """
    Creates every table registered on the declarative base.
    """
    import schema
    Base.metadata.create_all(bind=engine)
    logger.info("Database schema initialized at %s", DATABASE_URL)

def get_db():
    """
    Dependency for generating a new SQLAlchemy session.

    Yields:
        An active database session.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

if __name__ == "__main__":
    init_db()
