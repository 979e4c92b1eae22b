# signportal/core/db.py

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from signportal.core.config import settings
from signportal.utils.logger import get_logger

# --- Configure logging ---
logger = get_logger(__name__)

# --- Create database engine ---
connect_args = {"check_same_thread": False} if settings.db_url.startswith("sqlite") else {}
engine = create_engine(settings.db_url, connect_args=connect_args, pool_pre_ping=True)

# --- Create sessionmaker ---
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# --- Create declarative base ---
Base = declarative_base()

# --- Synchronous database session ---

def get_db():
    """
    Method for obtaining database session object
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db() -> None:
    """
    Create all tables known to the declarative base
    """
    # Models must be imported so their tables are registered on Base.metadata
    from signportal.users import models as user_models  # noqa: F401
    from signportal.docuseal import models as docuseal_models  # noqa: F401

    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables ensured", tables=sorted(Base.metadata.tables))
    except Exception as e:
        logger.error("Error creating database tables", error_message=str(e))
        raise e
