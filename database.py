from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from config import database_url

SQLALCHEMY_DATABASE_URL = database_url()

engine = create_engine(SQLALCHEMY_DATABASE_URL, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def init_db():
    """Create the users and chats tables if they do not exist yet."""
    import models  # noqa: F401
    Base.metadata.create_all(bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
