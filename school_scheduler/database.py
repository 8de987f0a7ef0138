from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from school_scheduler.config import DATABASE_URL
from school_scheduler.models.base_model import Base

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, pool_pre_ping=True, connect_args=connect_args)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

__all__ = ["Base", "engine", "SessionLocal"]
