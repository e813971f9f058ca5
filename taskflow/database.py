from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from taskflow.config import config

# =========================================================
# DATABASE SETUP
# =========================================================
connect_args = {}
if config.DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(config.DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()
