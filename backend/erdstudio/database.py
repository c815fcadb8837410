import os

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from . import config


def _build_database_url() -> str:
    if db_url := os.getenv("DATABASE_URL"):
        return db_url

    if config.DB_TYPE == "sqlite":
        return f"sqlite:///{config.SQLITE_PATH}"

    driver = "postgresql+psycopg2"
    port = config.DB_PORT or "5432"
    if config.DB_TYPE == "mysql":
        driver = "mysql+pymysql"
        port = config.DB_PORT or "3306"

    return f"{driver}://{config.DB_USER}:{config.DB_PASSWORD}@{config.DB_HOST}:{port}/{config.DB_NAME}"


def make_engine(url: str):
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True)


DATABASE_URL = _build_database_url()

engine = make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
