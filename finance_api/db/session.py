# finance_api/db/session.py

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from urllib.parse import quote_plus

from finance_api.core.config import settings


def build_database_url() -> str:
    if settings.DATABASE_URL:
        return settings.DATABASE_URL

    # URL-encode password to handle special characters like @ $ !
    encoded_password = quote_plus(settings.DB_PASSWORD or "")
    return (
        f"postgresql+psycopg2://{settings.DB_USER}:"
        f"{encoded_password}@"
        f"{settings.DB_HOST}:"
        f"{settings.DB_PORT}/"
        f"{settings.DB_NAME}"
        f"?sslmode={settings.DB_SSLMODE}"
    )


DATABASE_URL = build_database_url()

engine = create_engine(
    DATABASE_URL,
    pool_pre_ping=True,
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
