from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from funnel_cms.core.config import settings


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
        }
    return {
        "pool_pre_ping": True,
        "pool_size": max(1, settings.DB_POOL_SIZE),
        "max_overflow": max(0, settings.DB_MAX_OVERFLOW),
        "pool_timeout": max(1, settings.DB_POOL_TIMEOUT),
        "pool_recycle": max(30, settings.DB_POOL_RECYCLE),
    }


write_engine = create_engine(settings.DATABASE_WRITE_URL, **_engine_options(settings.DATABASE_WRITE_URL))
if settings.DATABASE_READ_URL == settings.DATABASE_WRITE_URL:
    read_engine = write_engine
else:
    read_engine = create_engine(settings.DATABASE_READ_URL, **_engine_options(settings.DATABASE_READ_URL))

WriteSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=write_engine)
ReadSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=read_engine)
