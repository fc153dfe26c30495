from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import get_settings

settings = get_settings()

connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
engine_options: dict = {"pool_pre_ping": True, "connect_args": connect_args}
if settings.database_url.startswith("sqlite") and (
    settings.database_url.endswith("://") or ":memory:" in settings.database_url
):
    # One shared connection, otherwise every checkout sees a fresh empty database.
    engine_options["poolclass"] = StaticPool

engine = create_engine(settings.database_url, **engine_options)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
