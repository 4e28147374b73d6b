from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker

from app.core.config import settings

connect_args = {}
if make_url(settings.database_url).get_backend_name() == "postgresql":
    # now() and server defaults store naive UTC, same as SQLite's CURRENT_TIMESTAMP
    connect_args["options"] = "-c timezone=UTC"

engine = create_engine(settings.database_url, pool_pre_ping=True, future=True, connect_args=connect_args)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
