# backend/database.py
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from config import settings

SQLALCHEMY_DATABASE_URL = settings.database_url

engine_kwargs = {}
if SQLALCHEMY_DATABASE_URL.startswith("sqlite"):
    engine_kwargs["connect_args"] = {"check_same_thread": False}
    # In-memory databases exist per connection, so every session must share one
    if SQLALCHEMY_DATABASE_URL in ("sqlite://", "sqlite:///:memory:"):
        engine_kwargs["poolclass"] = StaticPool
else:
    # Stock updates are read-modify-write; run them at the strictest level available
    engine_kwargs["isolation_level"] = "SERIALIZABLE"
    engine_kwargs["pool_pre_ping"] = True

if settings.DB_ISOLATION_LEVEL:
    engine_kwargs["isolation_level"] = settings.DB_ISOLATION_LEVEL

engine = create_engine(SQLALCHEMY_DATABASE_URL, **engine_kwargs)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def init_db():
    # Models register themselves on Base.metadata when imported
    import models.users, models.product, models.movement  # noqa: F401
    Base.metadata.create_all(bind=engine)
