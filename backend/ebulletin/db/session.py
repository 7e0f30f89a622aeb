from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from ebulletin.core.config import settings

connect_args = {}
engine_kwargs = {}
if settings.DATABASE_URL.startswith("sqlite"):
    # The audit writer thread shares the engine with request handlers
    connect_args["check_same_thread"] = False
else:
    engine_kwargs.update(pool_size=5, max_overflow=10)

engine = create_engine(
    settings.DATABASE_URL,
    future=True,
    pool_pre_ping=True,
    connect_args=connect_args,
    **engine_kwargs,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
