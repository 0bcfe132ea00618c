from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from ..core.config import settings

db_url = settings.DATABASE_URL
url_obj = make_url(db_url)
connect_args = {}
engine_kwargs = {"pool_pre_ping": True}

if url_obj.drivername.startswith("sqlite"):
    # FastAPI runs sync endpoints and websockets on different threads
    connect_args["check_same_thread"] = False
    if url_obj.database in (None, "", ":memory:"):
        # One shared connection, otherwise every checkout sees an empty database
        engine_kwargs["poolclass"] = StaticPool

# Enforce SSL for non-local Postgres if not already specified in URL
if url_obj.drivername.startswith("postgresql"):
    host = (url_obj.host or "").lower()
    if host not in ("localhost", "127.0.0.1") and "sslmode=" not in str(db_url):
        connect_args["sslmode"] = "require"

engine = create_engine(db_url, connect_args=connect_args, **engine_kwargs)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
