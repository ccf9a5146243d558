from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from perfwork.core.config import settings

DATABASE_URL = settings.database_url

if DATABASE_URL.startswith("postgresql"):
    engine = create_engine(DATABASE_URL)
else:
    # SQLite for local development; the request thread differs from the one that opened the connection
    engine = create_engine(
        DATABASE_URL, connect_args={"check_same_thread": False}
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    """
    One session per request.
    Workflow services commit; the repository only flushes, and the audit
    trail writes inside a SAVEPOINT of the same transaction.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def init_db():
    """
    Create the roster, plan, appraisal and audit tables.
    Called once from the application lifespan.
    """
    from perfwork.models import employee, performance, audit_log  # noqa: F401
    Base.metadata.create_all(bind=engine)
