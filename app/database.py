import uuid

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session

from app.config.settings import WorkflowConfig

DATABASE_URL = WorkflowConfig.DATABASE['url']

# PostgreSQL on Render or similar needs sslmode, SQLite needs cross-thread access
engine = create_engine(
    DATABASE_URL,
    connect_args=WorkflowConfig.get_connect_args(),
    echo=WorkflowConfig.DATABASE['echo'],
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

# ✅ This is required to be imported wherever DB session is needed
def get_db():
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def generate_id() -> str:
    """Opaque document id"""
    return uuid.uuid4().hex
