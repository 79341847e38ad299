from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from app.config import settings

# Ensure postgresql:// URLs work with psycopg2
database_url = settings.DATABASE_URL
# SQLAlchemy 2.0 requires explicit driver specification
if database_url.startswith("postgresql://") and "+psycopg2" not in database_url:
    database_url = database_url.replace("postgresql://", "postgresql+psycopg2://", 1)
elif database_url.startswith("postgres://"):
    database_url = database_url.replace("postgres://", "postgresql+psycopg2://", 1)

if database_url.startswith("sqlite"):
    # SQLite connections are shared across the threadpool FastAPI runs sync dependencies in
    connect_args = {"check_same_thread": False}
else:
    connect_args = {"connect_timeout": 10}

# Use pool_pre_ping to handle connection issues gracefully
engine = create_engine(
    database_url,
    echo=False,
    pool_pre_ping=True,
    pool_recycle=3600,   # Recycle connections after 1 hour
    connect_args=connect_args,
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
