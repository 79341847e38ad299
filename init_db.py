"""
Database initialization script
Run this to create the tables
"""
from app.database import engine, Base
from app.models import Faculty, Program, CourseEntry, ProgramDocument, ChatMessage

def init_database():
    """Create all tables"""
    Base.metadata.create_all(bind=engine)
    print(f"Database initialized successfully! Tables: {', '.join(sorted(Base.metadata.tables))}")

if __name__ == "__main__":
    init_database()
