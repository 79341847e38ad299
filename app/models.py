from sqlalchemy import Column, Integer, String, Text, DateTime, JSON
from sqlalchemy.sql import func
from app.database import Base
import enum

class MessageRole(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"

class Faculty(Base):
    __tablename__ = "faculties"

    id = Column(Integer, primary_key=True, index=True)
    unit_id = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)  # e.g., FACULTAD DE INGENIERIAS

    def to_dict(self):
        return {"unit_id": self.unit_id, "name": self.name}

class Program(Base):
    __tablename__ = "programs"

    id = Column(Integer, primary_key=True, index=True)
    program_id = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False, index=True)  # e.g., INGENIERIA DE SISTEMAS
    faculty_id = Column(String, nullable=True)
    faculty_name = Column(String, nullable=True)

    def to_dict(self):
        return {
            "program_id": self.program_id,
            "name": self.name,
            "faculty_id": self.faculty_id,
            "faculty_name": self.faculty_name,
        }

class CourseEntry(Base):
    """One course row of a program's curriculum (pensum)"""
    __tablename__ = "course_entries"

    id = Column(Integer, primary_key=True, index=True)
    program = Column(String, nullable=False, index=True)
    faculty_name = Column(String, nullable=True)
    schedule_track = Column(String, nullable=True)  # DIURNA, NOCTURNA, DISTANCIA...
    curriculum_code = Column(String, nullable=True)  # pensum identifier
    curriculum_credits = Column(String, nullable=True)  # total credits of the pensum
    semester = Column(String, nullable=True, index=True)  # "1".."10"
    course = Column(String, nullable=False)
    course_code = Column(String, nullable=True)
    credits = Column(String, nullable=True)
    semester_credits = Column(String, nullable=True)

    def to_dict(self):
        return {
            "program": self.program,
            "faculty_name": self.faculty_name,
            "schedule_track": self.schedule_track,
            "curriculum_code": self.curriculum_code,
            "curriculum_credits": self.curriculum_credits,
            "semester": self.semester,
            "course": self.course,
            "course_code": self.course_code,
            "credits": self.credits,
            "semester_credits": self.semester_credits,
        }

class ProgramDocument(Base):
    """Long-form program description (PEP) with its OCR text"""
    __tablename__ = "program_documents"

    id = Column(Integer, primary_key=True, index=True)
    program_id = Column(String, unique=True, nullable=False, index=True)
    program_name = Column(String, nullable=False)
    summary = Column(Text, nullable=True)
    history = Column(Text, nullable=True)
    professional_profile = Column(Text, nullable=True)
    occupational_profile = Column(Text, nullable=True)
    mission = Column(Text, nullable=True)
    vision = Column(Text, nullable=True)
    objectives = Column(JSON, nullable=True)  # list of strings
    competencies = Column(JSON, nullable=True)
    occupational_fields = Column(JSON, nullable=True)
    research_lines = Column(JSON, nullable=True)
    admission_requirements = Column(Text, nullable=True)
    graduation_requirements = Column(Text, nullable=True)
    raw_text = Column(Text, nullable=True)
    source = Column(String, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def to_dict(self):
        return {
            "program_id": self.program_id,
            "program_name": self.program_name,
            "summary": self.summary,
            "history": self.history,
            "professional_profile": self.professional_profile,
            "occupational_profile": self.occupational_profile,
            "mission": self.mission,
            "vision": self.vision,
            "objectives": self.objectives or [],
            "competencies": self.competencies or [],
            "occupational_fields": self.occupational_fields or [],
            "research_lines": self.research_lines or [],
            "admission_requirements": self.admission_requirements,
            "graduation_requirements": self.graduation_requirements,
            "raw_text": self.raw_text,
            "source": self.source,
        }

class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String, nullable=False, index=True)
    role = Column(String, nullable=False)  # MessageRole value
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self):
        return {
            "role": self.role,
            "content": self.content,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
