from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import List, Optional, Dict, Any
from app.database import get_db
from app.config import settings
from app.services.academic_data_service import AcademicDataService
from app.services.chat_history_service import ChatHistoryService

router = APIRouter()

class FacultyResponse(BaseModel):
    unit_id: str
    name: str

class ProgramResponse(BaseModel):
    program_id: str
    name: str
    faculty_id: Optional[str] = None
    faculty_name: Optional[str] = None

class CourseResponse(BaseModel):
    program: str
    faculty_name: Optional[str] = None
    schedule_track: Optional[str] = None
    curriculum_code: Optional[str] = None
    curriculum_credits: Optional[str] = None
    semester: Optional[str] = None
    course: str
    course_code: Optional[str] = None
    credits: Optional[str] = None
    semester_credits: Optional[str] = None

class CurriculumResponse(BaseModel):
    program: str
    schedule_track: Optional[str] = None
    curriculum_code: Optional[str] = None
    total_credits: Optional[str] = None
    semesters: Dict[str, List[CourseResponse]]

@router.get("/faculties", response_model=List[FacultyResponse])
async def list_faculties(name: Optional[str] = None, db: Session = Depends(get_db)):
    return AcademicDataService(db).list_faculties({"name": name} if name else None)

@router.get("/programs", response_model=List[ProgramResponse])
async def list_programs(name: Optional[str] = None, faculty: Optional[str] = None, db: Session = Depends(get_db)):
    """Undergraduate programs, optionally filtered by name and faculty"""
    filters = {}
    if name:
        filters["program_name"] = name
    if faculty:
        filters["faculty_name"] = faculty
    return AcademicDataService(db).list_programs(filters, limit=1000)

@router.get("/programs/{program_name}/curriculum")
async def get_program_curriculum(
    program_name: str,
    semester: Optional[str] = None,
    track: Optional[str] = None,
    db: Session = Depends(get_db)
):
    service = AcademicDataService(db)
    if not semester and not track:
        curriculum = service.get_full_curriculum(program_name)
        if not curriculum:
            raise HTTPException(status_code=404, detail="Curriculum not found")
        return CurriculumResponse(**curriculum)

    filters = {"program_name": program_name}
    if semester:
        filters["semester"] = semester
    if track:
        filters["schedule_track"] = track
    courses = service.list_curriculum(filters, limit=1000)
    if not courses:
        raise HTTPException(status_code=404, detail="Curriculum not found")
    return courses

@router.get("/courses", response_model=List[CourseResponse])
async def list_courses(
    program: Optional[str] = None,
    semester: Optional[str] = None,
    course: Optional[str] = None,
    track: Optional[str] = None,
    db: Session = Depends(get_db)
):
    filters = {
        key: value for key, value in (
            ("program_name", program), ("semester", semester),
            ("course_name", course), ("schedule_track", track),
        ) if value
    }
    return AcademicDataService(db).list_curriculum(filters, limit=settings.MAX_API_RESULTS)

@router.get("/programs-with-curriculum", response_model=List[str])
async def programs_with_curriculum(db: Session = Depends(get_db)):
    return AcademicDataService(db).list_programs_with_curriculum()

@router.get("/stats")
async def get_stats(db: Session = Depends(get_db)):
    stats = AcademicDataService(db).get_statistics()
    stats["chat_sessions"] = ChatHistoryService(db).count_sessions()
    return stats
