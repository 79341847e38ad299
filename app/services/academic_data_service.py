"""
Academic Data Service - read-only lookups over faculties, programs, curriculum
and program documents. Name filters are case- and accent-insensitive
substring matches, so they run on normalized values in Python.
"""
import re
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models import CourseEntry, Faculty, Program, ProgramDocument
from app.services.errors import DataProviderError
from app.services.text_utils import normalize

logger = logging.getLogger(__name__)

POSTGRADUATE_PATTERN = re.compile(r"maestria|doctorado|especializacion")


def is_postgraduate(program_name: Optional[str]) -> bool:
    return bool(POSTGRADUATE_PATTERN.search(normalize(program_name or "")))


def _contains(value: Optional[str], needle: Optional[str]) -> bool:
    if not needle:
        return True
    return normalize(needle) in normalize(value or "")


class AcademicDataService:
    """Academic data provider backed by the relational database"""

    def __init__(self, db: Session, default_limit: int = 50):
        self.db = db
        self.default_limit = default_limit

    def _fetch(self, query, what: str) -> List[Any]:
        try:
            return query.all()
        except SQLAlchemyError as e:
            logger.error(f"Error loading {what}: {e}")
            raise DataProviderError(f"could not load {what}") from e

    def _limit(self, limit: Optional[int]) -> int:
        return limit if limit is not None else self.default_limit

    def list_faculties(self, filters: Optional[Dict[str, str]] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Faculties whose name contains filters['name']"""
        filters = filters or {}
        rows = self._fetch(self.db.query(Faculty).order_by(Faculty.id), "faculties")
        results = [f.to_dict() for f in rows if _contains(f.name, filters.get("name"))]
        return results[:self._limit(limit)]

    def list_programs(self, filters: Optional[Dict[str, str]] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Undergraduate programs filtered by program_name / faculty_name"""
        filters = filters or {}
        rows = self._fetch(self.db.query(Program).order_by(Program.id), "programs")
        results = [
            p.to_dict() for p in rows
            if not is_postgraduate(p.name)
            and _contains(p.name, filters.get("program_name"))
            and _contains(p.faculty_name, filters.get("faculty_name"))
        ]
        return results[:self._limit(limit)]

    def list_curriculum(self, filters: Optional[Dict[str, str]] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Curriculum rows filtered by program_name, semester, course_name and
        schedule_track. Duplicate (program, semester, course, track) rows are
        dropped; without a requested track only the first track found is kept.
        """
        filters = filters or {}
        query = self.db.query(CourseEntry)
        semester = filters.get("semester")
        if semester:
            query = query.filter(CourseEntry.semester == str(semester))
        rows = self._fetch(query.order_by(CourseEntry.id), "curriculum")

        track = filters.get("schedule_track")
        seen = set()
        results = []
        for row in rows:
            if not _contains(row.program, filters.get("program_name")):
                continue
            if not _contains(row.course, filters.get("course_name")):
                continue
            if not _contains(row.schedule_track, track):
                continue
            key = (row.program, row.semester, row.course, row.schedule_track)
            if key in seen:
                continue
            seen.add(key)
            results.append(row.to_dict())

        if not track and results:
            first_track = results[0]["schedule_track"]
            results = [r for r in results if r["schedule_track"] == first_track]

        return results[:self._limit(limit)]

    def get_full_curriculum(self, program_name: str) -> Optional[Dict[str, Any]]:
        """Whole curriculum of one program, grouped by semester"""
        courses = self.list_curriculum({"program_name": program_name}, limit=10000)
        if not courses:
            return None

        semesters: Dict[str, List[Dict[str, Any]]] = {}
        for course in courses:
            semesters.setdefault(course["semester"] or "", []).append(course)

        first = courses[0]
        return {
            "program": first["program"],
            "schedule_track": first["schedule_track"],
            "curriculum_code": first["curriculum_code"],
            "total_credits": first["curriculum_credits"],
            "semesters": semesters,
        }

    def get_program_document(self, program_id: str) -> Optional[Dict[str, Any]]:
        try:
            document = self.db.query(ProgramDocument).filter(ProgramDocument.program_id == program_id).first()
        except SQLAlchemyError as e:
            logger.error(f"Error loading program document {program_id}: {e}")
            raise DataProviderError("could not load program document") from e
        if not document:
            logger.warning(f"No program document for program {program_id}")
            return None
        return document.to_dict()

    def list_programs_with_curriculum(self) -> List[str]:
        rows = self._fetch(self.db.query(CourseEntry.program).distinct(), "curriculum programs")
        return sorted({row[0] for row in rows if not is_postgraduate(row[0])})

    def get_statistics(self) -> Dict[str, int]:
        faculties = self._fetch(self.db.query(Faculty.id), "faculties")
        programs = self._fetch(self.db.query(Program.name), "programs")
        courses = self._fetch(self.db.query(CourseEntry.program, CourseEntry.course_code), "curriculum")
        return {
            "faculties": len(faculties),
            "programs": len([row for row in programs if not is_postgraduate(row[0])]),
            "programs_with_curriculum": len({row[0] for row in courses if not is_postgraduate(row[0])}),
            "unique_courses": len({row[1] for row in courses}),
            "curriculum_rows": len(courses),
        }
