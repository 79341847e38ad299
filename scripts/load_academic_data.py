"""
CLI script to load the academic reference datasets into the database.
Usage: python -m scripts.load_academic_data [--faculties <json>] [--programs <json>] [--curriculum <json>] [--documents <folder>]

Faculty, program and curriculum files are JSON arrays as exported by the
academic API; program documents are one JSON object per file.
Rows with the same key are replaced.
"""
import sys
import os
import json
import argparse
from pathlib import Path
from typing import Any, Dict, List

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.orm import Session
from app.database import SessionLocal, engine, Base
from app.models import Faculty, Program, CourseEntry, ProgramDocument

# Dataset field -> model column
FACULTY_FIELDS = {"unid_id": "unit_id", "unid_nombre": "name"}
PROGRAM_FIELDS = {
    "prog_id": "program_id",
    "prog_nombre": "name",
    "facultad_id": "faculty_id",
    "facultad_nombre": "faculty_name",
}
COURSE_FIELDS = {
    "programa": "program",
    "unid_nombre": "faculty_name",
    "jornada": "schedule_track",
    "pensum": "curriculum_code",
    "numero_de_creditos_pensum": "curriculum_credits",
    "semestre": "semester",
    "materia": "course",
    "codigo_materia": "course_code",
    "creditos": "credits",
    "total_creditos_semestre": "semester_credits",
}
DOCUMENT_FIELDS = {
    "programaId": "program_id",
    "programaNombre": "program_name",
    "resumen": "summary",
    "historia": "history",
    "perfilProfesional": "professional_profile",
    "perfilOcupacional": "occupational_profile",
    "mision": "mission",
    "vision": "vision",
    "objetivos": "objectives",
    "competencias": "competencies",
    "camposOcupacionales": "occupational_fields",
    "lineasInvestigacion": "research_lines",
    "requisitosIngreso": "admission_requirements",
    "requisitosGrado": "graduation_requirements",
    "rawText": "raw_text",
    "source": "source",
}

def map_fields(record: Dict[str, Any], fields: Dict[str, str]) -> Dict[str, Any]:
    """Rename dataset keys to column names; column names are accepted as-is"""
    mapped = {}
    for source_key, column in fields.items():
        if source_key in record:
            mapped[column] = record[source_key]
        elif column in record:
            mapped[column] = record[column]
    for column, value in mapped.items():
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            mapped[column] = str(value)
    return mapped

def read_json_list(path: str) -> List[Dict[str, Any]]:
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a JSON array")
    return data

def load_faculties(db: Session, path: str) -> int:
    count = 0
    for record in read_json_list(path):
        values = map_fields(record, FACULTY_FIELDS)
        if not values.get("unit_id") or not values.get("name"):
            continue
        db.query(Faculty).filter(Faculty.unit_id == values["unit_id"]).delete()
        db.add(Faculty(**values))
        count += 1
    db.commit()
    return count

def load_programs(db: Session, path: str) -> int:
    count = 0
    for record in read_json_list(path):
        values = map_fields(record, PROGRAM_FIELDS)
        if not values.get("program_id") or not values.get("name"):
            continue
        db.query(Program).filter(Program.program_id == values["program_id"]).delete()
        db.add(Program(**values))
        count += 1
    db.commit()
    return count

def load_curriculum(db: Session, path: str) -> int:
    """Replaces every curriculum row of the programs present in the file"""
    rows = [map_fields(record, COURSE_FIELDS) for record in read_json_list(path)]
    rows = [row for row in rows if row.get("program") and row.get("course")]
    for program in {row["program"] for row in rows}:
        db.query(CourseEntry).filter(CourseEntry.program == program).delete()
    db.add_all(CourseEntry(**row) for row in rows)
    db.commit()
    return len(rows)

def load_documents(db: Session, folder_path: str) -> int:
    folder = Path(folder_path)
    count = 0
    for json_file in sorted(folder.glob("*.json")):
        try:
            with open(json_file, 'r', encoding='utf-8') as f:
                values = map_fields(json.load(f), DOCUMENT_FIELDS)
        except (OSError, json.JSONDecodeError, AttributeError) as e:
            print(f"  ✗ Error reading {json_file.name}: {e}")
            continue
        if not values.get("program_id") or not values.get("program_name"):
            print(f"  ✗ Skipping {json_file.name}: missing program id or name")
            continue
        values.setdefault("source", json_file.name)
        db.query(ProgramDocument).filter(ProgramDocument.program_id == values["program_id"]).delete()
        db.add(ProgramDocument(**values))
        count += 1
        print(f"  ✓ Loaded program document: {values['program_name']}")
    db.commit()
    return count

def load_all(faculties: str = None, programs: str = None, curriculum: str = None, documents: str = None):
    Base.metadata.create_all(bind=engine)
    db: Session = SessionLocal()
    try:
        if faculties:
            print(f"✓ Faculties loaded: {load_faculties(db, faculties)}")
        if programs:
            print(f"✓ Programs loaded: {load_programs(db, programs)}")
        if curriculum:
            print(f"✓ Curriculum rows loaded: {load_curriculum(db, curriculum)}")
        if documents:
            print(f"✓ Program documents loaded: {load_documents(db, documents)}")
    finally:
        db.close()
    print("\n✓ Load complete!")

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Load academic datasets into the database")
    parser.add_argument("--faculties", help="JSON file with faculties")
    parser.add_argument("--programs", help="JSON file with academic programs")
    parser.add_argument("--curriculum", help="JSON file with curriculum (pensum) rows")
    parser.add_argument("--documents", help="Folder with program document JSON files")

    args = parser.parse_args()
    if not any([args.faculties, args.programs, args.curriculum, args.documents]):
        parser.error("nothing to load: pass at least one dataset")

    load_all(
        faculties=args.faculties,
        programs=args.programs,
        curriculum=args.curriculum,
        documents=args.documents
    )
