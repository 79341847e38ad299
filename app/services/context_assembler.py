"""
Context Assembler - builds the bounded text handed to the generation service:
summary, program document (relevant excerpt), faculties, programs,
curriculum and a short rolling history, in that order.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import tiktoken

from app.services.entity_schema import AcademicContext, AssembledContext, ChunkExtraction
from app.services.principles_parser import extract_principles, format_principles, should_parse_principles
from app.services.relevance_chunker import extract_relevant_chunks
from app.services.text_utils import format_for_context, truncate_text

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
MAX_FACULTIES = 10
MAX_PROGRAMS = 20
MAX_COURSES_PER_GROUP = 10
MAX_COURSE_GROUPS = 5
HISTORY_TURNS = 4
HISTORY_MESSAGE_CHARS = 200

DOCUMENT_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("Programa", "program_name"),
    ("Resumen", "summary"),
    ("Historia", "history"),
    ("Perfil profesional", "professional_profile"),
    ("Perfil ocupacional", "occupational_profile"),
    ("Misión", "mission"),
    ("Visión", "vision"),
    ("Objetivos", "objectives"),
    ("Competencias", "competencies"),
    ("Campos ocupacionales", "occupational_fields"),
    ("Líneas de investigación", "research_lines"),
    ("Requisitos de ingreso", "admission_requirements"),
    ("Requisitos de grado", "graduation_requirements"),
)

ROLE_LABELS = {"user": "Usuario", "assistant": "Asistente"}


class ContextAssembler:
    def __init__(
        self,
        max_context_tokens: int = 4000,
        document_budget: int = 6000,
        max_api_results: int = 50,
    ):
        self.max_chars = max_context_tokens * CHARS_PER_TOKEN
        self.document_budget = document_budget
        self.max_api_results = max_api_results
        self._encoding = None

    def count_tokens(self, text: str) -> int:
        """Token count of an assembled context, for reporting"""
        if self._encoding is None:
            self._encoding = tiktoken.get_encoding("cl100k_base")
        return len(self._encoding.encode(text))

    def format_program_document(self, document: Dict[str, Any], question: str) -> Tuple[str, Optional[ChunkExtraction]]:
        lines = []
        for label, key in DOCUMENT_FIELDS:
            value = document.get(key)
            if isinstance(value, (list, tuple)):
                value = "; ".join(str(item) for item in value if item)
            if value:
                lines.append(f"{label}: {value}")

        excerpt = None
        raw_text = document.get("raw_text") or ""
        if raw_text:
            excerpt = extract_relevant_chunks(raw_text, question, self.document_budget)
            body = excerpt.text
            if should_parse_principles(question):
                principles = format_principles(extract_principles(raw_text))
                if principles:
                    body = f"{principles}\n---\n\n{body}"
            lines.append(f"Texto completo (OCR - fragmentos relevantes): {body}")

        if not lines:
            return "", excerpt
        return "\nINFO GENERAL DEL PROGRAMA (PEP):\n" + "\n".join(lines), excerpt

    @staticmethod
    def format_faculties(faculties: Sequence[Dict[str, Any]]) -> str:
        return "\nFACULTADES:\n" + format_for_context(faculties, MAX_FACULTIES, ["name"])

    @staticmethod
    def format_programs(programs: Sequence[Dict[str, Any]]) -> str:
        return "\nPROGRAMAS ACADÉMICOS:\n" + format_for_context(programs, MAX_PROGRAMS, ["name", "faculty_name"])

    def format_courses(self, courses: Sequence[Dict[str, Any]]) -> str:
        """Curriculum entries grouped by program and semester"""
        groups: Dict[str, List[Dict[str, Any]]] = {}
        for course in courses[:self.max_api_results]:
            key = f"{course.get('program')} - Sem {course.get('semester')}"
            groups.setdefault(key, []).append(course)

        blocks = []
        for key, entries in list(groups.items())[:MAX_COURSE_GROUPS]:
            lines = [f"{key}:"]
            for entry in entries[:MAX_COURSES_PER_GROUP]:
                lines.append(f"  - {entry.get('course')} ({entry.get('credits')} créditos)")
            blocks.append("\n".join(lines))
        return "\nMATERIAS DEL PENSUM:\n" + "\n\n".join(blocks)

    @staticmethod
    def format_history(history: Sequence[Dict[str, str]]) -> str:
        """Last few messages, each cut to a short preview"""
        if not history:
            return "HISTORIAL:\nSin historial previo."
        lines = []
        for message in list(history)[-HISTORY_TURNS:]:
            label = ROLE_LABELS.get(message.get("role"), "Asistente")
            lines.append(f"{label}: {truncate_text(message.get('content') or '', HISTORY_MESSAGE_CHARS)}")
        return "HISTORIAL:\n" + "\n".join(lines)

    def assemble(
        self,
        academic_context: AcademicContext,
        question: str,
        history: Sequence[Dict[str, str]] = (),
    ) -> AssembledContext:
        sections: List[str] = []
        excerpt = None

        if academic_context.summary:
            sections.append(f"RESUMEN: {academic_context.summary}")
        if academic_context.program_document:
            document_section, excerpt = self.format_program_document(academic_context.program_document, question)
            if document_section:
                sections.append(document_section)
        if academic_context.faculties:
            sections.append(self.format_faculties(academic_context.faculties))
        if academic_context.programs:
            sections.append(self.format_programs(academic_context.programs))
        if academic_context.courses:
            sections.append(self.format_courses(academic_context.courses))
        sections.append(self.format_history(history))

        text = "\n".join(sections)
        truncated = len(text) > self.max_chars
        if truncated:
            logger.info(f"Context truncated from {len(text)} to {self.max_chars} chars")
            text = truncate_text(text, self.max_chars)

        return AssembledContext(
            sections=tuple(sections),
            text=text,
            total_chars=len(text),
            truncated=truncated,
            excerpt=excerpt,
        )
