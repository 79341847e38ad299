"""
Principles Parser - pulls the named principles and values out of a program
document (PEP) so questions about them get a clean numbered list instead of
raw OCR text.
"""
import re
import logging
from dataclasses import dataclass
from typing import List

from app.services.text_utils import normalize_for_ocr, truncate_text

logger = logging.getLogger(__name__)

MAX_PRINCIPLES = 15
MAX_SECTION_CHARS = 8000
MAX_DESCRIPTION_CHARS = 500
MIN_NAME_LENGTH = 4
MAX_NAME_LENGTH = 45
MIN_DESCRIPTION_LENGTH = 20

# Capitalized words that open OCR lines but are never principle names
EXCLUDED_NAMES = frozenset({"laboratorio", "facultad", "departamento", "coordinador"})

SECTION_START_PATTERN = re.compile(
    r"los\s+principios\s+y\s+valores\s+que\s+se\s+acogen\s+para\s+el\s+programa[^:]*:\s*",
    re.IGNORECASE,
)
SECTION_END_PATTERN = re.compile(r"\n\d+\.\s+[A-ZÁÉÍÓÚÑ]")
PRINCIPLE_LINE_PATTERN = re.compile(
    r"^\s*([A-ZÁÉÍÓÚÑ][a-záéíóúñ]+(?:\s+(?:y\s+)?[A-ZÁÉÍÓÚÑ][a-záéíóúñ]+)*)[:.]\s+(.+)$"
)
NUMBERED_LINE_PATTERN = re.compile(r"^\s*\d+\.")
PAGE_NUMBER_PATTERN = re.compile(r"\s+\d+\s*$")

HEADER = "PRINCIPIOS Y VALORES DEL PROGRAMA (extraídos del PEP):\n\n"


@dataclass(frozen=True)
class Principle:
    name: str
    description: str


def should_parse_principles(query: str) -> bool:
    """True when the question asks for the program's principles or values"""
    normalized = normalize_for_ocr(query)
    if any(word in normalized for word in ("principio", "valor", "principle", "value")):
        return True
    return "cuales" in normalized and "rigen" in normalized


def find_principles_section(text: str) -> str:
    start = SECTION_START_PATTERN.search(text)
    if not start:
        return ""
    rest = text[start.end():]
    end = SECTION_END_PATTERN.search(rest)
    limit = end.start() if end else MAX_SECTION_CHARS
    return rest[:min(limit, MAX_SECTION_CHARS)]


def _clean_description(lines: List[str]) -> str:
    cleaned = [PAGE_NUMBER_PATTERN.sub("", line) for line in lines]
    return re.sub(r"\s+", " ", " ".join(cleaned)).strip()


def _is_valid(name: str, description: str) -> bool:
    if not MIN_NAME_LENGTH <= len(name) <= MAX_NAME_LENGTH:
        return False
    if name.lower() in EXCLUDED_NAMES:
        return False
    if len(description) <= MIN_DESCRIPTION_LENGTH:
        return False
    return not description[0].isdigit()


def extract_principles(text: str) -> List[Principle]:
    """
    Parse "Name: description" entries from the principles section.
    A description continues over following lines until the next entry or a
    numbered heading.
    """
    section = find_principles_section(text or "")
    if not section:
        return []

    entries = []
    current = None
    for line in section.split("\n"):
        match = PRINCIPLE_LINE_PATTERN.match(line)
        if match:
            current = [match.group(1).strip(), [match.group(2)]]
            entries.append(current)
        elif NUMBERED_LINE_PATTERN.match(line):
            break
        elif current is not None and line.strip():
            current[1].append(line)

    principles = []
    for name, lines in entries:
        description = _clean_description(lines)
        if not _is_valid(name, description):
            continue
        principles.append(Principle(name=name, description=truncate_text(description, MAX_DESCRIPTION_CHARS)))
        if len(principles) == MAX_PRINCIPLES:
            break

    logger.info(f"Parsed {len(principles)} principles from program document")
    return principles


def format_principles(principles: List[Principle]) -> str:
    if not principles:
        return ""
    lines = [f"{index}. **{p.name}**: {p.description}\n\n" for index, p in enumerate(principles, start=1)]
    return HEADER + "".join(lines)
