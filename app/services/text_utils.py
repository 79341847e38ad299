"""
Text utilities shared by extraction, planning and chunking.
All functions are pure and deterministic.
"""
import re
import unicodedata
from typing import Any, Dict, Iterable, List, Sequence

# Spanish function words and request fillers ignored when deriving query keywords
STOP_WORDS = frozenset({
    "el", "la", "los", "las", "un", "una", "unos", "unas", "de", "del", "al", "a",
    "en", "con", "por", "para", "que", "cual", "cuales", "como", "donde", "cuando",
    "es", "son", "tiene", "tienen", "hay", "puede", "pueden", "me", "te", "se",
    "nos", "les", "lo", "le", "y", "o", "pero", "si", "no", "mas", "menos",
    "este", "esta", "estos", "estas", "ese", "esa", "mi", "tu", "su", "mis",
    "tus", "sus", "quiero", "necesito", "busco", "quisiera", "podria", "puedo",
    "saber", "conocer", "informacion", "sobre", "acerca",
})

ELLIPSIS = "..."


def normalize(text: str) -> str:
    """Lowercase, strip accents (NFD + drop combining marks) and trim"""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.strip()


def normalize_for_ocr(text: str) -> str:
    """
    Aggressive normalization for OCR-extracted text: anything that is not
    a lowercase ASCII letter, digit or whitespace becomes a space, then
    whitespace runs collapse to one space.
    """
    text = normalize(text)
    text = re.sub(r"[^a-z0-9\s]", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def levenshtein_distance(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """1 - levenshtein / max length, on normalized inputs. Range [0, 1]."""
    s1 = normalize(a)
    s2 = normalize(b)
    if s1 == s2:
        return 1.0
    if not s1 or not s2:
        return 0.0
    return 1.0 - levenshtein_distance(s1, s2) / max(len(s1), len(s2))


def fuzzy_contains(a: str, b: str) -> bool:
    """True if either normalized string contains the other"""
    s1 = normalize(a)
    s2 = normalize(b)
    return s1 in s2 or s2 in s1


def extract_keywords(text: str) -> List[str]:
    """Distinct tokens longer than 2 chars that are not stop words, in first-seen order"""
    cleaned = re.sub(r"[^\w\s]", " ", normalize(text))
    keywords: List[str] = []
    for word in cleaned.split():
        if len(word) > 2 and word not in STOP_WORDS and word not in keywords:
            keywords.append(word)
    return keywords


def truncate_text(text: str, max_length: int) -> str:
    """Hard cut to max_length characters, ending in '...' when cut"""
    if len(text) <= max_length:
        return text
    if max_length <= len(ELLIPSIS):
        return text[:max_length]
    return text[:max_length - len(ELLIPSIS)] + ELLIPSIS


def format_for_context(items: Sequence[Dict[str, Any]], max_items: int, key_fields: Iterable[str]) -> str:
    """Render the first max_items records as 'key: value | key: value' lines"""
    fields = list(key_fields)
    lines = []
    for item in items[:max_items]:
        lines.append(" | ".join(f"{key}: {item.get(key)}" for key in fields))
    return "\n".join(lines)
