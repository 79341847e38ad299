"""
Relevance Chunker - picks the parts of a long program document (OCR text) that
matter for a question, within a character budget.

Pipeline: keywords -> synonym expansion -> segmentation (headings, paragraphs,
sliding windows) -> OCR-tolerant scoring -> budgeted selection -> reassembly
in document order.
"""
import re
import logging
from dataclasses import dataclass, replace
from typing import Iterable, List, Sequence, Tuple

from app.services.entity_schema import ChunkExtraction, ScoredChunk
from app.services.text_utils import extract_keywords, normalize_for_ocr, truncate_text

logger = logging.getLogger(__name__)

SEPARATOR = "\n\n---\n\n"


@dataclass(frozen=True)
class ScoringWeights:
    """Scoring constants, tunable independently of segmentation"""
    keyword_weight: int = 10               # per keyword occurrence
    proximity_bonus: int = 50000           # per pair of different keywords close together
    proximity_window: int = 50             # max normalized chars between the pair
    completeness_bonus: int = 10000        # matched >= min(3, keyword count) keywords
    majority_bonus: int = 1000             # else matched >= majority_ratio of keywords
    majority_ratio: float = 0.6
    readable_length_bonus: int = 5         # readable_min < length < readable_max
    readable_min: int = 200
    readable_max: int = 2000
    substantive_length_bonus: int = 15     # length > substantive_min
    substantive_min: int = 300
    index_penalty: int = 20                # numbers > index_digit_ratio * words in a short segment
    index_digit_ratio: float = 0.3
    index_max_length: int = 500
    first_chunk_min_score: int = 10        # the first pick must beat this to be truncated into the budget


@dataclass(frozen=True)
class SegmentationRules:
    min_segments: int = 3
    heading_min_section: int = 150
    paragraph_min_length: int = 50
    window_size: int = 800
    window_overlap: int = 200
    window_min_length: int = 100


DEFAULT_WEIGHTS = ScoringWeights()
DEFAULT_SEGMENTATION = SegmentationRules()

# Keyword substring -> words added to the query, bridging question and document vocabulary
SYNONYM_RULES: Tuple[Tuple[Tuple[str, ...], Tuple[str, ...]], ...] = (
    (("objetivo", "objective"), ("objetivos", "meta", "metas", "proposito", "fin", "goal", "purpose")),
    (("competenc",), ("competencias", "habilidad", "habilidades", "capacidad", "skill", "ability")),
    (("perfil", "profile"), ("perfil", "profesional", "ocupacional", "egresado")),
    (("mision", "vision", "mission"), ("mision", "vision", "proposito")),
    (("campo", "field"), ("campos", "ocupacional", "laboral", "trabajo")),
    (("linea", "investigacion", "research"), ("lineas", "investigacion", "investigativas", "investigar")),
    (("principio", "principle"), ("principios", "valores", "valor")),
    (("valor", "value"), ("valores", "principios", "principio")),
)

# Numbered titles ("3.2 Perfil profesional") or long all-caps lines
HEADING_PATTERN = re.compile(
    r"^[ \t]*(?:\d+(?:\.\d+)*\.?[ \t]+[A-ZÑÁÉÍÓÚÜ][^\n]{5,}|[A-ZÑÁÉÍÓÚÜ][A-ZÑÁÉÍÓÚÜ \t]{9,})[ \t]*$",
    re.MULTILINE,
)
PARAGRAPH_BREAK_PATTERN = re.compile(r"\n[ \t]*\n\s*")

Segment = Tuple[int, str]  # (offset in document, text)


def expand_keywords(keywords: Iterable[str]) -> List[str]:
    expanded: List[str] = []

    def add(word: str):
        if word not in expanded:
            expanded.append(word)

    for keyword in keywords:
        add(keyword)
        for triggers, additions in SYNONYM_RULES:
            if any(trigger in keyword for trigger in triggers):
                for word in additions:
                    add(word)
    return expanded


def _stripped(text: str, start: int, end: int) -> Segment:
    piece = text[start:end]
    lead = len(piece) - len(piece.lstrip())
    return start + lead, piece.strip()


def split_by_headings(text: str, min_length: int) -> List[Segment]:
    """Text strictly after each heading, up to the next heading"""
    headings = list(HEADING_PATTERN.finditer(text))
    segments = []
    for index, heading in enumerate(headings):
        end = headings[index + 1].start() if index + 1 < len(headings) else len(text)
        position, content = _stripped(text, heading.end(), end)
        if len(content) > min_length:
            segments.append((position, content))
    return segments


def split_by_paragraphs(text: str, min_length: int) -> List[Segment]:
    segments = []
    start = 0
    for match in PARAGRAPH_BREAK_PATTERN.finditer(text):
        segments.append(_stripped(text, start, match.start()))
        start = match.end()
    segments.append(_stripped(text, start, len(text)))
    return [(position, content) for position, content in segments if len(content) > min_length]


def split_by_windows(text: str, size: int, overlap: int, min_length: int) -> List[Segment]:
    step = max(size - overlap, 1)
    segments = []
    for start in range(0, len(text), step):
        position, content = _stripped(text, start, min(start + size, len(text)))
        if len(content) > min_length:
            segments.append((position, content))
    return segments


def segment_document(text: str, rules: SegmentationRules = DEFAULT_SEGMENTATION) -> List[Segment]:
    """Headings first, then paragraphs, then sliding windows as a last resort"""
    segments = split_by_headings(text, rules.heading_min_section)
    if len(segments) >= rules.min_segments:
        return segments
    segments = split_by_paragraphs(text, rules.paragraph_min_length)
    if len(segments) >= rules.min_segments:
        return segments
    return split_by_windows(text, rules.window_size, rules.window_overlap, rules.window_min_length)


def _keyword_regex(keyword: str) -> str:
    return r"\s+".join(re.escape(part) for part in keyword.split())


def score_segment(segment: str, keywords: Sequence[str], weights: ScoringWeights = DEFAULT_WEIGHTS) -> ScoredChunk:
    """
    Score one segment against the expanded keyword list.

    Matching runs on the OCR-normalized segment so stray symbols and accents
    do not break it. Length and index heuristics only adjust segments that
    matched at least one keyword; a segment with no match scores 0.
    """
    normalized = normalize_for_ocr(segment)
    score = 0.0
    matched: List[str] = []
    patterns = []

    for keyword in keywords:
        normalized_keyword = normalize_for_ocr(keyword)
        if not normalized_keyword:
            continue
        pattern = _keyword_regex(normalized_keyword)
        patterns.append((normalized_keyword, pattern))
        occurrences = len(re.findall(pattern, normalized))
        if occurrences:
            score += occurrences * weights.keyword_weight
            matched.append(keyword)

    if not matched:
        return ScoredChunk(text=segment, score=0.0, matched_keywords=[])

    window = weights.proximity_window
    for i in range(len(patterns) - 1):
        for j in range(i + 1, len(patterns)):
            (kw1, p1), (kw2, p2) = patterns[i], patterns[j]
            if kw1 == kw2:
                continue
            if re.search(f"{p1}.{{0,{window}}}{p2}|{p2}.{{0,{window}}}{p1}", normalized):
                score += weights.proximity_bonus

    if len(matched) >= min(3, len(patterns)):
        score += weights.completeness_bonus
    elif len(matched) >= len(patterns) * weights.majority_ratio:
        score += weights.majority_bonus

    length = len(segment)
    if weights.readable_min < length < weights.readable_max:
        score += weights.readable_length_bonus
    if length > weights.substantive_min:
        score += weights.substantive_length_bonus

    word_count = len(segment.split())
    number_count = len(re.findall(r"\d+", segment))
    if number_count > word_count * weights.index_digit_ratio and length < weights.index_max_length:
        score -= weights.index_penalty

    return ScoredChunk(text=segment, score=score, matched_keywords=matched)


def select_chunks(ranked: Sequence[ScoredChunk], budget: int, weights: ScoringWeights = DEFAULT_WEIGHTS) -> List[ScoredChunk]:
    """
    Walk chunks best-first. The first pick may be truncated into the budget
    when its score beats first_chunk_min_score; later picks must fit whole
    (separator included). Stops at the first non-positive score or overflow.
    """
    selected: List[ScoredChunk] = []
    used = 0
    for chunk in ranked:
        if chunk.score <= 0:
            break
        if not selected and chunk.score > weights.first_chunk_min_score:
            text = truncate_text(chunk.text, budget)
            selected.append(replace(chunk, text=text))
            used = len(text)
            continue
        cost = len(chunk.text) + (len(SEPARATOR) if selected else 0)
        if used + cost > budget:
            break
        selected.append(chunk)
        used += cost
    return selected


def extract_relevant_chunks(
    text: str,
    query: str,
    budget: int = 4000,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
    segmentation: SegmentationRules = DEFAULT_SEGMENTATION,
) -> ChunkExtraction:
    """Budget-bounded, relevance-ranked excerpt of `text` for `query`"""
    if not text:
        return ChunkExtraction(text="", found_keywords=(), chunks_used=0)
    if len(text) <= budget:
        return ChunkExtraction(text=text, found_keywords=(), chunks_used=1)

    keywords = expand_keywords(extract_keywords(query))
    chunks = []
    for position, segment in segment_document(text, segmentation):
        scored = score_segment(segment, keywords, weights)
        scored.position = position
        chunks.append(scored)

    # sorted() is stable: equal scores keep document order
    ranked = sorted(chunks, key=lambda chunk: chunk.score, reverse=True)
    selected = select_chunks(ranked, budget, weights)

    if not selected:
        logger.info(f"No relevant chunks for query '{query[:100]}', using document head")
        return ChunkExtraction(text=truncate_text(text, budget), found_keywords=(), chunks_used=0)

    selected.sort(key=lambda chunk: chunk.position)
    found = [kw for kw in keywords if any(kw in chunk.matched_keywords for chunk in selected)]
    excerpt = SEPARATOR.join(chunk.text for chunk in selected)

    logger.info(
        f"Relevant chunk extraction: {len(text)} -> {len(excerpt)} chars, "
        f"{len(selected)}/{len(chunks)} chunks, keywords found: {found}"
    )
    return ChunkExtraction(text=excerpt, found_keywords=tuple(found), chunks_used=len(selected))
