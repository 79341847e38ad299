"""
Entity Schema - structured result types for the grounding engine
"""
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, Dict, Any, Tuple, List


class Intent(str, Enum):
    GREETING = "GREETING"
    FAREWELL = "FAREWELL"
    ADMISSIONS_INFO = "ADMISSIONS_INFO"
    FACULTY_INFO = "FACULTY_INFO"
    PROGRAM_INFO = "PROGRAM_INFO"
    COURSE_INFO = "COURSE_INFO"
    CURRICULUM_INFO = "CURRICULUM_INFO"
    LIST_FACULTIES = "LIST_FACULTIES"
    LIST_PROGRAMS = "LIST_PROGRAMS"
    LIST_COURSES = "LIST_COURSES"
    CREDITS = "CREDITS"
    SCHEDULE_TRACK = "SCHEDULE_TRACK"
    GENERAL = "GENERAL"

    @classmethod
    def parse(cls, value: Any) -> Optional["Intent"]:
        """Map a free-form label (e.g. from an LLM reply) onto the enum, or None"""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


LISTING_INTENTS = frozenset({Intent.LIST_FACULTIES, Intent.LIST_PROGRAMS, Intent.LIST_COURSES})
CONVERSATIONAL_INTENTS = frozenset({Intent.GREETING, Intent.FAREWELL})


class ScheduleTrack:
    DAY = "DIURNA"
    EVENING = "NOCTURNA"
    DISTANCE = "DISTANCIA"
    WEEKEND = "SABATINA"


def _unique(values) -> Tuple[str, ...]:
    """Deduplicate while keeping first-seen order"""
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return tuple(seen)


@dataclass(frozen=True)
class ExtractedEntities:
    """
    Result of entity extraction for one utterance.
    Collections are ordered sets (tuples without duplicates); the first
    element of each is the one downstream rules act on.
    """
    faculties: Tuple[str, ...] = ()
    programs: Tuple[str, ...] = ()
    courses: Tuple[str, ...] = ()
    semesters: Tuple[str, ...] = ()  # "1".."10"
    schedule_tracks: Tuple[str, ...] = ()
    intents: Tuple[Intent, ...] = (Intent.GENERAL,)
    raw_query: str = ""

    def __post_init__(self):
        for name in ("faculties", "programs", "courses", "semesters", "schedule_tracks", "intents"):
            object.__setattr__(self, name, _unique(getattr(self, name)))
        if not self.intents:
            object.__setattr__(self, "intents", (Intent.GENERAL,))

    def has_intent(self, *intents: Intent) -> bool:
        return any(intent in self.intents for intent in intents)

    @property
    def is_conversational(self) -> bool:
        """Greeting or farewell"""
        return self.has_intent(*CONVERSATIONAL_INTENTS)

    @property
    def is_listing(self) -> bool:
        return self.has_intent(*LISTING_INTENTS)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "faculties": list(self.faculties),
            "programs": list(self.programs),
            "courses": list(self.courses),
            "semesters": list(self.semesters),
            "schedule_tracks": list(self.schedule_tracks),
            "intents": [intent.value for intent in self.intents],
            "raw_query": self.raw_query,
        }


@dataclass
class SessionContext:
    """Short-term memory of one conversation"""
    program: Optional[str] = None
    faculty: Optional[str] = None
    last_topic: Optional[Intent] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "program": self.program,
            "faculty": self.faculty,
            "last_topic": self.last_topic.value if self.last_topic else None,
        }


class Endpoint(str, Enum):
    FACULTIES = "faculties"
    PROGRAMS = "programs"
    CURRICULUM = "curriculum"


class PlanStrategy(str, Enum):
    SEQUENTIAL = "SEQUENTIAL"
    PARALLEL = "PARALLEL"


@dataclass(frozen=True)
class ApiCall:
    endpoint: Endpoint
    params: Dict[str, str] = field(default_factory=dict)
    priority: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {"endpoint": self.endpoint.value, "params": dict(self.params), "priority": self.priority}


@dataclass(frozen=True)
class QueryPlan:
    calls: Tuple[ApiCall, ...] = ()
    strategy: PlanStrategy = PlanStrategy.SEQUENTIAL
    result_cap: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "calls": [call.to_dict() for call in self.calls],
            "strategy": self.strategy.value,
            "result_cap": self.result_cap,
        }


@dataclass
class ScoredChunk:
    text: str
    score: float
    matched_keywords: List[str] = field(default_factory=list)
    position: int = 0  # offset of the segment in the source document


@dataclass(frozen=True)
class ChunkExtraction:
    """Output of the relevance chunker"""
    text: str
    found_keywords: Tuple[str, ...] = ()
    chunks_used: int = 0


@dataclass
class AcademicContext:
    """Facts fetched for one turn, before formatting"""
    summary: str = ""
    faculties: List[Dict[str, Any]] = field(default_factory=list)
    programs: List[Dict[str, Any]] = field(default_factory=list)
    courses: List[Dict[str, Any]] = field(default_factory=list)
    program_document: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AssembledContext:
    sections: Tuple[str, ...] = ()
    text: str = ""
    total_chars: int = 0
    truncated: bool = False
    excerpt: Optional[ChunkExtraction] = None


@dataclass(frozen=True)
class TurnResult:
    """What one processed turn hands back to the HTTP layer"""
    session_id: str
    entities: ExtractedEntities
    plan: QueryPlan
    academic_context: AcademicContext
    assembled_context: AssembledContext
    history: Tuple[Dict[str, str], ...] = ()
