"""
Session Context Store - per-conversation short-term memory used to resolve
follow-up questions ("y de sistemas?", "what about the 3rd semester?").
"""
import re
import time
import logging
from dataclasses import replace
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

from app.services.entity_schema import ExtractedEntities, Intent, SessionContext
from app.services.text_utils import normalize

logger = logging.getLogger(__name__)

FOLLOW_UP_PATTERN = re.compile(
    r"^[\s¡¿]*(?:y\s+(?:de|del|el|la|los|las|en|que)?|que\s+tal|como\s+es|cual(?:es)?"
    r"|and\s+(?:the|of|for|in)?|what\s+about|how\s+about|which\s+ones?)"
)
SEMESTER_MENTION_PATTERN = re.compile(
    r"semestre|semester|primer|segund|tercer|cuart|quint|sext|septim|octav|noven|decim"
)


class KeyValueStore(ABC):
    """Minimal key-value store with age-based eviction"""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    @abstractmethod
    def evict_older_than(self, max_age_seconds: float) -> int:
        """Drop entries not written for max_age_seconds; returns how many were dropped"""
        pass


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store; one instance per process"""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        return entry[0] if entry else None

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (value, self._clock())

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def evict_older_than(self, max_age_seconds: float) -> int:
        cutoff = self._clock() - max_age_seconds
        expired = [key for key, (_, written_at) in self._entries.items() if written_at < cutoff]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


class SessionContextStore:
    """get / update / clear session memory, with TTL eviction"""

    def __init__(self, store: Optional[KeyValueStore] = None, ttl_seconds: Optional[float] = None):
        self.store = store or InMemoryKeyValueStore()
        self.ttl_seconds = ttl_seconds

    def evict_expired(self) -> int:
        if not self.ttl_seconds:
            return 0
        evicted = self.store.evict_older_than(self.ttl_seconds)
        if evicted:
            logger.debug(f"Evicted {evicted} idle session context(s)")
        return evicted

    def get(self, session_id: str) -> Optional[SessionContext]:
        self.evict_expired()
        return self.store.get(session_id)

    def update(self, session_id: str, entities: ExtractedEntities) -> SessionContext:
        """
        Remember the first program, first faculty and first non-GENERAL intent.
        Fields are only overwritten when the turn carries new information.
        """
        current = self.get(session_id) or SessionContext()
        updated = replace(current)
        if entities.programs:
            updated.program = entities.programs[0]
        if entities.faculties:
            updated.faculty = entities.faculties[0]
        topic = next((intent for intent in entities.intents if intent is not Intent.GENERAL), None)
        if topic is not None:
            updated.last_topic = topic
        self.store.set(session_id, updated)
        logger.debug(f"Session context updated for {session_id}: {updated.to_dict()}")
        return updated

    def clear(self, session_id: str) -> None:
        self.store.delete(session_id)


def is_follow_up(utterance: str) -> bool:
    return bool(FOLLOW_UP_PATTERN.match(normalize(utterance)))


def enrich_entities(entities: ExtractedEntities, context: Optional[SessionContext], utterance: str) -> ExtractedEntities:
    """
    Fill a missing program/faculty from session memory when the turn is a
    follow-up or mentions a semester, then force CURRICULUM_INFO when a
    semester and a program are both known. Explicit values are never replaced.
    """
    if entities.is_conversational:
        return entities

    programs = entities.programs
    faculties = entities.faculties
    if context is not None:
        normalized = normalize(utterance)
        follow_up = is_follow_up(utterance)
        mentions_semester = bool(entities.semesters) or bool(SEMESTER_MENTION_PATTERN.search(normalized))
        if follow_up or mentions_semester:
            if not programs and context.program:
                programs = (context.program,)
                logger.debug(f"Program inferred from session context: {context.program}")
            if not faculties and context.faculty:
                faculties = (context.faculty,)
                logger.debug(f"Faculty inferred from session context: {context.faculty}")

    intents = entities.intents
    if entities.semesters and programs and Intent.CURRICULUM_INFO not in intents:
        intents = tuple(intent for intent in intents if intent is not Intent.GENERAL) + (Intent.CURRICULUM_INFO,)

    return replace(entities, programs=programs, faculties=faculties, intents=intents)
