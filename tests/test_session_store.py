"""
Tests for the session context store and follow-up enrichment
"""
import pytest
from app.services.entity_schema import ExtractedEntities, Intent, SessionContext
from app.services.session_store import (
    InMemoryKeyValueStore, SessionContextStore, enrich_entities, is_follow_up,
)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestInMemoryKeyValueStore:
    def test_set_get_delete(self):
        store = InMemoryKeyValueStore()
        store.set("a", 1)
        assert store.get("a") == 1
        store.delete("a")
        assert store.get("a") is None
        store.delete("missing")

    def test_evict_older_than(self):
        clock = FakeClock()
        store = InMemoryKeyValueStore(clock=clock)
        store.set("old", 1)
        clock.now = 100
        store.set("new", 2)
        assert store.evict_older_than(50) == 1
        assert store.get("old") is None
        assert store.get("new") == 2
        assert len(store) == 1


class TestSessionContextStore:
    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def sessions(self, clock):
        return SessionContextStore(InMemoryKeyValueStore(clock=clock), ttl_seconds=3600)

    def test_unknown_session(self, sessions):
        assert sessions.get("nope") is None

    def test_update_remembers_first_values(self, sessions):
        entities = ExtractedEntities(
            programs=("DERECHO", "BIOLOGIA"),
            faculties=("FACULTAD DE CIENCIAS JURIDICAS",),
            intents=(Intent.GENERAL, Intent.CURRICULUM_INFO),
        )
        context = sessions.update("s1", entities)
        assert context == SessionContext(
            program="DERECHO", faculty="FACULTAD DE CIENCIAS JURIDICAS", last_topic=Intent.CURRICULUM_INFO
        )
        assert sessions.get("s1") == context

    def test_update_without_new_information_keeps_fields(self, sessions):
        """A GENERAL turn with no entities leaves the memory untouched"""
        sessions.update("s1", ExtractedEntities(programs=("DERECHO",), intents=(Intent.PROGRAM_INFO,)))
        context = sessions.update("s1", ExtractedEntities())
        assert context.program == "DERECHO"
        assert context.last_topic is Intent.PROGRAM_INFO

    def test_sessions_are_isolated(self, sessions):
        sessions.update("s1", ExtractedEntities(programs=("DERECHO",)))
        assert sessions.get("s2") is None

    def test_clear(self, sessions):
        sessions.update("s1", ExtractedEntities(programs=("DERECHO",)))
        sessions.clear("s1")
        assert sessions.get("s1") is None

    def test_idle_session_expires(self, sessions, clock):
        sessions.update("s1", ExtractedEntities(programs=("DERECHO",)))
        clock.now = 3601
        assert sessions.get("s1") is None

    def test_active_session_survives(self, sessions, clock):
        sessions.update("s1", ExtractedEntities(programs=("DERECHO",)))
        clock.now = 3000
        sessions.update("s1", ExtractedEntities(semesters=("2",)))
        clock.now = 6000
        assert sessions.get("s1").program == "DERECHO"

    def test_no_ttl_never_evicts(self, clock):
        sessions = SessionContextStore(InMemoryKeyValueStore(clock=clock))
        sessions.update("s1", ExtractedEntities(programs=("DERECHO",)))
        clock.now = 10 ** 9
        assert sessions.get("s1").program == "DERECHO"


class TestFollowUp:
    @pytest.mark.parametrize("utterance", ["Y de derecho?", "¿y en quinto semestre?", "what about the second semester", "Cuáles son?"])
    def test_follow_up_cues(self, utterance):
        assert is_follow_up(utterance)

    @pytest.mark.parametrize("utterance", ["materias de sistemas", "perfil profesional de derecho"])
    def test_not_follow_up(self, utterance):
        assert not is_follow_up(utterance)


class TestEnrichEntities:
    @pytest.fixture
    def context(self):
        return SessionContext(program="INGENIERIA DE SISTEMAS", faculty="FACULTAD DE INGENIERIAS")

    def test_semester_follow_up_uses_remembered_program(self, context):
        """'y en quinto semestre?' after sistemas → sistemas, semester 5, CURRICULUM_INFO"""
        entities = ExtractedEntities(semesters=("5",), raw_query="y en quinto semestre?")
        enriched = enrich_entities(entities, context, "y en quinto semestre?")
        assert enriched.programs == ("INGENIERIA DE SISTEMAS",)
        assert enriched.semesters == ("5",)
        assert enriched.intents == (Intent.CURRICULUM_INFO,)

    def test_explicit_program_not_replaced(self, context):
        entities = ExtractedEntities(programs=("DERECHO",), semesters=("3",), raw_query="y derecho en tercer semestre?")
        enriched = enrich_entities(entities, context, "y derecho en tercer semestre?")
        assert enriched.programs == ("DERECHO",)

    def test_unrelated_turn_not_enriched(self, context):
        entities = ExtractedEntities(intents=(Intent.ADMISSIONS_INFO,), raw_query="requisitos de inscripcion")
        enriched = enrich_entities(entities, context, "requisitos de inscripcion")
        assert enriched.programs == ()
        assert enriched.faculties == ()

    def test_faculty_follow_up(self):
        """'y cuales programas hay?' after a faculty question → that faculty"""
        context = SessionContext(faculty="FACULTAD DE CIENCIAS DE LA SALUD")
        entities = ExtractedEntities(intents=(Intent.LIST_PROGRAMS,), raw_query="y cuales programas hay?")
        enriched = enrich_entities(entities, context, "y cuales programas hay?")
        assert enriched.faculties == ("FACULTAD DE CIENCIAS DE LA SALUD",)
        assert enriched.programs == ()

    def test_conversational_turn_unchanged(self, context):
        entities = ExtractedEntities(intents=(Intent.GREETING,), raw_query="y hola")
        assert enrich_entities(entities, context, "y hola") is entities

    def test_curriculum_forced_without_context(self):
        entities = ExtractedEntities(programs=("DERECHO",), semesters=("3",), raw_query="derecho semestre 3")
        enriched = enrich_entities(entities, None, "derecho semestre 3")
        assert enriched.intents == (Intent.CURRICULUM_INFO,)

    def test_curriculum_not_duplicated(self):
        entities = ExtractedEntities(
            programs=("DERECHO",), semesters=("3",), intents=(Intent.CREDITS, Intent.CURRICULUM_INFO)
        )
        assert enrich_entities(entities, None, "x").intents == (Intent.CREDITS, Intent.CURRICULUM_INFO)
