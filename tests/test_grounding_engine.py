"""
Test suite for the Grounding Engine turn pipeline
Uses the real extractor, planner and assembler over a mocked data provider
"""
import asyncio
import pytest
import threading
from contextlib import nullcontext
from unittest.mock import Mock
from app.services.academic_data_service import AcademicDataService
from app.services.ai_capabilities import EntityExtractorAI, PlanOptimizerAI
from app.services.chat_history_service import ChatHistoryService
from app.services.context_assembler import ContextAssembler
from app.services.entity_extractor import EntityExtractor
from app.services.entity_schema import Endpoint, ExtractedEntities, Intent, PlanStrategy
from app.services.errors import DataProviderError
from app.services.grounding_engine import GroundingEngine
from app.services.query_planner import QueryPlanner
from app.services.session_store import SessionContextStore

SISTEMAS = {"program_id": "P1", "name": "INGENIERIA DE SISTEMAS", "faculty_name": "FACULTAD DE INGENIERIAS"}
INDUSTRIAL = {"program_id": "P2", "name": "INGENIERIA INDUSTRIAL", "faculty_name": "FACULTAD DE INGENIERIAS"}


class TestGroundingEngine:
    @pytest.fixture
    def provider(self):
        provider = Mock(spec=AcademicDataService)
        provider.list_faculties.return_value = []
        provider.list_programs.return_value = []
        provider.list_curriculum.return_value = []
        provider.get_program_document.return_value = None
        return provider

    @pytest.fixture
    def history(self):
        history = Mock(spec=ChatHistoryService)
        history.get_history.return_value = []
        return history

    @pytest.fixture
    def sessions(self):
        return SessionContextStore()

    @pytest.fixture
    def engine(self, provider, history, sessions):
        return GroundingEngine(
            extractor=EntityExtractor(),
            sessions=sessions,
            planner=QueryPlanner(max_results=50),
            data_scope=lambda: nullcontext(provider),
            history_provider=history,
            assembler=ContextAssembler(),
        )

    def run(self, engine, utterance, session_id="s1"):
        return asyncio.run(engine.process_turn(session_id, utterance))

    def test_greeting_fetches_nothing(self, engine, provider, sessions):
        """'hola' → no data calls, no session memory"""
        turn = self.run(engine, "hola")
        assert turn.entities.intents == (Intent.GREETING,)
        assert turn.plan.calls == ()
        provider.list_programs.assert_not_called()
        provider.list_curriculum.assert_not_called()
        assert turn.assembled_context.text == "HISTORIAL:\nSin historial previo."
        assert sessions.get("s1") is None

    def test_curriculum_turn(self, engine, provider):
        """'materias de quinto semestre de sistemas' → curriculum lookup, no program document"""
        provider.list_programs.return_value = [SISTEMAS]
        provider.list_curriculum.return_value = [
            {"program": "INGENIERIA DE SISTEMAS", "semester": "5", "course": "BASES DE DATOS", "credits": "3"},
        ]
        turn = self.run(engine, "materias de quinto semestre de sistemas")

        assert turn.plan.strategy is PlanStrategy.PARALLEL
        provider.list_programs.assert_called_once_with({"program_name": "ingeni"}, 50)
        provider.list_curriculum.assert_called_once_with(
            {"program_name": "INGENIERIA DE SISTEMAS", "semester": "5"}, 50
        )
        provider.get_program_document.assert_not_called()
        assert turn.academic_context.summary == "Materias del semestre 5 del programa INGENIERIA DE SISTEMAS"
        assert "  - BASES DE DATOS (3 créditos)" in turn.assembled_context.text

    def test_program_document_loaded_then_follow_up(self, engine, provider, sessions):
        """Profile question loads the PEP; 'y en quinto semestre?' reuses the program"""
        provider.list_programs.return_value = [INDUSTRIAL, SISTEMAS]
        provider.get_program_document.return_value = {
            "program_name": "INGENIERIA DE SISTEMAS",
            "professional_profile": "Ingeniero que diseña y construye software.",
        }
        turn = self.run(engine, "perfil profesional de ingeniería de sistemas")

        provider.get_program_document.assert_called_once_with("P1")
        assert "Perfil profesional: Ingeniero que diseña y construye software." in turn.assembled_context.text
        assert turn.academic_context.summary == "Información del programa INGENIERIA DE SISTEMAS"
        assert sessions.get("s1").program == "INGENIERIA DE SISTEMAS"

        follow_up = self.run(engine, "y en quinto semestre?")
        assert follow_up.entities.programs == ("INGENIERIA DE SISTEMAS",)
        assert Intent.CURRICULUM_INFO in follow_up.entities.intents
        provider.list_curriculum.assert_called_once_with(
            {"program_name": "INGENIERIA DE SISTEMAS", "semester": "5"}, 50
        )
        assert provider.get_program_document.call_count == 1

    def test_list_programs_by_faculty_summary(self, engine, provider):
        provider.list_programs.return_value = [INDUSTRIAL, SISTEMAS]
        turn = self.run(engine, "cuáles programas tiene la facultad de ingeniería")
        assert turn.academic_context.summary == "Programas académicos de la FACULTAD DE INGENIERIAS: 2 encontrados"
        assert turn.academic_context.program_document is None
        provider.get_program_document.assert_not_called()

    def test_history_passed_to_context(self, engine, history):
        history.get_history.return_value = [{"role": "user", "content": "hola", "created_at": None}]
        turn = self.run(engine, "requisitos de inscripcion")
        history.get_history.assert_called_once_with("s1", 10)
        assert turn.history == ({"role": "user", "content": "hola", "created_at": None},)
        assert turn.assembled_context.text.endswith("HISTORIAL:\nUsuario: hola")

    def test_farewell_clears_session(self, engine, sessions):
        sessions.update("s1", ExtractedEntities(programs=("DERECHO",)))
        self.run(engine, "adiós")
        assert sessions.get("s1") is None

    def test_reset_session(self, engine, sessions):
        sessions.update("s1", ExtractedEntities(programs=("DERECHO",)))
        engine.reset_session("s1")
        assert sessions.get("s1") is None

    def test_data_failure_propagates(self, engine, provider, sessions):
        provider.list_curriculum.side_effect = DataProviderError("connection lost")
        with pytest.raises(DataProviderError):
            self.run(engine, "materias de quinto semestre de sistemas")
        assert sessions.get("s1") is None

    def test_ai_planning(self, provider, history):
        ai = Mock(spec=PlanOptimizerAI)
        ai.optimize_query_plan.return_value = '{"calls": [{"endpoint": "faculties", "params": {"name": "ingenierias"}}]}'
        engine = GroundingEngine(
            extractor=EntityExtractor(),
            sessions=SessionContextStore(),
            planner=QueryPlanner(ai=ai, max_results=50),
            data_scope=lambda: nullcontext(provider),
            history_provider=history,
            assembler=ContextAssembler(),
            use_ai_planning=True,
        )
        turn = asyncio.run(engine.process_turn("s1", "materias de quinto semestre de sistemas"))
        assert [call.endpoint for call in turn.plan.calls] == [Endpoint.FACULTIES]
        provider.list_faculties.assert_called_once_with({"name": "ingenierias"}, 50)
        provider.list_curriculum.assert_not_called()

    def test_ai_extraction_runs_off_the_event_loop(self, provider, history):
        """Two turns waiting on a slow AI extraction overlap instead of running back to back"""
        barrier = threading.Barrier(2, timeout=5)
        met = []

        def slow_extraction(text):
            try:
                barrier.wait()
                met.append(True)
            except threading.BrokenBarrierError:
                met.append(False)
            return None

        ai = Mock(spec=EntityExtractorAI)
        ai.extract_entities.side_effect = slow_extraction
        engine = GroundingEngine(
            extractor=EntityExtractor(ai=ai),
            sessions=SessionContextStore(),
            planner=QueryPlanner(max_results=50),
            data_scope=lambda: nullcontext(provider),
            history_provider=history,
            assembler=ContextAssembler(),
        )

        async def both_turns():
            return await asyncio.gather(
                engine.process_turn("s1", "necesito ayuda"),
                engine.process_turn("s2", "necesito ayuda"),
            )

        turns = asyncio.run(both_turns())
        assert met == [True, True]
        assert [turn.session_id for turn in turns] == ["s1", "s2"]

    def test_ai_planning_runs_off_the_event_loop(self, provider, history):
        barrier = threading.Barrier(2, timeout=5)
        met = []

        def slow_planning(prompt):
            try:
                barrier.wait()
                met.append(True)
            except threading.BrokenBarrierError:
                met.append(False)
            return None

        ai = Mock(spec=PlanOptimizerAI)
        ai.optimize_query_plan.side_effect = slow_planning
        engine = GroundingEngine(
            extractor=EntityExtractor(),
            sessions=SessionContextStore(),
            planner=QueryPlanner(ai=ai, max_results=50),
            data_scope=lambda: nullcontext(provider),
            history_provider=history,
            assembler=ContextAssembler(),
            use_ai_planning=True,
        )

        async def both_turns():
            return await asyncio.gather(
                engine.process_turn("s1", "materias de derecho"),
                engine.process_turn("s2", "materias de biologia"),
            )

        asyncio.run(both_turns())
        assert met == [True, True]


class TestNeedsProgramDocument:
    def test_requires_program(self):
        assert not GroundingEngine.needs_program_document(ExtractedEntities(intents=(Intent.PROGRAM_INFO,)))

    def test_structured_only_turn(self):
        entities = ExtractedEntities(programs=("DERECHO",), intents=(Intent.CREDITS, Intent.FACULTY_INFO))
        assert not GroundingEngine.needs_program_document(entities)

    def test_descriptive_turn(self):
        entities = ExtractedEntities(programs=("DERECHO",), intents=(Intent.CURRICULUM_INFO, Intent.PROGRAM_INFO))
        assert GroundingEngine.needs_program_document(entities)

    def test_only_faculty_info(self):
        """'ingeniería de X' also names a faculty; that alone does not skip the document"""
        entities = ExtractedEntities(programs=("INGENIERIA DE SISTEMAS",), intents=(Intent.FACULTY_INFO,))
        assert GroundingEngine.needs_program_document(entities)
