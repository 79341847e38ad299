"""
Test suite for the chat reply composition
Engine, generator and history storage are mocked
"""
import asyncio
import pytest
from unittest.mock import AsyncMock, Mock, call
from app.models import MessageRole
from app.services.ai_capabilities import ResponseGenerator
from app.services.chat_history_service import ChatHistoryService
from app.services.chat_service import (
    ADMISSIONS_SOURCE, DEFAULT_SOURCE, FAREWELL_REPLY, GREETING_REPLY, ChatService,
    admissions_info, admissions_links, collect_sources,
)
from app.services.context_assembler import ContextAssembler
from app.services.entity_schema import AcademicContext, ExtractedEntities, Intent, QueryPlan, TurnResult
from app.services.errors import GenerationError
from app.services.grounding_engine import GroundingEngine

SIMULATOR_URL = "https://example.org/simulador"
SCORES_URL = "https://example.org/puntajes"


def make_turn(entities, academic=None, history=()):
    academic = academic or AcademicContext()
    assembled = ContextAssembler().assemble(academic, entities.raw_query, history)
    return TurnResult("s1", entities, QueryPlan(), academic, assembled, tuple(history))


class TestChatService:
    @pytest.fixture
    def engine(self):
        engine = Mock(spec=GroundingEngine)
        engine.assembler = ContextAssembler()
        return engine

    @pytest.fixture
    def generator(self):
        generator = Mock(spec=ResponseGenerator)
        generator.generate.return_value = "Respuesta generada."
        return generator

    @pytest.fixture
    def history(self):
        return Mock(spec=ChatHistoryService)

    @pytest.fixture
    def service(self, engine, generator, history):
        return ChatService(engine, generator, history, simulator_url=SIMULATOR_URL, scores_url=SCORES_URL)

    def reply(self, service, engine, turn):
        engine.process_turn = AsyncMock(return_value=turn)
        return asyncio.run(service.reply("s1", turn.entities.raw_query))

    def test_greeting(self, service, engine, generator, history):
        """'hola' → canned greeting, both messages stored"""
        turn = make_turn(ExtractedEntities(intents=(Intent.GREETING,), raw_query="hola"))
        reply = self.reply(service, engine, turn)
        assert reply.response == GREETING_REPLY
        assert reply.sources == []
        assert reply.intents == ["GREETING"]
        generator.generate.assert_not_called()
        assert history.add_message.call_args_list == [
            call("s1", MessageRole.USER, "hola"),
            call("s1", MessageRole.ASSISTANT, GREETING_REPLY),
        ]

    def test_farewell(self, service, engine, generator):
        turn = make_turn(ExtractedEntities(intents=(Intent.FAREWELL,), raw_query="adios"))
        assert self.reply(service, engine, turn).response == FAREWELL_REPLY
        generator.generate.assert_not_called()

    def test_admissions_without_program(self, service, engine, generator):
        """Admissions question with no program → fixed admissions answer"""
        turn = make_turn(ExtractedEntities(intents=(Intent.ADMISSIONS_INFO,), raw_query="como me inscribo"))
        reply = self.reply(service, engine, turn)
        assert reply.response == admissions_info(SIMULATOR_URL, SCORES_URL)
        assert reply.sources == [ADMISSIONS_SOURCE]
        generator.generate.assert_not_called()

    def test_admissions_with_program(self, service, engine, generator):
        """Program known → generated answer over the admissions guidance, links appended"""
        entities = ExtractedEntities(
            programs=("DERECHO",), intents=(Intent.ADMISSIONS_INFO,), raw_query="puntaje para derecho"
        )
        academic = AcademicContext(
            summary="Información del programa DERECHO",
            programs=[{"program_id": "P5", "name": "DERECHO", "faculty_name": "FACULTAD DE CIENCIAS JURIDICAS"}],
        )
        reply = self.reply(service, engine, make_turn(entities, academic))

        context = generator.generate.call_args[0][0]
        assert context.startswith("RESUMEN: Información de admisión para el programa DERECHO")
        assert SIMULATOR_URL in context
        assert reply.response == "Respuesta generada." + admissions_links(SIMULATOR_URL, SCORES_URL)
        assert reply.sources == [ADMISSIONS_SOURCE, "Datos de Programas Académicos"]

    def test_admissions_links_not_duplicated(self, service, engine, generator):
        generator.generate.return_value = f"Usa el simulador: {SIMULATOR_URL}"
        entities = ExtractedEntities(programs=("DERECHO",), intents=(Intent.ADMISSIONS_INFO,), raw_query="icfes derecho")
        reply = self.reply(service, engine, make_turn(entities))
        assert reply.response == f"Usa el simulador: {SIMULATOR_URL}"
        assert reply.sources == [ADMISSIONS_SOURCE]

    def test_generated_answer(self, service, engine, generator):
        entities = ExtractedEntities(
            programs=("DERECHO",), semesters=("1",), intents=(Intent.CURRICULUM_INFO,), raw_query="materias de derecho"
        )
        academic = AcademicContext(
            summary="Materias del semestre 1 del programa DERECHO",
            courses=[{"program": "DERECHO", "semester": "1", "course": "LOGICA", "credits": "2", "curriculum_code": "PENSUM 2020"}],
            program_document={"program_name": "DERECHO"},
        )
        history = [{"role": "user", "content": "hola"}]
        turn = make_turn(entities, academic, history)
        reply = self.reply(service, engine, turn)

        generator.generate.assert_called_once_with(turn.assembled_context.text, "materias de derecho", history)
        assert reply.response == "Respuesta generada."
        assert reply.sources == ["Pensum PENSUM 2020", "PEP DERECHO"]
        assert reply.context_chars == turn.assembled_context.total_chars
        assert reply.context_truncated is False

    def test_default_source(self, service, engine):
        turn = make_turn(ExtractedEntities(raw_query="necesito ayuda"))
        assert self.reply(service, engine, turn).sources == [DEFAULT_SOURCE]

    def test_generation_failure_propagates(self, service, engine, generator, history):
        """User message is stored; no assistant message when generation fails"""
        generator.generate.side_effect = GenerationError("timeout")
        turn = make_turn(ExtractedEntities(raw_query="necesito ayuda"))
        with pytest.raises(GenerationError):
            self.reply(service, engine, turn)
        history.add_message.assert_called_once_with("s1", MessageRole.USER, "necesito ayuda")


class TestCollectSources:
    def test_all_categories(self):
        context = AcademicContext(
            summary="Información de admisión para el programa DERECHO",
            faculties=[{"name": "FACULTAD DE CIENCIAS JURIDICAS"}],
            programs=[{"name": "DERECHO"}],
            courses=[{"course": "LOGICA"}],
            program_document={"program_name": "DERECHO"},
        )
        assert collect_sources(context) == [
            "Datos de Facultades",
            "Datos de Programas Académicos",
            "Pensum actualizado",
            "PEP DERECHO",
            ADMISSIONS_SOURCE,
        ]

    def test_empty_context(self):
        assert collect_sources(AcademicContext()) == [DEFAULT_SOURCE]
