"""
Grounding Engine - processes one conversational turn:

utterance -> entity extraction -> session enrichment -> query plan ->
data fetch -> program document excerpt -> assembled context -> session update

Collaborator failures (DataProviderError) propagate to the caller.
"""
import asyncio
import logging
from contextlib import contextmanager
from typing import Any, Callable, ContextManager, Dict, Iterator, List, Optional, Tuple

from app.database import SessionLocal
from app.services.academic_data_service import AcademicDataService
from app.services.context_assembler import ContextAssembler
from app.services.entity_extractor import EntityExtractor
from app.services.entity_schema import (
    AcademicContext, ApiCall, Endpoint, ExtractedEntities, Intent, PlanStrategy, QueryPlan, TurnResult
)
from app.services.query_planner import QueryPlanner
from app.services.session_store import SessionContextStore, enrich_entities
from app.services.text_utils import similarity

logger = logging.getLogger(__name__)

ENDPOINT_METHODS = {
    Endpoint.FACULTIES: "list_faculties",
    Endpoint.PROGRAMS: "list_programs",
    Endpoint.CURRICULUM: "list_curriculum",
}

# Turns made only of these intents are answered from structured data; the
# program document is not loaded for them. FACULTY_INFO is ignored here since
# program names like "ingenieria ..." also name a faculty.
STRUCTURED_ONLY_INTENTS = frozenset({
    Intent.CURRICULUM_INFO, Intent.CREDITS,
    Intent.LIST_FACULTIES, Intent.LIST_PROGRAMS, Intent.LIST_COURSES,
})

DataScope = Callable[[], ContextManager[AcademicDataService]]


@contextmanager
def database_scope() -> Iterator[AcademicDataService]:
    """Academic data provider on its own database session"""
    db = SessionLocal()
    try:
        yield AcademicDataService(db)
    finally:
        db.close()


class GroundingEngine:
    def __init__(
        self,
        extractor: EntityExtractor,
        sessions: SessionContextStore,
        planner: QueryPlanner,
        data_scope: DataScope,
        history_provider,
        assembler: ContextAssembler,
        use_ai_planning: bool = False,
        max_history_messages: int = 10,
    ):
        self.extractor = extractor
        self.sessions = sessions
        self.planner = planner
        # Each lookup opens its own provider so parallel calls never share a DB session
        self.data_scope = data_scope
        self.history_provider = history_provider
        self.assembler = assembler
        self.use_ai_planning = use_ai_planning
        self.max_history_messages = max_history_messages

    async def process_turn(self, session_id: str, utterance: str) -> TurnResult:
        entities = await asyncio.to_thread(self.extractor.extract, utterance)
        entities = enrich_entities(entities, self.sessions.get(session_id), utterance)
        logger.info(f"Session {session_id} entities: {entities.to_dict()}")

        history = await asyncio.to_thread(
            self.history_provider.get_history, session_id, self.max_history_messages
        )

        if self.use_ai_planning:
            plan = await asyncio.to_thread(self.planner.optimize_plan, entities)
        else:
            plan = self.planner.build_plan(entities)
        logger.info(f"Query plan: {plan.to_dict()}")

        results = await self.execute_plan(plan)
        academic_context = await self.build_academic_context(entities, results)
        assembled = self.assembler.assemble(academic_context, utterance, history)
        logger.info(
            f"Context assembled: {assembled.total_chars} chars, truncated={assembled.truncated}, "
            f"faculties={len(academic_context.faculties)}, programs={len(academic_context.programs)}, "
            f"courses={len(academic_context.courses)}, document={academic_context.program_document is not None}"
        )

        if entities.has_intent(Intent.FAREWELL):
            self.sessions.clear(session_id)
        elif not entities.is_conversational:
            self.sessions.update(session_id, entities)

        return TurnResult(
            session_id=session_id,
            entities=entities,
            plan=plan,
            academic_context=academic_context,
            assembled_context=assembled,
            history=tuple(history),
        )

    def reset_session(self, session_id: str) -> None:
        self.sessions.clear(session_id)
        logger.info(f"Session context reset: {session_id}")

    def run_call(self, call: ApiCall, limit: int) -> List[Dict[str, Any]]:
        with self.data_scope() as provider:
            method = getattr(provider, ENDPOINT_METHODS[call.endpoint])
            return method(dict(call.params), limit)

    async def execute_plan(self, plan: QueryPlan) -> List[Tuple[ApiCall, List[Dict[str, Any]]]]:
        """Run the plan's calls; PARALLEL plans are awaited jointly"""
        if not plan.calls:
            return []
        if plan.strategy is PlanStrategy.PARALLEL:
            rows = await asyncio.gather(
                *(asyncio.to_thread(self.run_call, call, plan.result_cap) for call in plan.calls)
            )
        else:
            rows = [await asyncio.to_thread(self.run_call, call, plan.result_cap) for call in plan.calls]
        return list(zip(plan.calls, rows))

    def load_program_document(self, program_id: str) -> Optional[Dict[str, Any]]:
        with self.data_scope() as provider:
            return provider.get_program_document(program_id)

    @staticmethod
    def needs_program_document(entities: ExtractedEntities) -> bool:
        if not entities.programs:
            return False
        topics = [intent for intent in entities.intents if intent is not Intent.FACULTY_INFO]
        return not topics or not all(intent in STRUCTURED_ONLY_INTENTS for intent in topics)

    async def build_academic_context(
        self,
        entities: ExtractedEntities,
        results: List[Tuple[ApiCall, List[Dict[str, Any]]]],
    ) -> AcademicContext:
        context = AcademicContext()
        endpoints = set()
        for call, rows in results:
            endpoints.add(call.endpoint)
            if call.endpoint is Endpoint.FACULTIES:
                context.faculties.extend(rows)
            elif call.endpoint is Endpoint.PROGRAMS:
                context.programs.extend(rows)
            else:
                context.courses.extend(rows)

        if entities.programs:
            program = entities.programs[0]
            if entities.semesters:
                context.summary = f"Materias del semestre {entities.semesters[0]} del programa {program}"
            else:
                context.summary = f"Información del programa {program}"
        elif Endpoint.PROGRAMS in endpoints:
            if entities.faculties:
                context.summary = (
                    f"Programas académicos de la {entities.faculties[0]}: {len(context.programs)} encontrados"
                )
            else:
                context.summary = f"Lista de {len(context.programs)} programas académicos disponibles"

        if context.programs and self.needs_program_document(entities):
            # The planner searches by a name prefix; pick the closest match
            best = max(context.programs, key=lambda p: similarity(p.get("name") or "", entities.programs[0]))
            context.program_document = await asyncio.to_thread(self.load_program_document, best["program_id"])

        return context
