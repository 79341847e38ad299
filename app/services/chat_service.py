"""
Chat service - turns a processed turn into the assistant's reply:
canned greeting/farewell, admissions guidance, or a generated answer
grounded in the assembled context.
"""
import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import List

from app.config import settings
from app.models import MessageRole
from app.services.ai_capabilities import ResponseGenerator
from app.services.chat_history_service import ChatHistoryService
from app.services.entity_schema import AcademicContext, Intent, TurnResult
from app.services.grounding_engine import GroundingEngine

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = "Base de conocimiento local"
ADMISSIONS_SOURCE = f"Proceso de Admisión - {settings.UNIVERSITY_NAME}"

GREETING_REPLY = (
    f"¡Hola! 👋 Soy UConnect, tu asistente virtual de la {settings.UNIVERSITY_NAME}. "
    "Puedo ayudarte con información sobre:\n\n"
    "📚 **Programas académicos** - Carreras disponibles\n"
    "📋 **Pensum** - Materias por semestre\n"
    "🏛️ **Facultades** - Información de facultades\n"
    "📝 **Proceso de admisión** - Puntajes y simulador\n\n"
    "¿En qué puedo ayudarte hoy?"
)

FAREWELL_REPLY = (
    "¡Hasta pronto! 👋 Fue un gusto ayudarte. "
    f"Si tienes más preguntas sobre la {settings.UNIVERSITY_NAME}, no dudes en volver. "
    "¡Éxitos en tu camino académico! 🎓"
)


def admissions_info(simulator_url: str, scores_url: str) -> str:
    """Fixed admissions answer used when no program is known"""
    return (
        f"## 📝 Proceso de Admisión - {settings.UNIVERSITY_NAME}\n\n"
        "El ingreso se realiza mediante un **proceso de selección basado en los resultados de las Pruebas Saber 11 (ICFES)**. "
        "Cada programa asigna **pesos diferentes** a las áreas evaluadas, por lo que el **promedio ponderado** "
        "varía según la carrera a la que aspires.\n\n"
        "### 🧮 ¿Cómo calcular tu puntaje?\n"
        f"• 📊 [**Simulador de Promedio Ponderado por Programa**]({simulator_url})\n\n"
        "### 📋 ¿Cuáles son los puntajes de referencia?\n"
        f"• 📈 [**Puntajes de Referencia**]({scores_url})\n\n"
        "### 💡 Recomendación\n"
        "1. Ingresa tus puntajes del ICFES en el **simulador**\n"
        "2. Compara tu resultado con los **puntajes de referencia** del programa que te interesa\n"
    )


def admissions_guidance(program: str, simulator_url: str, scores_url: str) -> str:
    """Admissions facts added to the context when a program is known"""
    return (
        f"Información de admisión para el programa {program}\n\n"
        "PROCESO DE ADMISIÓN: la selección se basa en los resultados de las Pruebas Saber 11 (ICFES), "
        f"con pesos por área propios del programa {program}.\n"
        f"Simulador de promedio ponderado: {simulator_url}\n"
        f"Puntajes de referencia por programa y jornada: {scores_url}"
    )


def admissions_links(simulator_url: str, scores_url: str) -> str:
    return (
        "\n\n---\n"
        f"📊 [**Simulador de Promedio Ponderado**]({simulator_url})\n"
        f"📈 [**Puntajes de Referencia**]({scores_url})"
    )


def collect_sources(context: AcademicContext) -> List[str]:
    """Data categories that grounded the answer"""
    sources = []
    if context.faculties:
        sources.append("Datos de Facultades")
    if context.programs:
        sources.append("Datos de Programas Académicos")
    if context.courses:
        sources.append(f"Pensum {context.courses[0].get('curriculum_code') or 'actualizado'}")
    if context.program_document and context.program_document.get("program_name"):
        sources.append(f"PEP {context.program_document['program_name']}")
    if "admisión" in context.summary:
        sources.append(ADMISSIONS_SOURCE)
    return sources or [DEFAULT_SOURCE]


@dataclass
class ChatReply:
    session_id: str
    response: str
    intents: List[str] = field(default_factory=list)
    sources: List[str] = field(default_factory=list)
    context_chars: int = 0
    context_truncated: bool = False


class ChatService:
    def __init__(
        self,
        engine: GroundingEngine,
        generator: ResponseGenerator,
        history: ChatHistoryService,
        simulator_url: str = settings.ADMISSIONS_SIMULATOR_URL,
        scores_url: str = settings.ADMISSIONS_REFERENCE_SCORES_URL,
    ):
        self.engine = engine
        self.generator = generator
        self.history = history
        self.simulator_url = simulator_url
        self.scores_url = scores_url

    async def reply(self, session_id: str, message: str) -> ChatReply:
        turn = await self.engine.process_turn(session_id, message)
        await asyncio.to_thread(self.history.add_message, session_id, MessageRole.USER, message)

        response, sources, assembled = await self.compose(turn, message)

        await asyncio.to_thread(self.history.add_message, session_id, MessageRole.ASSISTANT, response)
        return ChatReply(
            session_id=session_id,
            response=response,
            intents=[intent.value for intent in turn.entities.intents],
            sources=sources,
            context_chars=assembled.total_chars,
            context_truncated=assembled.truncated,
        )

    async def compose(self, turn: TurnResult, message: str):
        """Returns (response, sources, assembled context actually used)"""
        entities = turn.entities
        assembled = turn.assembled_context

        if entities.has_intent(Intent.GREETING):
            return GREETING_REPLY, [], assembled
        if entities.has_intent(Intent.FAREWELL):
            return FAREWELL_REPLY, [], assembled

        if entities.has_intent(Intent.ADMISSIONS_INFO):
            if not entities.programs:
                return admissions_info(self.simulator_url, self.scores_url), [ADMISSIONS_SOURCE], assembled

            guidance = admissions_guidance(entities.programs[0], self.simulator_url, self.scores_url)
            academic = replace(turn.academic_context, summary=guidance)
            assembled = self.engine.assembler.assemble(academic, message, turn.history)
            answer = await asyncio.to_thread(self.generator.generate, assembled.text, message, list(turn.history))
            if self.simulator_url not in answer:
                answer += admissions_links(self.simulator_url, self.scores_url)
            sources = [ADMISSIONS_SOURCE] + [s for s in collect_sources(academic) if s != ADMISSIONS_SOURCE]
            return answer, sources, assembled

        answer = await asyncio.to_thread(self.generator.generate, assembled.text, message, list(turn.history))
        return answer, collect_sources(turn.academic_context), assembled
