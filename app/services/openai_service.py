from openai import OpenAI
from openai import APIConnectionError, APITimeoutError, OpenAIError, RateLimitError
from app.config import settings
from app.services.ai_capabilities import EntityExtractorAI, PlanOptimizerAI, ResponseGenerator
from app.services.entity_schema import Intent
from app.services.errors import GenerationError
from typing import List, Dict, Optional
import logging
import re
import time

logger = logging.getLogger(__name__)

THINK_BLOCK_PATTERN = re.compile(r"<think>.*?</think>", re.DOTALL)

SYSTEM_PROMPT = f"""Eres UConnect, el asistente virtual oficial de la {settings.UNIVERSITY_NAME}. Ayudas a aspirantes y estudiantes con información sobre facultades, programas académicos, pensum (materias, créditos, semestres), jornadas y el proceso de admisión.

REGLAS:
1. Responde SOLO con la información del CONTEXTO ACADÉMICO; si no está, dilo claramente. NO inventes datos.
2. Sé específico con nombres, códigos, créditos y semestres.
3. Usa listas cuando enumeres programas o materias.
4. Para preguntas fuera de tu alcance, sugiere contactar la oficina de admisiones.
5. Responde en el idioma del estudiante."""

ENTITY_EXTRACTION_PROMPT = """Extract the academic entities from the student's message.

Message: "{message}"

Output ONLY valid JSON:
{{
  "faculties": ["faculty names mentioned"],
  "programs": ["program names mentioned, in Spanish and upper case"],
  "courses": ["course names mentioned"],
  "semesters": ["semester numbers 1-10"],
  "schedule_tracks": ["DIURNA" | "NOCTURNA" | "DISTANCIA" | "SABATINA"],
  "intents": [{intents}]
}}

Use empty arrays when nothing applies."""


def clean_model_response(content: Optional[str]) -> str:
    """Drop <think> reasoning blocks some local models emit"""
    return THINK_BLOCK_PATTERN.sub("", content or "").strip()


class OpenAIService(EntityExtractorAI, PlanOptimizerAI, ResponseGenerator):
    def __init__(self):
        # Any OpenAI-compatible server works through base_url
        self.client = OpenAI(
            api_key=settings.OPENAI_API_KEY,
            base_url=settings.OPENAI_BASE_URL,
            timeout=300.0,
            max_retries=0  # retries are handled in chat_completion
        )
        self.model = settings.OPENAI_MODEL
        self.extraction_model = settings.OPENAI_EXTRACTION_MODEL

    def chat_completion(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        max_retries: int = 3
    ) -> str:
        """Chat completion with retry logic; raises GenerationError when the service is unavailable"""
        for attempt in range(max_retries):
            try:
                response = self.client.chat.completions.create(
                    model=model or self.model,
                    messages=messages,
                    temperature=temperature,
                    max_tokens=max_tokens or settings.MAX_OUTPUT_TOKENS,
                )
                return response.choices[0].message.content or ""
            except (APIConnectionError, APITimeoutError) as e:
                if attempt < max_retries - 1:
                    wait_time = (2 ** attempt) * 2  # Exponential backoff: 2s, 4s, 8s
                    logger.warning(f"⚠️  OpenAI connection error (attempt {attempt + 1}/{max_retries}). Retrying in {wait_time}s...")
                    time.sleep(wait_time)
                else:
                    logger.error(f"❌ OpenAI connection failed after {max_retries} attempts")
                    raise GenerationError(str(e)) from e
            except RateLimitError as e:
                if attempt < max_retries - 1:
                    wait_time = 60  # Wait 60 seconds for rate limit
                    logger.warning(f"⚠️  OpenAI rate limit (attempt {attempt + 1}/{max_retries}). Waiting {wait_time}s...")
                    time.sleep(wait_time)
                else:
                    logger.error(f"❌ OpenAI rate limit exceeded after {max_retries} attempts")
                    raise GenerationError(str(e)) from e
            except OpenAIError as e:
                # For other errors, don't retry
                logger.error(f"❌ OpenAI API error: {str(e)}")
                raise GenerationError(str(e)) from e
        raise GenerationError("no attempts made")

    def extract_entities(self, text: str) -> Optional[str]:
        intents = ", ".join(f'"{intent.value}"' for intent in Intent)
        messages = [
            {"role": "system", "content": "You are an entity extraction assistant. Return JSON only."},
            {"role": "user", "content": ENTITY_EXTRACTION_PROMPT.format(message=text, intents=intents)}
        ]
        content = self.chat_completion(messages, model=self.extraction_model, temperature=0.0, max_tokens=500)
        return clean_model_response(content)

    def optimize_query_plan(self, prompt: str) -> Optional[str]:
        messages = [
            {"role": "system", "content": "You are a query planning assistant. Return JSON only."},
            {"role": "user", "content": prompt}
        ]
        content = self.chat_completion(messages, model=self.extraction_model, temperature=0.0, max_tokens=500)
        return clean_model_response(content)

    def generate(self, context: str, question: str, history: List[Dict[str, str]]) -> str:
        """Answer the question from the assembled academic context"""
        messages = [{"role": "system", "content": SYSTEM_PROMPT}]
        for message in history:
            if message.get("role") in ("user", "assistant") and message.get("content"):
                messages.append({"role": message["role"], "content": message["content"]})
        messages.append({
            "role": "user",
            "content": f"CONTEXTO ACADÉMICO:\n{context}\n\nPREGUNTA DEL ESTUDIANTE:\n{question}"
        })

        content = self.chat_completion(messages, temperature=settings.GENERATION_TEMPERATURE)
        answer = clean_model_response(content)
        logger.info(f"Generated answer: {len(answer)} chars")
        return answer
