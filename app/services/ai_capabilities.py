"""
Capability interfaces for the optional AI-assisted paths.
Rule-based extraction and planning take these as injected dependencies;
NullAI turns the AI paths off.
"""
import re
import json
from typing import Dict, List, Optional
from abc import ABC, abstractmethod


class EntityExtractorAI(ABC):
    """Extracts entities from raw text"""

    @abstractmethod
    def extract_entities(self, text: str) -> Optional[str]:
        """Return the raw JSON reply, or None when there is no contribution"""
        pass


class PlanOptimizerAI(ABC):
    """Proposes a query plan for a prompt describing the turn"""

    @abstractmethod
    def optimize_query_plan(self, prompt: str) -> Optional[str]:
        """Return the raw JSON reply, or None when there is no contribution"""
        pass


class ResponseGenerator(ABC):
    """Writes the final answer from the assembled context"""

    @abstractmethod
    def generate(self, context: str, question: str, history: List[Dict[str, str]]) -> str:
        pass


class NullAI(EntityExtractorAI, PlanOptimizerAI):
    """No-op capability for pure rule-based operation"""

    def extract_entities(self, text: str) -> Optional[str]:
        return None

    def optimize_query_plan(self, prompt: str) -> Optional[str]:
        return None


def parse_json_reply(content: str) -> Dict:
    """
    Parse the JSON object out of a model reply.
    Raises json.JSONDecodeError / ValueError when no object can be read.
    """
    content = content.strip()
    # Remove markdown code blocks
    if content.startswith("```json"):
        content = content[7:]
    if content.startswith("```"):
        content = content[3:]
    if content.endswith("```"):
        content = content[:-3]
    content = content.strip()

    match = re.search(r"\{.*\}", content, re.DOTALL)
    if not match:
        raise ValueError("No JSON object found in model reply")
    parsed = json.loads(match.group(0))
    if not isinstance(parsed, dict):
        raise ValueError("Model reply is not a JSON object")
    return parsed
