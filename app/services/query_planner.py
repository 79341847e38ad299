"""
Query Planner - turns extracted entities into at most three data-fetch calls
against the academic data provider.
"""
import json
import logging
from typing import List, Optional

from app.services.ai_capabilities import PlanOptimizerAI, NullAI, parse_json_reply
from app.services.entity_schema import ApiCall, Endpoint, ExtractedEntities, Intent, PlanStrategy, QueryPlan
from app.services.errors import CollaboratorUnavailableError
from app.services.text_utils import extract_keywords, normalize

logger = logging.getLogger(__name__)

MAX_CALLS = 3
PROGRAM_PREFIX_LENGTH = 6

FACULTY_PRIORITY = 1
PROGRAM_PRIORITY = 2
CURRICULUM_PRIORITY = 3
FALLBACK_PRIORITY = 1

PLAN_OPTIMIZATION_PROMPT = """Given the user's message and the entities already extracted, propose the data lookups needed to answer it.

Message: "{message}"
Entities:
{entities}

Available endpoints:
- faculties: params {{"name": string}}
- programs: params {{"program_name": string, "faculty_name": string}}
- curriculum: params {{"program_name": string, "semester": string, "course_name": string, "schedule_track": string}}

Output ONLY valid JSON:
{{"calls": [{{"endpoint": "faculties" | "programs" | "curriculum", "params": {{}}, "priority": number}}], "strategy": "PARALLEL" | "SEQUENTIAL", "result_cap": number}}"""


class QueryPlanner:
    """Rule-based planner with optional AI-proposed plans"""

    def __init__(self, ai: Optional[PlanOptimizerAI] = None, max_results: int = 50):
        self.ai = ai or NullAI()
        self.max_results = max_results

    def build_plan(self, entities: ExtractedEntities) -> QueryPlan:
        """Apply the planning rules in order; each rule adds at most one call"""
        if entities.is_conversational:
            return QueryPlan(calls=(), strategy=PlanStrategy.SEQUENTIAL, result_cap=0)

        calls: List[ApiCall] = []
        faculty = entities.faculties[0] if entities.faculties else None
        program = entities.programs[0] if entities.programs else None

        if entities.has_intent(Intent.LIST_FACULTIES, Intent.FACULTY_INFO) or faculty:
            params = {"name": faculty} if faculty else {}
            calls.append(ApiCall(Endpoint.FACULTIES, params, FACULTY_PRIORITY))

        if entities.has_intent(Intent.LIST_PROGRAMS, Intent.PROGRAM_INFO) or program:
            params = {}
            if program:
                # A short prefix tolerates naming differences between the extractor and the catalog
                params["program_name"] = normalize(program)[:PROGRAM_PREFIX_LENGTH]
            if faculty:
                params["faculty_name"] = faculty
            calls.append(ApiCall(Endpoint.PROGRAMS, params, PROGRAM_PRIORITY))

        if (
            entities.has_intent(Intent.COURSE_INFO, Intent.CURRICULUM_INFO, Intent.LIST_COURSES, Intent.CREDITS)
            or entities.courses
            or (program and entities.semesters)
        ):
            params = {}
            if program:
                params["program_name"] = program
            if entities.semesters:
                params["semester"] = entities.semesters[0]
            if entities.courses:
                params["course_name"] = entities.courses[0]
            if entities.schedule_tracks:
                params["schedule_track"] = entities.schedule_tracks[0]
            calls.append(ApiCall(Endpoint.CURRICULUM, params, CURRICULUM_PRIORITY))

        if not calls and entities.raw_query.strip():
            keywords = extract_keywords(entities.raw_query) or normalize(entities.raw_query).split()
            if keywords:
                calls.append(ApiCall(Endpoint.PROGRAMS, {"program_name": keywords[0]}, FALLBACK_PRIORITY))

        return self._finalize(calls, self.max_results)

    @staticmethod
    def _finalize(calls: List[ApiCall], result_cap: int) -> QueryPlan:
        ordered = sorted(calls, key=lambda call: call.priority)[:MAX_CALLS]
        strategy = PlanStrategy.PARALLEL if len(ordered) > 1 else PlanStrategy.SEQUENTIAL
        return QueryPlan(calls=tuple(ordered), strategy=strategy, result_cap=result_cap)

    def validate_plan(self, data: dict) -> QueryPlan:
        """
        Sanitize an AI-proposed plan: unknown endpoints are dropped and missing
        priorities default to position. Calls are then ordered and capped like a
        rule-based plan, so the strategy follows the call count. A result cap that
        is missing or not positive becomes the configured maximum.
        Raises ValueError/TypeError on bad shape.
        """
        raw_calls = data.get("calls", data.get("apis"))
        if not isinstance(raw_calls, list):
            raise ValueError("Plan has no call list")

        calls: List[ApiCall] = []
        for raw in raw_calls:
            if not isinstance(raw, dict):
                continue
            try:
                endpoint = Endpoint(str(raw.get("endpoint", "")).strip().lower())
            except ValueError:
                continue
            params = raw.get("params") or {}
            if not isinstance(params, dict):
                raise TypeError("Call params must be an object")
            calls.append(ApiCall(
                endpoint=endpoint,
                params={str(key): str(value) for key, value in params.items() if value not in (None, "")},
                priority=int(raw.get("priority") or len(calls) + 1),
            ))

        result_cap = int(data.get("result_cap") or 0)
        # A negative cap would slice rows off the end of the provider's results
        if result_cap <= 0:
            result_cap = self.max_results
        return self._finalize(calls, min(result_cap, self.max_results))

    def optimize_plan(self, entities: ExtractedEntities) -> QueryPlan:
        """Ask the AI for a plan; any failure falls back to the rule-based plan"""
        if entities.is_conversational:
            return self.build_plan(entities)

        prompt = PLAN_OPTIMIZATION_PROMPT.format(
            message=entities.raw_query,
            entities=json.dumps(entities.to_dict(), ensure_ascii=False, indent=2),
        )
        try:
            reply = self.ai.optimize_query_plan(prompt)
            if reply is None:
                return self.build_plan(entities)
            plan = self.validate_plan(parse_json_reply(reply))
        except (ValueError, KeyError, TypeError, CollaboratorUnavailableError) as e:
            logger.warning(f"AI query planning failed, using rule-based plan: {e}")
            return self.build_plan(entities)

        if not plan.calls:
            return self.build_plan(entities)
        return plan
