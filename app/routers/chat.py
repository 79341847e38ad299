from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional, Dict, Any
from functools import lru_cache
from app.database import get_db
from app.config import settings
from app.services.academic_data_service import AcademicDataService
from app.services.chat_history_service import ChatHistoryService
from app.services.chat_service import ChatService
from app.services.context_assembler import ContextAssembler
from app.services.entity_extractor import EntityExtractor
from app.services.grounding_engine import GroundingEngine, database_scope
from app.services.openai_service import OpenAIService
from app.services.query_planner import QueryPlanner
from app.services.session_store import SessionContextStore
import logging
import uuid

logger = logging.getLogger(__name__)

router = APIRouter()

# One session memory per process
session_store = SessionContextStore(ttl_seconds=settings.SESSION_TTL_SECONDS)

class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=1000)
    session_id: Optional[str] = None

    @field_validator('message', mode='before')
    @classmethod
    def strip_message(cls, v):
        return v.strip() if isinstance(v, str) else v

class ChatResponse(BaseModel):
    session_id: str
    response: str
    intents: List[str] = []
    sources: List[str] = []
    context_chars: int = 0
    context_truncated: bool = False

class SessionResponse(BaseModel):
    session_id: str

class HistoryResponse(BaseModel):
    session_id: str
    messages: List[Dict[str, Any]]

@lru_cache
def get_openai_service() -> OpenAIService:
    return OpenAIService()

def build_engine(db: Session, ai: Optional[OpenAIService] = None, known_programs: Optional[List[str]] = None) -> GroundingEngine:
    """Wire a grounding engine over one request's DB session"""
    return GroundingEngine(
        extractor=EntityExtractor(
            ai=ai if settings.AI_ENTITY_EXTRACTION_ENABLED else None,
            known_programs=known_programs,
        ),
        sessions=session_store,
        planner=QueryPlanner(
            ai=ai if settings.AI_QUERY_PLANNING_ENABLED else None,
            max_results=settings.MAX_API_RESULTS,
        ),
        data_scope=database_scope,
        history_provider=ChatHistoryService(db),
        assembler=ContextAssembler(
            max_context_tokens=settings.MAX_CONTEXT_TOKENS,
            document_budget=settings.DOCUMENT_EXCERPT_CHARS,
            max_api_results=settings.MAX_API_RESULTS,
        ),
        use_ai_planning=settings.AI_QUERY_PLANNING_ENABLED,
        max_history_messages=settings.MAX_HISTORY_MESSAGES,
    )

def get_chat_service(db: Session = Depends(get_db)) -> ChatService:
    """Chat path only: the program catalog feeds the extractor's fallback"""
    ai = get_openai_service()
    known_programs = AcademicDataService(db).list_programs_with_curriculum()
    engine = build_engine(db, ai=ai, known_programs=known_programs)
    return ChatService(engine=engine, generator=ai, history=engine.history_provider)

@router.post("/session", response_model=SessionResponse)
async def create_session():
    return SessionResponse(session_id=str(uuid.uuid4()))

@router.post("", response_model=ChatResponse)
async def chat(request: ChatRequest, chat_service: ChatService = Depends(get_chat_service)):
    """Answer one user message, grounded in the academic data"""
    session_id = request.session_id or str(uuid.uuid4())
    logger.info(f"Chat message for session {session_id}: {len(request.message)} chars")

    reply = await chat_service.reply(session_id, request.message)
    return ChatResponse(
        session_id=reply.session_id,
        response=reply.response,
        intents=reply.intents,
        sources=reply.sources,
        context_chars=reply.context_chars,
        context_truncated=reply.context_truncated,
    )

@router.get("/{session_id}/history", response_model=HistoryResponse)
async def get_history(session_id: str, limit: int = Query(50, ge=1, le=500), db: Session = Depends(get_db)):
    messages = ChatHistoryService(db).get_history(session_id, limit)
    if not messages:
        raise HTTPException(status_code=404, detail="Session not found")
    return HistoryResponse(session_id=session_id, messages=messages)

@router.delete("/{session_id}")
async def delete_session(session_id: str, db: Session = Depends(get_db)):
    engine = build_engine(db)
    engine.reset_session(session_id)
    deleted = engine.history_provider.clear(session_id)
    return {"session_id": session_id, "deleted_messages": deleted}
