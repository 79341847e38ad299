"""
Chat History Service - stores and reads conversation transcripts
"""
import logging
from typing import Dict, List

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models import ChatMessage, MessageRole
from app.services.errors import DataProviderError

logger = logging.getLogger(__name__)


class ChatHistoryService:
    def __init__(self, db: Session):
        self.db = db

    def get_history(self, session_id: str, limit: int = 10) -> List[Dict[str, str]]:
        """Last `limit` messages of the session, oldest first"""
        try:
            rows = (
                self.db.query(ChatMessage)
                .filter(ChatMessage.session_id == session_id)
                .order_by(ChatMessage.id.desc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Error loading history for session {session_id}: {e}")
            raise DataProviderError("could not load chat history") from e
        return [row.to_dict() for row in reversed(rows)]

    def add_message(self, session_id: str, role: MessageRole, content: str) -> None:
        try:
            self.db.add(ChatMessage(session_id=session_id, role=MessageRole(role).value, content=content))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error saving message for session {session_id}: {e}")
            raise DataProviderError("could not save chat message") from e

    def clear(self, session_id: str) -> int:
        try:
            deleted = self.db.query(ChatMessage).filter(ChatMessage.session_id == session_id).delete()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error clearing history for session {session_id}: {e}")
            raise DataProviderError("could not clear chat history") from e
        return deleted

    def count_sessions(self) -> int:
        try:
            return self.db.query(func.count(func.distinct(ChatMessage.session_id))).scalar() or 0
        except SQLAlchemyError as e:
            logger.error(f"Error counting chat sessions: {e}")
            raise DataProviderError("could not count chat sessions") from e
