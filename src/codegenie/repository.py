"""Conversation storage backends."""

from __future__ import annotations

import copy
import threading
from typing import Protocol

from sqlalchemy import JSON, Column, DateTime, String, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Conversation


class ConversationRepository(Protocol):
    def save(self, conversation: Conversation) -> Conversation:
        ...

    def find_by_id(self, conversation_id: str) -> Conversation | None:
        ...

    def find_all_ordered_by_updated_desc(self) -> list[Conversation]:
        ...

    def find_by_user_id_ordered_by_updated_desc(self, user_id: str) -> list[Conversation]:
        ...

    def delete_by_id(self, conversation_id: str) -> bool:
        ...


def _newest_first(conversations: list[Conversation]) -> list[Conversation]:
    return sorted(conversations, key=lambda conversation: conversation.updated_at, reverse=True)


class InMemoryConversationRepository:
    """Process-local store with value semantics; the last writer wins."""

    def __init__(self) -> None:
        self._items: dict[str, Conversation] = {}
        self._lock = threading.Lock()

    def save(self, conversation: Conversation) -> Conversation:
        with self._lock:
            self._items[conversation.id] = copy.deepcopy(conversation)
        return conversation

    def find_by_id(self, conversation_id: str) -> Conversation | None:
        with self._lock:
            stored = self._items.get(conversation_id)
            return copy.deepcopy(stored) if stored is not None else None

    def find_all_ordered_by_updated_desc(self) -> list[Conversation]:
        with self._lock:
            items = [copy.deepcopy(item) for item in self._items.values()]
        return _newest_first(items)

    def find_by_user_id_ordered_by_updated_desc(self, user_id: str) -> list[Conversation]:
        with self._lock:
            items = [copy.deepcopy(item) for item in self._items.values() if item.user_id == user_id]
        return _newest_first(items)

    def delete_by_id(self, conversation_id: str) -> bool:
        with self._lock:
            return self._items.pop(conversation_id, None) is not None


Base = declarative_base()


class ConversationRecord(Base):
    __tablename__ = "conversations"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(128), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, index=True)
    document = Column(JSON, nullable=False)


class SqlAlchemyConversationRepository:
    """Stores each conversation as a JSON document keyed by id.

    Database errors are not caught here; callers see them as-is.
    """

    def __init__(self, database_url: str, *, create_tables: bool = True) -> None:
        kwargs: dict = {}
        if database_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in {"sqlite://", "sqlite:///:memory:"}:
                kwargs["poolclass"] = StaticPool

        self.engine = create_engine(database_url, **kwargs)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        if create_tables:
            Base.metadata.create_all(bind=self.engine)

    def save(self, conversation: Conversation) -> Conversation:
        record = ConversationRecord(
            id=conversation.id,
            user_id=conversation.user_id,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
            document=conversation.to_dict(),
        )
        with self._session_factory() as session:
            session.merge(record)
            session.commit()
        return conversation

    def find_by_id(self, conversation_id: str) -> Conversation | None:
        with self._session_factory() as session:
            record = session.get(ConversationRecord, conversation_id)
            return Conversation.from_dict(record.document) if record is not None else None

    def find_all_ordered_by_updated_desc(self) -> list[Conversation]:
        with self._session_factory() as session:
            records = session.query(ConversationRecord).order_by(ConversationRecord.updated_at.desc()).all()
            return [Conversation.from_dict(record.document) for record in records]

    def find_by_user_id_ordered_by_updated_desc(self, user_id: str) -> list[Conversation]:
        with self._session_factory() as session:
            records = (
                session.query(ConversationRecord)
                .filter(ConversationRecord.user_id == user_id)
                .order_by(ConversationRecord.updated_at.desc())
                .all()
            )
            return [Conversation.from_dict(record.document) for record in records]

    def delete_by_id(self, conversation_id: str) -> bool:
        with self._session_factory() as session:
            deleted = session.query(ConversationRecord).filter(ConversationRecord.id == conversation_id).delete()
            session.commit()
            return bool(deleted)


def build_repository(database_url: str | None) -> ConversationRepository:
    if not database_url:
        return InMemoryConversationRepository()
    return SqlAlchemyConversationRepository(database_url)
