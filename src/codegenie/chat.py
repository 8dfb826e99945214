"""Conversation lifecycle: start, send, update, list, get, delete."""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field

from .client import ChatClient
from .guardrail import GuardrailClassifier
from .models import (
    DEFAULT_STRATEGY_ANCHOR,
    MODE_COUNTEREXAMPLE,
    MODE_SOLUTION,
    ROLE_ASSISTANT,
    ROLE_SYSTEM,
    ROLE_USER,
    STATUS_ONGOING,
    STATUS_RESOLVED,
    Conversation,
    Message,
    ProblemSpec,
    mode_is,
    utc_now,
)
from .parsing import extract_strategy_update
from .prompts import PromptStrategyRegistry, build_context
from .repository import ConversationRepository
from .verifier import CounterexampleVerifier

logger = logging.getLogger(__name__)

HISTORY_WINDOW = 10
CONTEXT_PREFIX = "Context Info:\n"

_STATUS_ORDER = {STATUS_ONGOING: 0, STATUS_RESOLVED: 1}


class ConversationNotFoundError(LookupError):
    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id


class InvalidUpdateError(ValueError):
    """Raised when a metadata update would break a conversation invariant."""


@dataclass(frozen=True)
class ConversationPatch:
    """Partial metadata update; `None` means "leave unchanged"."""

    problem_text: str | None = None
    user_code: str | None = None
    code_language: str | None = None
    problem_spec: ProblemSpec | None = None
    platform: str | None = None
    problem_url: str | None = None
    title: str | None = None
    category: str | None = None
    topics: list[str] | None = field(default=None)
    status: str | None = None
    mode: str | None = None

    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in self.__dataclass_fields__)


def greeting_for(mode: str) -> str:
    return f"안녕하세요! {mode} 모드로 도와드리겠습니다."


def default_title(mode: str) -> str:
    return f"새로운 대화 ({mode})"


def history_window(messages: Iterable[Message], size: int = HISTORY_WINDOW) -> list[dict[str, str]]:
    recent = list(messages)[-size:] if size > 0 else []
    return [{"role": message.role, "content": message.content} for message in recent if message.content is not None]


class DialogueService:
    """Runs mentor conversations on top of a repository, the model gateway and the verifier."""

    def __init__(
        self,
        repository: ConversationRepository,
        client: ChatClient,
        *,
        guardrail: GuardrailClassifier | None = None,
        registry: PromptStrategyRegistry | None = None,
        verifier: CounterexampleVerifier | None = None,
        history_size: int = HISTORY_WINDOW,
    ) -> None:
        self.repository = repository
        self.client = client
        self.guardrail = guardrail or GuardrailClassifier(client)
        self.registry = registry or PromptStrategyRegistry()
        self.verifier = verifier or CounterexampleVerifier(client)
        self.history_size = history_size
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, conversation_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(conversation_id)
            if lock is None:
                # Only stored conversations get a lock; unknown ids never grow the table.
                if self.repository.find_by_id(conversation_id) is None:
                    raise ConversationNotFoundError(conversation_id)
                lock = self._locks[conversation_id] = threading.Lock()
            return lock

    def start(
        self,
        mode: str,
        problem_text: str | None = None,
        user_code: str | None = None,
        title: str | None = None,
        user_id: str | None = None,
        *,
        code_language: str | None = None,
        platform: str | None = None,
        problem_url: str | None = None,
        problem_spec: ProblemSpec | None = None,
    ) -> Conversation:
        now = utc_now()
        conversation = Conversation(
            id=str(uuid.uuid4()),
            user_id=user_id,
            mode=mode,
            title=title or default_title(mode),
            problem_text=problem_text,
            problem_spec=problem_spec,
            user_code=user_code,
            code_language=code_language,
            platform=platform,
            problem_url=problem_url,
            status=STATUS_ONGOING,
            created_at=now,
            updated_at=now,
        )
        conversation.append(ROLE_ASSISTANT, greeting_for(mode))
        if mode_is(mode, MODE_SOLUTION):
            conversation.strategy = DEFAULT_STRATEGY_ANCHOR

        logger.info("Started %s conversation %s", mode, conversation.id)
        return self.repository.save(conversation)

    def get(self, conversation_id: str) -> Conversation:
        conversation = self.repository.find_by_id(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    def list(self, user_id: str | None = None) -> list[Conversation]:
        if user_id is None:
            return self.repository.find_all_ordered_by_updated_desc()
        return self.repository.find_by_user_id_ordered_by_updated_desc(user_id)

    def delete(self, conversation_id: str) -> bool:
        with self._locks_guard:
            self._locks.pop(conversation_id, None)
        return self.repository.delete_by_id(conversation_id)

    def build_chat(self, conversation: Conversation) -> list[dict[str, str]]:
        """Outbound turns: system prompt, optional context, then the recent history window."""

        messages = [{"role": ROLE_SYSTEM, "content": self.registry.system_prompt(conversation)}]
        context = build_context(conversation)
        if context:
            messages.append({"role": ROLE_USER, "content": CONTEXT_PREFIX + context})
        messages.extend(history_window(conversation.messages, self.history_size))
        return messages

    def send(self, conversation_id: str, user_text: str) -> Message:
        with self._lock_for(conversation_id):
            conversation = self.get(conversation_id)
            conversation.append(ROLE_USER, user_text)

            decision = self.guardrail.validate(conversation.mode, user_text)
            if not decision.allowed:
                reply = conversation.append(ROLE_ASSISTANT, decision.reason or "")
                conversation.touch()
                self.repository.save(conversation)
                return reply

            chat = self.build_chat(conversation)
            if mode_is(conversation.mode, MODE_COUNTEREXAMPLE):
                content = self.verifier.verify(
                    chat, code=conversation.user_code, language=conversation.code_language
                )
            else:
                content = self.client.chat(chat)

            if mode_is(conversation.mode, MODE_SOLUTION):
                content = self._apply_strategy_update(conversation, content)

            reply = conversation.append(ROLE_ASSISTANT, content.strip())
            conversation.touch()
            self.repository.save(conversation)
            return reply

    @staticmethod
    def _apply_strategy_update(conversation: Conversation, content: str) -> str:
        update = extract_strategy_update(content)
        if update.malformed:
            logger.warning("Ignoring malformed strategy tag in conversation %s", conversation.id)
        if update.anchor is not None:
            conversation.strategy = update.anchor
        return update.text

    def update(self, conversation_id: str, patch: ConversationPatch) -> Conversation:
        with self._lock_for(conversation_id):
            conversation = self.get(conversation_id)
            if patch.is_empty():
                return conversation

            if patch.status is not None:
                _check_status(conversation.status, patch.status)
                conversation.status = patch.status

            for name in (
                "problem_text",
                "user_code",
                "code_language",
                "problem_spec",
                "platform",
                "problem_url",
                "title",
                "category",
            ):
                value = getattr(patch, name)
                if value is not None:
                    setattr(conversation, name, value)
            if patch.topics is not None:
                conversation.topics = list(patch.topics)

            if patch.mode is not None:
                conversation.mode = patch.mode
                if mode_is(patch.mode, MODE_SOLUTION) and conversation.strategy is None:
                    conversation.strategy = DEFAULT_STRATEGY_ANCHOR

            conversation.touch()
            return self.repository.save(conversation)


def _check_status(current: str, requested: str) -> None:
    if requested not in _STATUS_ORDER:
        raise InvalidUpdateError(f"Unknown status: {requested}")
    if _STATUS_ORDER[requested] < _STATUS_ORDER.get(current, 0):
        raise InvalidUpdateError(f"Status cannot move from {current} back to {requested}")
