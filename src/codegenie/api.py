"""HTTP surface for the mentor service."""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from .chat import ConversationNotFoundError, ConversationPatch, DialogueService, InvalidUpdateError
from .models import Example, ProblemSpec, TestCase
from .sandbox import SandboxRunner

logger = logging.getLogger(__name__)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExampleBody(_CamelModel):
    input: str = ""
    output: str = ""
    explanation: Optional[str] = None
    is_user_defined: bool = False


class ProblemSpecBody(_CamelModel):
    source: str = "RAW"
    source_id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    input_format: Optional[str] = None
    output_format: Optional[str] = None
    constraints: Optional[str] = None
    time_limit: Optional[str] = None
    memory_limit: Optional[str] = None
    examples: list[ExampleBody] = []

    @field_validator("source_id", "time_limit", "memory_limit", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    def to_spec(self) -> ProblemSpec:
        return ProblemSpec(
            source=self.source.upper(),
            source_id=self.source_id,
            title=self.title,
            description=self.description,
            input_format=self.input_format,
            output_format=self.output_format,
            constraints=self.constraints,
            time_limit=self.time_limit,
            memory_limit=self.memory_limit,
            examples=tuple(
                Example(
                    input=example.input,
                    output=example.output,
                    explanation=example.explanation,
                    is_user_defined=example.is_user_defined,
                )
                for example in self.examples
            ),
        )


class StartChatRequest(_CamelModel):
    mode: str
    problem_text: Optional[str] = None
    user_code: Optional[str] = None
    title: Optional[str] = None
    code_language: Optional[str] = None
    platform: Optional[str] = None
    problem_url: Optional[str] = None
    problem_spec: Optional[ProblemSpecBody] = None


class SendMessageRequest(_CamelModel):
    conversation_id: str
    content: str = ""


class UpdateConversationRequest(_CamelModel):
    problem_text: Optional[str] = None
    user_code: Optional[str] = None
    code_language: Optional[str] = None
    problem_spec: Optional[ProblemSpecBody] = None
    platform: Optional[str] = None
    problem_url: Optional[str] = None
    title: Optional[str] = None
    category: Optional[str] = None
    topics: Optional[list[str]] = None
    status: Optional[str] = None
    mode: Optional[str] = None

    def to_patch(self) -> ConversationPatch:
        return ConversationPatch(
            problem_text=self.problem_text,
            user_code=self.user_code,
            code_language=self.code_language,
            problem_spec=self.problem_spec.to_spec() if self.problem_spec else None,
            platform=self.platform,
            problem_url=self.problem_url,
            title=self.title,
            category=self.category,
            topics=self.topics,
            status=self.status,
            mode=self.mode,
        )


class TestCaseBody(_CamelModel):
    __test__ = False

    input: str = ""
    expected_output: str = ""


class ExecuteRequest(_CamelModel):
    language: str
    code: str
    test_cases: Optional[list[TestCaseBody]] = None


def success(data: Any = None, message: str | None = None) -> dict[str, Any]:
    return {"status": "success", "message": message, "data": data}


def failure(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": "error", "message": message})


def create_app(service: DialogueService, runner: SandboxRunner | None = None) -> FastAPI:
    """Build the application around an already-wired dialogue service."""

    runner = runner or SandboxRunner()
    app = FastAPI(title="CodeGenie")

    @app.exception_handler(ConversationNotFoundError)
    async def _not_found(request: Request, exc: ConversationNotFoundError) -> JSONResponse:
        return failure(str(exc), 404)

    @app.exception_handler(InvalidUpdateError)
    async def _invalid_update(request: Request, exc: InvalidUpdateError) -> JSONResponse:
        return failure(str(exc), 400)

    @app.exception_handler(Exception)
    async def _internal_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return failure(str(exc), 500)

    @app.post("/api/chat/start")
    def start_chat(body: StartChatRequest, x_user_id: Optional[str] = Header(default=None)) -> dict[str, Any]:
        conversation = service.start(
            body.mode,
            body.problem_text,
            body.user_code,
            body.title,
            x_user_id,
            code_language=body.code_language,
            platform=body.platform,
            problem_url=body.problem_url,
            problem_spec=body.problem_spec.to_spec() if body.problem_spec else None,
        )
        return success(conversation.to_dict(), "대화가 시작되었습니다.")

    @app.post("/api/chat/message")
    def send_message(body: SendMessageRequest) -> dict[str, Any]:
        message = service.send(body.conversation_id, body.content)
        return success(message.to_dict())

    @app.get("/api/history")
    def history(x_user_id: Optional[str] = Header(default=None)) -> dict[str, Any]:
        return success([conversation.to_dict() for conversation in service.list(x_user_id)])

    @app.get("/api/history/{conversation_id}")
    def conversation_detail(conversation_id: str) -> dict[str, Any]:
        return success(service.get(conversation_id).to_dict())

    @app.put("/api/chat/{conversation_id}")
    def update_conversation(conversation_id: str, body: UpdateConversationRequest) -> dict[str, Any]:
        conversation = service.update(conversation_id, body.to_patch())
        return success(conversation.to_dict())

    @app.delete("/api/chat/{conversation_id}")
    def delete_conversation(conversation_id: str) -> dict[str, Any]:
        if not service.delete(conversation_id):
            raise ConversationNotFoundError(conversation_id)
        return success(message="대화가 삭제되었습니다.")

    @app.post("/api/execute")
    def execute(body: ExecuteRequest) -> dict[str, Any]:
        cases = [TestCase(input=case.input, expected_output=case.expected_output) for case in body.test_cases or []]
        return runner.execute(body.language, body.code, cases).to_dict()

    return app
