"""CodeGenie mentor service package."""

from .chat import DialogueService
from .client import OpenAICompatChatClient
from .sandbox import SandboxPolicy, SandboxRunner
from .verifier import CounterexampleVerifier

__all__ = [
    "DialogueService",
    "OpenAICompatChatClient",
    "SandboxPolicy",
    "SandboxRunner",
    "CounterexampleVerifier",
]
