"""lms_agent/errors.py

Exception types raised across the LMS assistant.

Recoverable domain failures (unknown course, duplicate email, ...) are never
exceptions: tools report them as ``"Error: ..."`` result strings so the model
can phrase them for the user. The classes below cover infrastructure and
request-level failures only.
"""

from __future__ import annotations


class AgentError(Exception):
    """Base class for all LMS assistant errors."""


class EngineUnavailableError(AgentError):
    """The Ollama server is unreachable or the configured model is missing."""

    def __init__(self, model: str, host: str) -> None:
        self.model = model
        self.host = host
        super().__init__(f"Model '{model}' is not available on {host}")


class StoreError(AgentError):
    """Generic failure inside the domain store."""


class DuplicateKeyError(StoreError):
    """A unique constraint (email, course code, section triple) was violated."""

    def __init__(self, entity: str, key: str) -> None:
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} with key {key!r} already exists")


class AuthError(AgentError):
    """Bearer-token authentication or role authorisation failed."""

    def __init__(self, message: str, status_code: int = 401) -> None:
        self.status_code = status_code
        super().__init__(message)


class RosterParseError(AgentError):
    """An uploaded roster file could not be parsed."""
