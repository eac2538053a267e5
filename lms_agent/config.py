"""lms_agent/config.py

Runtime configuration for the LMS assistant, loaded from environment
variables and an optional ``.env`` file.
"""

from __future__ import annotations

# Third-Party Libraries
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AgentSettings(BaseSettings):
    """Settings shared by the agent loop, the HTTP endpoint and the CLI.

    Attributes:
        ollama_host: Base URL of the local Ollama server.
        ollama_model: Model tag used for both the decide and follow-up rounds.
        temperature: Sampling temperature for every completion request.
        num_predict: Token budget for the decide round.
        top_k: Top-k cutoff for the decide round.
        top_p: Nucleus cutoff for the decide round.
        follow_up_num_predict: Token budget for the streamed follow-up round.
        direct_emit_delay: Seconds between fragments when replaying a
            non-tool answer.
        direct_emit_chunk_size: Characters per fragment when replaying a
            non-tool answer.
        request_timeout: Optional timeout (seconds) for Ollama HTTP calls.
            ``None`` waits indefinitely.
        jwt_secret: HS256 signing secret for bearer tokens.
        jwt_algorithm: Token signing algorithm.
        jwt_expires_hours: Lifetime of issued tokens.
        api_host: Bind address for the API server.
        api_port: Bind port for the API server.
        cors_origins: Browser origins allowed to call the API.
        max_upload_bytes: Upper bound for roster uploads.
        seed_demo_data: Populate the in-memory store with demo accounts.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    ollama_host: str = Field(
        "http://localhost:11434",
        description="Base URL of the local Ollama server.",
    )
    ollama_model: str = Field(
        "qwen2.5:7b",
        description="Model tag with native tool-calling support.",
    )
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    num_predict: int = Field(2048, gt=0)
    top_k: int = Field(40, gt=0)
    top_p: float = Field(0.9, gt=0.0, le=1.0)
    follow_up_num_predict: int = Field(
        512,
        gt=0,
        description="Smaller budget for the natural-language follow-up.",
    )
    direct_emit_delay: float = Field(0.01, ge=0.0)
    direct_emit_chunk_size: int = Field(1, ge=1)
    request_timeout: float | None = Field(None, gt=0.0)

    jwt_secret: str = Field(
        "change-me",
        description="HS256 secret used to sign and verify bearer tokens.",
    )
    jwt_algorithm: str = "HS256"
    jwt_expires_hours: int = Field(24 * 30, gt=0)

    api_host: str = "0.0.0.0"
    api_port: int = 8300
    cors_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:5173",
            "http://localhost:5174",
        ],
    )
    max_upload_bytes: int = Field(10 * 1024 * 1024, gt=0)
    seed_demo_data: bool = False

    def decide_options(self) -> dict[str, float | int]:
        """Sampling options for the non-streaming decide round."""
        return {
            "temperature": self.temperature,
            "num_predict": self.num_predict,
            "top_k": self.top_k,
            "top_p": self.top_p,
        }

    def follow_up_options(self) -> dict[str, float | int]:
        """Sampling options for the streamed follow-up round."""
        return {
            "temperature": self.temperature,
            "num_predict": self.follow_up_num_predict,
        }
