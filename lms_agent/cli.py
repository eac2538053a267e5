"""lms_agent/cli.py

Interactive terminal client for the LMS assistant.

Logs in (or uses ``LMS_AGENT_TOKEN``), keeps the running transcript locally,
posts it to ``/api/ai-agent/chat`` and renders the ``0:<json>`` fragment
stream live with Rich.
"""

from __future__ import annotations

# Standard Library
import json
import sys
from collections.abc import Iterable, Iterator
from typing import NoReturn

# Third-Party Libraries
import httpx
from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.console import Console
from rich.live import Live
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt
from rich.theme import Theme

custom_theme = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "bold red",
        "success": "bold green",
        "user": "bold blue",
        "assistant": "green",
    }
)
console = Console(theme=custom_theme)


class ClientSettings(BaseSettings):
    """Where the CLI finds the API and how it authenticates."""

    model_config = SettingsConfigDict(
        env_prefix="LMS_AGENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    url: str = Field("http://localhost:8300", description="Base URL of the API server.")
    token: str = Field("", description="Pre-issued bearer token; skips the login prompt.")
    timeout: float = Field(300.0, gt=0.0)


def decode_frame(line: str) -> str | None:
    """Return the fragment carried by a ``0:<json-string>`` line, else ``None``."""
    if not line.startswith("0:"):
        return None
    try:
        fragment = json.loads(line[2:])
    except json.JSONDecodeError:
        return None
    return fragment if isinstance(fragment, str) else None


def iter_fragments(lines: Iterable[str]) -> Iterator[str]:
    for line in lines:
        fragment = decode_frame(line)
        if fragment is not None:
            yield fragment


class AgentClient:
    """Thin HTTP client holding the token and the conversation transcript."""

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 300.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.http = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)
        self.token = token
        self.messages: list[dict[str, str]] = []

    def login(self, email: str, password: str) -> dict[str, str]:
        """Exchange credentials for a token.

        Raises:
            httpx.HTTPStatusError: If the credentials are rejected.
        """
        response = self.http.post("/api/auth/login", json={"email": email, "password": password})
        response.raise_for_status()
        body = response.json()
        self.token = body["token"]
        return body["user"]

    def send(self, text: str) -> Iterator[str]:
        """Post ``text`` with the running transcript and yield reply fragments.

        The assistant's full reply is appended to the transcript once the
        stream ends.
        """
        self.messages.append({"role": "user", "content": text})
        reply: list[str] = []
        with self.http.stream(
            "POST",
            "/api/ai-agent/chat",
            json={"messages": self.messages},
            headers={"Authorization": f"Bearer {self.token}"},
        ) as response:
            if response.status_code != 200:
                response.read()
                self.messages.pop()
                raise RuntimeError(_error_message(response))
            for fragment in iter_fragments(response.iter_lines()):
                reply.append(fragment)
                yield fragment
        self.messages.append({"role": "assistant", "content": "".join(reply)})

    def clear(self) -> None:
        self.messages.clear()

    def close(self) -> None:
        self.http.close()


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}: {response.text}"
    parts = [str(body.get(key)) for key in ("message", "detail", "error", "help") if body.get(key)]
    return f"HTTP {response.status_code}: " + " | ".join(parts)


def display_help() -> None:
    """Display available commands and usage information."""
    help_text = """
**Available Commands:**

- `/help` - Show this help message
- `/clear` - Start a new conversation
- `/quit` or `/exit` - Exit

**Examples:**

- How many students are there?
- Create a section "Section C" for B.Tech ECE, batch 2025-2029
- Add a professor Sarah Lee, sarah@college.edu
    """
    console.print(Panel(Markdown(help_text), title="Help", border_style="cyan"))


def main() -> NoReturn:
    """Main entry point for the assistant CLI."""
    load_dotenv()
    settings = ClientSettings()
    client = AgentClient(settings.url, token=settings.token, timeout=settings.timeout)

    console.print(f"LMS Assistant @ {settings.url}", style="info")
    if not client.token:
        email = Prompt.ask("[bold blue]Email[/bold blue]").strip()
        password = Prompt.ask("[bold blue]Password[/bold blue]", password=True)
        try:
            user = client.login(email, password)
        except httpx.HTTPError as exc:
            console.print(f"Login failed: {exc}", style="error")
            sys.exit(1)
        console.print(f"Signed in as {user['name']} ({user['role']})\n", style="success")

    console.print("Type [bold]/help[/bold] for commands, or start chatting!\n", style="info")

    while True:
        try:
            user_input = Prompt.ask("[bold blue]You[/bold blue]").strip()
            if not user_input:
                continue

            command = user_input.lower()
            if command in ["/quit", "/exit"]:
                console.print("\nGoodbye!\n", style="success")
                client.close()
                sys.exit(0)
            elif command == "/help":
                display_help()
                continue
            elif command == "/clear":
                client.clear()
                console.print("Conversation cleared.\n", style="success")
                continue

            reply = ""
            with Live(console=console, refresh_per_second=12) as live:
                for fragment in client.send(user_input):
                    reply += fragment
                    live.update(
                        Panel(
                            Markdown(reply),
                            title="[bold green]Assistant[/bold green]",
                            border_style="green",
                        )
                    )
            console.print()

        except KeyboardInterrupt:
            console.print("\n\nInterrupted. Goodbye!\n", style="warning")
            client.close()
            sys.exit(0)

        except (httpx.HTTPError, RuntimeError) as exc:
            console.print(f"\nError: {exc}\n", style="error")
            console.print("You can continue chatting or type /quit to exit.\n", style="info")


if __name__ == "__main__":
    main()
