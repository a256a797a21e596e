"""Terminal rendering for toolchat."""

from __future__ import annotations

import json
import threading

from prompt_toolkit import PromptSession
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console
from rich.markup import escape

from ..actions import ActionSchema
from ..conversation import ConversationEvent

PREVIEW_WIDTH = 400


def _preview(text: str, width: int = PREVIEW_WIDTH) -> str:
    text = text.rstrip()
    if len(text) <= width:
        return text
    return text[:width] + f"... ({len(text) - width} more chars)"


class Renderer:
    """Rich output plus a prompt_toolkit input line."""

    def __init__(self, console: Console | None = None) -> None:
        self.console: Console = console or Console()
        self._prompt_session: PromptSession[str] | None = None
        self._print_lock = threading.Lock()
        self._mid_line = False

    def info(self, message: str) -> None:
        self._print(message)

    def error(self, message: str) -> None:
        self._print(f"[bold red]Error:[/bold red] {escape(message)}")

    def welcome(self, model: str, actions: list[str]) -> None:
        self._print("[bold blue]toolchat[/bold blue] - ctrl-d to quit")
        self._print(f"[bold]Model:[/bold] [magenta]{model}[/magenta]")
        if actions:
            self._print(f"[bold]Actions:[/bold] [green]{', '.join(actions)}[/green]")

    def stream_text(self, text: str) -> None:
        with self._print_lock:
            self.console.print(text, end="", markup=False, highlight=False, soft_wrap=True)
            self._mid_line = True

    def assistant_message(self, message: str) -> None:
        self._end_line()
        self._print(escape(message))

    def action_call(self, name: str, arguments: str) -> None:
        self._end_line()
        self._print(f"[dim]-> {escape(name)} {escape(_preview(arguments, 120))}[/dim]")

    def action_result(self, name: str, content: str, ok: bool) -> None:
        style = "dim" if ok else "red"
        self._print(f"[{style}]<- {escape(name)}: {escape(_preview(content))}[/{style}]")

    def action_schema(self, schema: ActionSchema) -> None:
        self._print(f"[bold green]{schema.name}[/bold green]: {escape(schema.description)}")
        self._print(f"[dim]{escape(json.dumps(schema.parameters, indent=2))}[/dim]")

    def handle_event(self, event: ConversationEvent) -> None:
        """Render one conversation event."""
        if event.kind == "fragment":
            for choice in event.payload["fragment"].choices:
                if choice.delta.content:
                    self.stream_text(choice.delta.content)
        elif event.kind == "action_call":
            call = event.payload["call"]
            self.action_call(call.function.name, call.function.arguments)
        elif event.kind == "action_result":
            call = event.payload["call"]
            self.action_result(call.function.name, event.payload["content"], event.payload["ok"])
        elif event.kind == "answer":
            if event.payload["streamed"]:
                self._end_line()
            else:
                self.assistant_message(event.payload["content"])

    def get_user_input(self) -> str:
        """Prompt for one line; ctrl-c and ctrl-d both end the conversation."""
        self._end_line()
        if self._prompt_session is None:
            self._prompt_session = PromptSession()
        try:
            with patch_stdout(raw=True):
                return self._prompt_session.prompt("> ")
        except KeyboardInterrupt as exc:
            raise EOFError from exc

    def _end_line(self) -> None:
        with self._print_lock:
            if self._mid_line:
                self.console.print()
                self._mid_line = False

    def _print(self, message: str) -> None:
        with self._print_lock:
            self.console.print(message, highlight=False)
