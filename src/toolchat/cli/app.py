"""Typer commands for toolchat."""

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, NoReturn

import typer
from loguru import logger

from ..actions import ActionRegistry, ReplSessions
from ..chat import standard_registry
from ..client import ChatClient
from ..config import Settings, get_settings
from ..conversation import ChatOptions, Conversation, Transcript
from ..errors import ToolchatError
from ..logging_utils import configure_logging
from ..schema import Message, Role
from .render import Renderer

app = typer.Typer(
    name="toolchat",
    help="Chat with a completions model that can call local actions.",
    add_completion=False,
    rich_markup_mode="rich",
)

ModelOption = Annotated[str | None, typer.Option("--model", "-m", help="Model identifier")]


def _create_renderer() -> Renderer:
    return Renderer()


def _create_client(settings: Settings) -> ChatClient:
    return ChatClient.from_settings(settings)


def _exit_with_error(renderer: Renderer, exc: ToolchatError) -> NoReturn:
    logger.debug("cli.error type={} error={}", type(exc).__name__, exc)
    renderer.error(str(exc))
    raise typer.Exit(1)


@contextmanager
def _session(settings: Settings) -> Iterator[tuple[ChatClient, ActionRegistry]]:
    client = _create_client(settings)
    sessions = ReplSessions()
    try:
        yield client, standard_registry(settings, sessions)
    finally:
        sessions.close()
        client.close()


def _options(settings: Settings, *, one_shot: bool) -> ChatOptions:
    return ChatOptions(
        model=settings.model,
        temperature=settings.temperature,
        response_format=settings.response_format,
        one_shot=one_shot,
        stream=settings.stream,
        max_tokens=settings.max_tokens,
    )


def _transcript(settings: Settings, prompts: list[str]) -> Transcript:
    transcript = Transcript([Message(role=Role.SYSTEM, content=settings.system_prompt)])
    for prompt in prompts:
        transcript.append(Message(role=Role.USER, content=prompt))
    return transcript


@app.command()
def chat(
    prompt_files: Annotated[
        list[Path] | None,
        typer.Argument(help="Files whose contents are sent as user turns before the first input"),
    ] = None,
    model: ModelOption = None,
    stream: Annotated[bool | None, typer.Option("--stream/--no-stream", help="Stream responses")] = None,
) -> None:
    """Start an interactive chat."""
    renderer = _create_renderer()
    try:
        settings = get_settings(model=model, stream=stream)
        configure_logging(profile="chat", level=settings.log_level)
        prompts = []
        for path in prompt_files or []:
            renderer.info(f"[dim]adding prompt {path}[/dim]")
            prompts.append(path.read_text(encoding="utf-8"))
        with _session(settings) as (client, registry):
            renderer.welcome(settings.model, registry.names())
            conversation = Conversation(
                client,
                registry,
                options=_options(settings, one_shot=False),
                transcript=_transcript(settings, prompts),
                read_input=renderer.get_user_input,
                on_event=renderer.handle_event,
            )
            conversation.run()
    except ToolchatError as exc:
        _exit_with_error(renderer, exc)
    except OSError as exc:
        _exit_with_error(renderer, ToolchatError(str(exc)))
    renderer.info("\nGoodbye!")


@app.command()
def ask(
    prompt: Annotated[str, typer.Argument(help="Question for the model")],
    model: ModelOption = None,
) -> None:
    """Ask one question, letting the model call actions, and print the answer."""
    renderer = _create_renderer()
    try:
        settings = get_settings(model=model)
        configure_logging(profile="chat", level=settings.log_level)
        with _session(settings) as (client, registry):
            conversation = Conversation(
                client,
                registry,
                options=_options(settings, one_shot=True),
                transcript=_transcript(settings, [prompt]),
                on_event=renderer.handle_event,
            )
            conversation.run()
    except ToolchatError as exc:
        _exit_with_error(renderer, exc)


@app.command()
def models() -> None:
    """List the model ids the endpoint offers."""
    renderer = _create_renderer()
    try:
        settings = get_settings()
        configure_logging(profile="chat", level=settings.log_level)
        client = _create_client(settings)
        try:
            infos = client.list_models()
        finally:
            client.close()
    except ToolchatError as exc:
        _exit_with_error(renderer, exc)
    for info in sorted(infos, key=lambda item: item.id):
        renderer.info(info.id)


@app.command()
def actions() -> None:
    """Print the schema of every registered action."""
    renderer = _create_renderer()
    settings = get_settings()
    sessions = ReplSessions()
    try:
        for schema in standard_registry(settings, sessions).schemas():
            renderer.action_schema(schema)
    finally:
        sessions.close()
