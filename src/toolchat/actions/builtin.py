"""Built-in action definitions."""

from __future__ import annotations

import json
import math
import os
import random
import shutil
import subprocess
from pathlib import Path

from pydantic import Field

from .base import ActionInput, EmptyInput, ModelAction, action_from_model
from .registry import ActionRegistry


class SumInput(ActionInput):
    summands: list[float] = Field(..., alias="Summands", description="Numbers to add")


class ProductInput(ActionInput):
    factors: list[float] = Field(..., alias="Factors", description="Numbers to multiply")


class SquareRootInput(ActionInput):
    argument: float = Field(..., alias="Argument", ge=0, description="Number to take the root of")


class TextSortInput(ActionInput):
    lines: list[str] = Field(..., alias="Lines", description="Lines of text")


class NumberSortInput(ActionInput):
    lines: list[float] = Field(..., alias="Lines", description="Numbers")


class FileCreationInput(ActionInput):
    filename: str = Field(..., alias="Filename", description="Path of the file to create")
    utf8_content: str = Field(..., alias="UTF8Content", description="File content")


class CommandInput(ActionInput):
    line: str = Field(..., alias="Line", description="Command line passed to bash -c")


class YoutubeViewInput(ActionInput):
    video_title: str = Field(..., alias="VideoTitle")
    video_description: str = Field(..., alias="VideoDescription")


def _format_float(value: float) -> str:
    return f"{value:f}"


def _json_list(values: list[str] | list[float]) -> str:
    return json.dumps(values, indent=2, ensure_ascii=False)


def create_sum_action() -> ModelAction[SumInput]:
    def _handler(params: SumInput) -> str:
        return _format_float(math.fsum(params.summands))

    return action_from_model(SumInput, _handler, name="sum_numbers", description="adds numbers together.")


def create_product_action() -> ModelAction[ProductInput]:
    def _handler(params: ProductInput) -> str:
        return _format_float(math.prod(params.factors))

    return action_from_model(
        ProductInput, _handler, name="multiply_numbers", description="multiplies numbers together."
    )


def create_square_root_action() -> ModelAction[SquareRootInput]:
    def _handler(params: SquareRootInput) -> str:
        return _format_float(math.sqrt(params.argument))

    return action_from_model(
        SquareRootInput, _handler, name="square_root", description="takes the square root of a number."
    )


def create_text_sort_action() -> ModelAction[TextSortInput]:
    def _handler(params: TextSortInput) -> str:
        return _json_list(sorted(params.lines))

    return action_from_model(
        TextSortInput, _handler, name="sort_text", description="sorts lines of text in lexical order."
    )


def create_number_sort_action() -> ModelAction[NumberSortInput]:
    def _handler(params: NumberSortInput) -> str:
        return _json_list(sorted(params.lines))

    return action_from_model(NumberSortInput, _handler, name="sort_numbers", description="sorts numbers.")


def create_file_action(workspace: Path) -> ModelAction[FileCreationInput]:
    """Create the file writing action; relative paths resolve against ``workspace``."""

    def _handler(params: FileCreationInput) -> str:
        path = Path(params.filename).expanduser()
        if not path.is_absolute():
            path = workspace / path
        data = params.utf8_content.encode("utf-8")
        path.write_bytes(data)
        return f"created file {json.dumps(params.filename)} with {len(data)} bytes content"

    return action_from_model(
        FileCreationInput,
        _handler,
        name="create_file",
        description=(
            "creates a file with given name and content, which is better than echo'ing or redirecting into a file "
            "because it can handle special characters, line newline escapes etc."
        ),
    )


def load_jokes(path: Path) -> list[str]:
    lines = path.read_text(encoding="utf-8").splitlines()
    return [line.strip().replace("<>", " ... ") for line in lines if line.strip()]


def create_joke_action(jokes_file: Path) -> ModelAction[EmptyInput]:
    def _handler(_params: EmptyInput) -> str:
        jokes = load_jokes(jokes_file)
        if not jokes:
            raise ValueError(f"no jokes in {jokes_file}")
        return random.choice(jokes)  # noqa: S311

    return action_from_model(EmptyInput, _handler, name="random_joke", description="fetches a random joke")


def create_command_action(workspace: Path) -> ModelAction[CommandInput]:
    """Create the shell action bound to the workspace directory."""

    def _handler(params: CommandInput) -> str:
        bash_executable = shutil.which("bash") or "bash"
        before = os.times()
        run_error = ""
        try:
            # The model intentionally runs shell commands through this action.
            result = subprocess.run(  # noqa: S603
                [bash_executable, "-c", params.line],
                cwd=workspace,
                capture_output=True,
                text=True,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            return json.dumps({"error": str(exc), "exit_code": -1, "success": False}, ensure_ascii=False)
        after = os.times()
        if result.returncode != 0:
            run_error = f"exit status {result.returncode}"
        return json.dumps(
            {
                "error": run_error,
                "exit_code": result.returncode,
                "success": result.returncode == 0,
                "system_time_seconds": round(after.children_system - before.children_system, 6),
                "user_time_seconds": round(after.children_user - before.children_user, 6),
                "stderr": result.stderr,
                "stdout": result.stdout,
            },
            ensure_ascii=False,
        )

    return action_from_model(
        CommandInput,
        _handler,
        name="run_command",
        description='runs a command using "bash -c ....", and returns stdout, stderr, exit code, etc.',
    )


def predict_views(title: str, description: str) -> float:
    # Word counts alone: longer descriptions and shorter titles score higher.
    log_views = math.log(len(description.split())) - math.log(len(title.split()))
    return math.exp(10 + log_views)


def create_youtube_action() -> ModelAction[YoutubeViewInput]:
    def _handler(params: YoutubeViewInput) -> str:
        return f"{predict_views(params.video_title, params.video_description):.0f} views predicted"

    return action_from_model(
        YoutubeViewInput,
        _handler,
        name="predict_youtube_views",
        description="predicts how many views a youtube video will get, based on the title and description.",
    )


def register_builtin_actions(registry: ActionRegistry, *, workspace: Path, jokes_file: Path) -> None:
    """Register the stateless built-in actions."""
    registry.register(create_sum_action())
    registry.register(create_product_action())
    registry.register(create_square_root_action())
    registry.register(create_command_action(workspace))
    registry.register(create_joke_action(jokes_file))
    registry.register(create_text_sort_action())
    registry.register(create_number_sort_action())
    registry.register(create_file_action(workspace))
    registry.register(create_youtube_action())
