"""Actions the model may request, and their registry."""

from .base import Action, ActionInput, ActionSchema, EmptyInput, ModelAction, action_from_model, parameters_schema
from .builtin import register_builtin_actions
from .registry import ActionRegistry
from .repl import ReplSessions, register_repl_actions

__all__ = [
    "Action",
    "ActionInput",
    "ActionRegistry",
    "ActionSchema",
    "EmptyInput",
    "ModelAction",
    "ReplSessions",
    "action_from_model",
    "parameters_schema",
    "register_builtin_actions",
    "register_repl_actions",
]
