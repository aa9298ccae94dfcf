# src/taskmate/errors.py

"""
Error taxonomy shared by the store, the command dispatcher and the orchestrator.

Store/dispatcher errors travel up to the orchestrator, which turns them into
a failed tool result for that one call. TransportError is the only one that
may reach the session layer.
"""

from __future__ import annotations


class TaskmateError(Exception):
    """Base class for every error raised on purpose by taskmate."""


class ValidationError(TaskmateError):
    """Bad or missing arguments."""


class NotFoundError(TaskmateError):
    """Unknown task, dependency or command."""


class CycleError(TaskmateError):
    """A dependency write would make a task reachable from itself."""


class ReferentialIntegrityError(TaskmateError):
    """A task cannot be deleted while other tasks depend on it."""


class TransportError(TaskmateError):
    """The model provider call failed or returned nothing usable."""


class ParseError(TaskmateError):
    """A tool-call payload could not be parsed. Recovered locally."""
