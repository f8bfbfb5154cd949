"""Registry of task handlers keyed by ``(service, command)``.

Handlers are async callables receiving ``(task, context)`` and returning a
dict with an ``output`` payload and optionally ``audit`` and ``childTasks``.
Plain (sync) callables are accepted too; the orchestrator awaits whatever
comes back when it is awaitable.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import BaseModel

from ..errors import UnsupportedTaskError

HandlerResult = dict[str, Any]
Handler = Callable[..., Union[Awaitable[HandlerResult], HandlerResult]]
HandlerLookup = Callable[[str, str], Optional[Handler]]


# ---------------------------------------------------------------------------
# Handler definition
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HandlerDefinition:
    """One registered ``service/command`` pair."""
    service: str
    command: str
    handler: Handler
    description: str = ""
    input_model: Optional[type[BaseModel]] = None   # validates task.input before running

    @property
    def key(self) -> str:
        return f"{self.service}/{self.command}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "service": self.service,
            "command": self.command,
            "description": self.description,
            "input_schema": self.input_model.model_json_schema() if self.input_model else None,
        }


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class HandlerRegistry:
    """Maps ``(service, command)`` to handlers.

    Handlers register themselves on import via ``register()``. ``lookup`` is
    the function the orchestrator uses to resolve a task's handler.
    """

    def __init__(self) -> None:
        self._handlers: dict[tuple[str, str], HandlerDefinition] = {}

    def register(
        self,
        service: str,
        command: str,
        *,
        description: str = "",
        input_model: Optional[type[BaseModel]] = None,
    ) -> Callable[[Handler], Handler]:
        """Register a handler. Used as a decorator."""
        if not service or not command:
            raise ValueError("service and command must be non-empty")

        def decorator(func: Handler) -> Handler:
            if (service, command) in self._handlers:
                raise ValueError(f"Handler already registered for {service}/{command}")
            doc_lines = (func.__doc__ or "").strip().splitlines()
            self._handlers[(service, command)] = HandlerDefinition(
                service=service,
                command=command,
                handler=func,
                description=description or (doc_lines[0] if doc_lines else ""),
                input_model=input_model,
            )
            return func

        return decorator

    def unregister(self, service: str, command: str) -> None:
        self._handlers.pop((service, command), None)

    def lookup(self, service: str, command: str) -> Optional[Handler]:
        definition = self._handlers.get((service, command))
        return definition.handler if definition else None

    def get_definition(self, service: str, command: str) -> Optional[HandlerDefinition]:
        return self._handlers.get((service, command))

    def has(self, service: str, command: str) -> bool:
        return (service, command) in self._handlers

    def services(self) -> list[str]:
        return sorted({service for service, _ in self._handlers})

    def list_commands(self, service: Optional[str] = None) -> list[HandlerDefinition]:
        return [
            self._handlers[key]
            for key in sorted(self._handlers)
            if service is None or key[0] == service
        ]

    def unsupported_task_error(self, service: str, command: str) -> UnsupportedTaskError:
        """Build the error for a task no handler is registered for."""
        if service not in self.services():
            available = ", ".join(self.services()) or "none"
            return UnsupportedTaskError(
                f"Unsupported service: {service}. Available services: {available}"
            )
        commands = ", ".join(d.command for d in self.list_commands(service))
        return UnsupportedTaskError(
            f"Unsupported command: {service}/{command}. Available commands for {service}: {commands}"
        )


# Singleton registry; built-in handlers register here on import
handler_registry = HandlerRegistry()
