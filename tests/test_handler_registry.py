"""Tests for the handler registry and built-in handlers."""

import asyncio

import pytest
from pydantic import BaseModel

from job_orchestrator.config import OrchestrationConfig
from job_orchestrator.context import JobContext
from job_orchestrator.errors import UnsupportedTaskError
from job_orchestrator.handlers import HandlerRegistry, handler_registry
from job_orchestrator.models import Task


class GreetInput(BaseModel):
    name: str


class TestHandlerRegistry:
    def test_register_and_lookup(self):
        reg = HandlerRegistry()

        @reg.register("greeter", "hello", input_model=GreetInput)
        async def hello(task, context):
            """Say hello."""
            return {"output": {"greeting": f"hello {task.input['name']}"}}

        assert reg.has("greeter", "hello")
        assert reg.lookup("greeter", "hello") is hello
        assert reg.lookup("greeter", "bye") is None
        definition = reg.get_definition("greeter", "hello")
        assert definition.key == "greeter/hello"
        assert definition.description == "Say hello."
        assert definition.to_dict()["input_schema"]["properties"]["name"]["type"] == "string"

    def test_duplicate_registration_rejected(self):
        reg = HandlerRegistry()
        reg.register("s", "c")(lambda task, context: {})
        with pytest.raises(ValueError, match="already registered"):
            reg.register("s", "c")(lambda task, context: {})

    def test_empty_names_rejected(self):
        reg = HandlerRegistry()
        with pytest.raises(ValueError):
            reg.register("", "c")

    def test_list_commands_sorted_and_filtered(self):
        reg = HandlerRegistry()
        reg.register("b", "two")(lambda task, context: {})
        reg.register("a", "one")(lambda task, context: {})
        reg.register("b", "one")(lambda task, context: {})
        assert [d.key for d in reg.list_commands()] == ["a/one", "b/one", "b/two"]
        assert [d.key for d in reg.list_commands("b")] == ["b/one", "b/two"]
        assert reg.services() == ["a", "b"]

    def test_unregister(self):
        reg = HandlerRegistry()
        reg.register("s", "c")(lambda task, context: {})
        reg.unregister("s", "c")
        assert not reg.has("s", "c")

    def test_unsupported_task_error_messages(self):
        reg = HandlerRegistry()
        reg.register("s", "c")(lambda task, context: {})
        err = reg.unsupported_task_error("x", "y")
        assert isinstance(err, UnsupportedTaskError)
        assert str(err) == "Unsupported service: x. Available services: s"
        err = reg.unsupported_task_error("s", "y")
        assert str(err) == "Unsupported command: s/y. Available commands for s: c"


class TestCoreHandlers:
    def _ctx(self):
        return JobContext({}, OrchestrationConfig())

    def test_builtins_registered(self):
        keys = {d.key for d in handler_registry.list_commands("core")}
        assert {"core/echo", "core/spawn", "core/sleep"} <= keys

    def test_echo(self):
        handler = handler_registry.lookup("core", "echo")
        task = Task(id="0", service="core", command="echo", input={"a": 1})
        assert asyncio.run(handler(task, self._ctx())) == {"output": {"a": 1}}

    def test_spawn(self):
        handler = handler_registry.lookup("core", "spawn")
        children = [{"service": "core", "command": "echo"}]
        task = Task(id="0", service="core", command="spawn", input={"tasks": children})
        result = asyncio.run(handler(task, self._ctx()))
        assert result["childTasks"] == children
        assert result["output"] == {"spawned": 1}

    def test_sleep(self):
        handler = handler_registry.lookup("core", "sleep")
        task = Task(id="0", service="core", command="sleep", input={"seconds": 0})
        assert asyncio.run(handler(task, self._ctx())) == {"output": {"slept": 0.0}}
