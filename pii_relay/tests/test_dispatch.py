"""
Tool Dispatch tests.

Covers: invalid call filtering, argument detokenization, result shapes,
error payloads, ordering under concurrency and delegation handling.
"""

from __future__ import annotations

import asyncio
import json
import os
import sys
from types import SimpleNamespace

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from pii_relay.core.agent import Agent
from pii_relay.core.delegation import Delegation
from pii_relay.core.dispatch import ToolDispatcher
from pii_relay.core.errors import DetectionError, ModelProviderError
from pii_relay.core.message_log import SecureMessageLog
from pii_relay.core.tool_registry import ToolRegistry
from pii_relay.core.tokenizer import TOKEN_PREFIX, make_token
from pii_relay.tests.helpers import (
    FailingDetector,
    ScriptedProvider,
    literal_detector,
    make_tokenizer,
    run_async,
    stop_response,
    tool_call,
)


def make_dispatcher(registry: ToolRegistry, entities=None, **kwargs):
    tokenizer = make_tokenizer(literal_detector(entities or {}))
    log = SecureMessageLog(tokenizer)
    return ToolDispatcher(registry, tokenizer, log, **kwargs), tokenizer, log


class TestValidation:

    def test_unregistered_tool_dropped_silently(self):
        registry = ToolRegistry()
        registry.register_function(lambda: "pong", name="ping")
        dispatcher, _, log = make_dispatcher(registry)

        out = run_async(dispatcher.dispatch([
            tool_call("ping", {}, "c1"),
            tool_call("does_not_exist", {}, "c2"),
        ]))

        assert [m.tool_call_id for m in out] == ["c1"]
        assert len(log) == 1

    def test_all_invalid_yields_nothing(self):
        dispatcher, _, log = make_dispatcher(ToolRegistry())
        assert run_async(dispatcher.dispatch([tool_call("nope")])) == []
        assert len(log) == 0


class TestInvocation:

    def test_arguments_detokenized_before_call(self):
        received = {}

        async def send_mail(to: str, body: str):
            received.update(to=to, body=body)
            return "sent"

        registry = ToolRegistry()
        registry.register_function(send_mail)
        dispatcher, tokenizer, _ = make_dispatcher(registry)
        token = make_token(tokenizer.store.put("a@b.com"))

        out = run_async(dispatcher.dispatch([
            tool_call("send_mail", {"to": token, "body": f"Hello {token}"}),
        ]))

        assert received == {"to": "a@b.com", "body": "Hello a@b.com"}
        assert out[0].content == "sent"
        assert out[0].role == "tool"
        assert out[0].marked_secure

    def test_structured_result_tokenized(self):
        registry = ToolRegistry()
        registry.register_function(
            lambda key: {"key": key, "reporter": "Jane Roe"}, name="get_ticket",
        )
        dispatcher, tokenizer, _ = make_dispatcher(registry, {"Jane Roe": "PERSON"})

        out = run_async(dispatcher.dispatch([tool_call("get_ticket", {"key": "PROJ-1"})]))

        payload = json.loads(out[0].content)
        assert payload["key"] == "PROJ-1"
        assert "Jane Roe" not in out[0].content
        assert run_async(tokenizer.detokenize(payload))["reporter"] == "Jane Roe"

    def test_none_result_becomes_empty_content(self):
        registry = ToolRegistry()
        registry.register_function(lambda: None, name="noop")
        dispatcher, _, _ = make_dispatcher(registry)
        out = run_async(dispatcher.dispatch([tool_call("noop")]))
        assert out[0].content == ""

    def test_order_matches_requests(self):
        async def slow(delay: float, label: str):
            await asyncio.sleep(delay)
            return label

        registry = ToolRegistry()
        registry.register_function(slow)
        dispatcher, _, _ = make_dispatcher(registry)

        out = run_async(dispatcher.dispatch([
            tool_call("slow", {"delay": 0.03, "label": "first"}, "c1"),
            tool_call("slow", {"delay": 0.0, "label": "second"}, "c2"),
        ]))
        assert [(m.tool_call_id, m.content) for m in out] == [("c1", "first"), ("c2", "second")]


class TestErrors:

    def test_tool_exception_becomes_tokenized_payload(self):
        def lookup(email: str):
            raise RuntimeError(f"No account for {email}")

        registry = ToolRegistry()
        registry.register_function(lookup)
        registry.register_function(lambda: "fine", name="other")
        dispatcher, tokenizer, _ = make_dispatcher(registry, {"a@b.com": "EMAIL"})
        token = make_token(tokenizer.store.put("a@b.com"))

        out = run_async(dispatcher.dispatch([
            tool_call("lookup", {"email": token}, "c1"),
            tool_call("other", {}, "c2"),
        ]))

        assert len(out) == 2
        assert "a@b.com" not in out[0].content
        assert TOKEN_PREFIX in out[0].content
        restored = run_async(tokenizer.detokenize(json.loads(out[0].content)))
        assert restored == {"error": "No account for a@b.com"}
        assert out[1].content == "fine"

    def test_error_payload_detected_once(self):
        def explode():
            raise RuntimeError("boom")

        registry = ToolRegistry()
        registry.register_function(explode)
        dispatcher, tokenizer, _ = make_dispatcher(registry)

        out = run_async(dispatcher.dispatch([tool_call("explode")]))

        assert json.loads(out[0].content) == {"error": "boom"}
        assert tokenizer.detector.calls == ["boom"]

    def test_malformed_arguments_reported(self):
        registry = ToolRegistry()
        registry.register_function(lambda: "x", name="f")
        dispatcher, _, _ = make_dispatcher(registry)
        out = run_async(dispatcher.dispatch([tool_call("f", "{not json")]))
        assert "error" in json.loads(out[0].content)

    def test_unexpected_argument_reported(self):
        registry = ToolRegistry()
        registry.register_function(lambda: "x", name="f")
        dispatcher, _, _ = make_dispatcher(registry)
        out = run_async(dispatcher.dispatch([tool_call("f", {"surprise": 1})]))
        assert "error" in json.loads(out[0].content)


class TestDelegation:

    def _worker(self, tokenizer, responses):
        return Agent(
            name="Jira Agent",
            provider=ScriptedProvider(responses),
            tokenizer=tokenizer,
            instructions="You manage tickets.",
        )

    def test_delegation_runs_target_loop(self):
        registry = ToolRegistry()
        dispatcher, tokenizer, _ = make_dispatcher(registry)
        worker = self._worker(tokenizer, [stop_response("PROJ-7 is done")])
        registry.register_function(
            lambda assistantPrompt: Delegation(prompt=assistantPrompt, target_agent=worker),
            name="askJiraAgent",
        )

        out = run_async(dispatcher.dispatch([
            tool_call("askJiraAgent", {"assistantPrompt": "Status of PROJ-7?"}),
        ]))

        assert out[0].content == "PROJ-7 is done"
        assert worker.provider.call_count == 1
        worker_messages = worker.provider.requests[0]["messages"]
        assert worker_messages[-1] == {"role": "user", "content": "Status of PROJ-7?"}

    def test_tagged_mapping_is_delegation(self):
        registry = ToolRegistry()
        dispatcher, tokenizer, _ = make_dispatcher(registry)
        worker = self._worker(tokenizer, [stop_response("done")])
        registry.register_function(
            lambda: {"kind": "delegate", "prompt": "go", "target_agent": worker}, name="handoff",
        )
        out = run_async(dispatcher.dispatch([tool_call("handoff")]))
        assert out[0].content == "done"

    def test_request_shaped_mapping_delegates(self):
        registry = ToolRegistry()
        dispatcher, tokenizer, _ = make_dispatcher(registry)
        worker = self._worker(tokenizer, [stop_response("PROJ-3 is in review")])
        registry.register_function(
            lambda: {"prompt": "go", "target_agent": worker}, name="handoff",
        )
        out = run_async(dispatcher.dispatch([tool_call("handoff")]))
        assert out[0].content == "PROJ-3 is in review"
        assert worker.provider.call_count == 1
        assert worker.provider.requests[0]["messages"][-1] == {"role": "user", "content": "go"}

    def test_request_shaped_object_delegates(self):
        registry = ToolRegistry()
        dispatcher, tokenizer, _ = make_dispatcher(registry)
        worker = self._worker(tokenizer, [stop_response("done")])
        registry.register_function(
            lambda: SimpleNamespace(prompt="go", target_agent=worker), name="handoff",
        )
        out = run_async(dispatcher.dispatch([tool_call("handoff")]))
        assert out[0].content == "done"

    def test_mapping_with_prompt_only_is_plain_value(self):
        registry = ToolRegistry()
        registry.register_function(lambda: {"prompt": "just data"}, name="template")
        dispatcher, _, _ = make_dispatcher(registry)
        out = run_async(dispatcher.dispatch([tool_call("template")]))
        assert json.loads(out[0].content) == {"prompt": "just data"}

    def test_other_kind_is_plain_value(self):
        registry = ToolRegistry()
        dispatcher, tokenizer, _ = make_dispatcher(registry)
        worker = self._worker(tokenizer, [stop_response("never")])
        registry.register_function(
            lambda: {"kind": "value", "prompt": "go", "target_agent": worker}, name="handoff",
        )
        out = run_async(dispatcher.dispatch([tool_call("handoff")]))
        assert json.loads(out[0].content)["kind"] == "value"
        assert worker.provider.call_count == 0

    def test_worker_model_failure_propagates(self):
        class BrokenProvider(ScriptedProvider):
            async def complete(self, model, messages, tools):
                raise ModelProviderError("503 from provider")

        registry = ToolRegistry()
        dispatcher, tokenizer, log = make_dispatcher(registry)
        worker = Agent(name="Jira Agent", provider=BrokenProvider(), tokenizer=tokenizer)
        registry.register_function(
            lambda: Delegation(prompt="go", target_agent=worker), name="handoff",
        )
        with pytest.raises(ModelProviderError):
            run_async(dispatcher.dispatch([tool_call("handoff")]))
        assert len(log) == 0

    def test_worker_detection_failure_propagates(self):
        registry = ToolRegistry()
        dispatcher, _, _ = make_dispatcher(registry)
        worker = Agent(
            name="Jira Agent",
            provider=ScriptedProvider([stop_response("never")]),
            tokenizer=make_tokenizer(FailingDetector(DetectionError("analyzer down"))),
        )
        registry.register_function(
            lambda: Delegation(prompt="go", target_agent=worker), name="handoff",
        )
        with pytest.raises(DetectionError):
            run_async(dispatcher.dispatch([tool_call("handoff")]))
        assert worker.provider.call_count == 0

    def test_depth_limit_reported_as_tool_error(self):
        registry = ToolRegistry()
        dispatcher, tokenizer, _ = make_dispatcher(registry, max_delegation_depth=0)
        worker = self._worker(tokenizer, [stop_response("never")])
        registry.register_function(
            lambda: Delegation(prompt="go", target_agent=worker), name="handoff",
        )
        out = run_async(dispatcher.dispatch([tool_call("handoff")]))
        assert "E3002" in json.loads(out[0].content)["error"]
        assert worker.provider.call_count == 0
