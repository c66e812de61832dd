import json

import httpx
import pytest

from codeswarm.config.models import TiersConfig, TierModelConfig
from codeswarm.llm.client import FunctionCall, LLMClient, LLMError
from codeswarm.llm.router import AgentTier, ModelRouter


def _client(handler, **kwargs):
    return LLMClient(
        model="test-model",
        api_key="test-key",
        base_url="https://llm.test/v1",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def _completion(message, usage=None, finish_reason="stop"):
    return {
        "model": "test-model",
        "choices": [{"message": message, "finish_reason": finish_reason}],
        "usage": usage or {"prompt_tokens": 11, "completion_tokens": 7},
    }


def test_text_response_and_request_shape():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_completion({"content": "hello"}))

    with _client(handler, temperature=0.2) as client:
        response = client.chat(
            [{"role": "user", "content": "hi"}],
            tools=[{"name": "read_file", "parameters": {"type": "object"}}],
            max_tokens=99,
        )

    assert response.text == "hello"
    assert response.tokens == {"input": 11, "output": 7, "cached": 0}
    assert seen["url"] == "https://llm.test/v1/chat/completions"
    assert seen["auth"] == "Bearer test-key"
    body = seen["body"]
    assert body["model"] == "test-model"
    assert body["max_tokens"] == 99
    assert body["temperature"] == 0.2
    assert body["tool_choice"] == "auto"
    assert body["tools"][0] == {
        "type": "function",
        "function": {"name": "read_file", "description": "", "parameters": {"type": "object"}},
    }


def test_model_override_and_no_tools():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json=_completion({"content": "ok"}))

    client = _client(handler)
    client.chat([{"role": "user", "content": "hi"}], model="other-model")

    assert bodies[0]["model"] == "other-model"
    assert bodies[0]["max_tokens"] == 16384
    assert "tools" not in bodies[0]
    assert "temperature" not in bodies[0]


def test_tool_calls_are_parsed():
    message = {
        "content": None,
        "tool_calls": [
            {"id": "c1", "function": {"name": "read_file", "arguments": '{"file_path": "a.py"}'}},
            {"id": "c2", "function": {"name": "list_dir", "arguments": ""}},
            {"id": "c3", "function": {"name": "grep_files", "arguments": "{broken"}},
        ],
    }
    completion = _completion(message, finish_reason="tool_calls")
    client = _client(lambda request: httpx.Response(200, json=completion))

    response = client.chat([{"role": "user", "content": "hi"}])

    assert response.text == ""
    assert response.finish_reason == "tool_calls"
    calls = response.function_calls
    assert [c.name for c in calls] == ["read_file", "list_dir", "grep_files"]
    assert calls[0].arguments == {"file_path": "a.py"}
    assert calls[1].arguments == {}
    assert calls[2].arguments == "{broken"


def test_function_call_round_trips_to_openai_format():
    call = FunctionCall(id="c1", name="write_file", arguments={"file_path": "a", "content": "b"})

    wire = call.to_openai()

    assert wire["type"] == "function"
    assert json.loads(wire["function"]["arguments"]) == {"file_path": "a", "content": "b"}
    assert FunctionCall.from_openai(wire) == call


@pytest.mark.parametrize(
    "status, code",
    [(401, "authentication_error"), (429, "rate_limit"), (503, "server_error"), (400, "api_error")],
)
def test_http_errors_are_classified(status, code):
    client = _client(lambda request: httpx.Response(status, json={"error": {"message": "nope"}}))

    with pytest.raises(LLMError) as excinfo:
        client.chat([{"role": "user", "content": "hi"}])

    assert excinfo.value.code == code
    assert excinfo.value.status_code == status
    assert "nope" in excinfo.value.message


def test_connection_errors_are_wrapped():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(LLMError) as excinfo:
        _client(handler).chat([{"role": "user", "content": "hi"}])

    assert excinfo.value.code == "connection_error"


def test_timeouts_are_wrapped():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(LLMError) as excinfo:
        _client(handler).chat([{"role": "user", "content": "hi"}])

    assert excinfo.value.code == "timeout"


def test_empty_response_is_an_error():
    client = _client(lambda request: httpx.Response(200, json=_completion({"content": "   "})))

    with pytest.raises(LLMError) as excinfo:
        client.chat([{"role": "user", "content": "hi"}])

    assert excinfo.value.code == "empty_response"


def test_usage_is_accumulated():
    usage = {
        "prompt_tokens": 100,
        "completion_tokens": 20,
        "prompt_tokens_details": {"cached_tokens": 40},
    }
    client = _client(lambda request: httpx.Response(200, json=_completion({"content": "x"}, usage)))

    client.chat([{"role": "user", "content": "a"}])
    client.chat([{"role": "user", "content": "b"}])

    assert client.get_stats() == {
        "request_count": 2,
        "input_tokens": 200,
        "output_tokens": 40,
        "cached_tokens": 80,
        "total_tokens": 240,
    }


def test_api_key_is_required(monkeypatch):
    monkeypatch.delenv("CHUTES_API_TOKEN", raising=False)
    monkeypatch.delenv("CHUTES_API_KEY", raising=False)

    with pytest.raises(ValueError, match="API key required"):
        LLMClient(model="m")


# =============================================================================
# Model router
# =============================================================================


def test_router_maps_tiers_from_config():
    router = ModelRouter.from_config(
        TiersConfig(
            fast=TierModelConfig(model="f", max_tokens=10),
            balanced=TierModelConfig(model="b"),
            thorough=TierModelConfig(model="t", max_tokens=30, temperature=0.5),
        )
    )

    assert router.for_tier("fast").model == "f"
    assert router.for_tier(AgentTier.THOROUGH).temperature == 0.5
    assert router.default.model == "b"


def test_router_rejects_unknown_tier(router):
    with pytest.raises(ValueError):
        router.for_tier("gigantic")
