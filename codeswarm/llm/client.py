"""LLM client using httpx for OpenAI-compatible chat completion APIs."""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import httpx

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """LLM API error.

    ``code`` is one of ``timeout``, ``connection_error``, ``rate_limit``,
    ``server_error``, ``authentication_error``, ``api_error`` or
    ``empty_response``.
    """

    def __init__(self, message: str, code: str = "unknown", status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code


@dataclass
class FunctionCall:
    """A function/tool call requested by the LLM.

    ``arguments`` stays a raw string when the provider sent JSON that does not
    decode; the tool router reports that back to the model.
    """

    id: str
    name: str
    arguments: Union[Dict[str, Any], str]

    @classmethod
    def from_openai(cls, call: Dict[str, Any]) -> "FunctionCall":
        func = call.get("function") or {}
        raw = func.get("arguments", "{}")
        args: Union[Dict[str, Any], str] = raw
        if isinstance(raw, str):
            try:
                args = json.loads(raw) if raw.strip() else {}
            except json.JSONDecodeError:
                args = raw
        return cls(id=call.get("id", "") or "", name=func.get("name", "") or "", arguments=args)

    def to_openai(self) -> Dict[str, Any]:
        arguments = self.arguments if isinstance(self.arguments, str) else json.dumps(self.arguments)
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": arguments},
        }


@dataclass
class LLMResponse:
    """Response from the LLM."""

    text: str = ""
    function_calls: List[FunctionCall] = field(default_factory=list)
    tokens: Optional[Dict[str, int]] = None
    model: str = ""
    finish_reason: str = ""
    raw: Optional[Dict[str, Any]] = None

    @property
    def is_empty(self) -> bool:
        """True when the model produced neither text nor tool calls."""
        return not (self.text and self.text.strip()) and not self.function_calls


class LLMClient:
    """Blocking client for ``POST /chat/completions``.

    One client is shared by every agent of a batch; httpx.Client is thread
    safe and the usage counters are guarded by a lock. There is no retry
    here: errors surface as :class:`LLMError`.
    """

    DEFAULT_BASE_URL = "https://llm.chutes.ai/v1"
    API_KEY_ENV_VARS = ("CHUTES_API_TOKEN", "CHUTES_API_KEY")

    def __init__(
        self,
        model: str,
        temperature: Optional[float] = None,
        max_tokens: int = 16384,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = 120.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.base_url = base_url or os.environ.get("CODESWARM_BASE_URL", self.DEFAULT_BASE_URL)
        self.timeout = timeout

        self._api_key = api_key
        if not self._api_key:
            for env_var in self.API_KEY_ENV_VARS:
                self._api_key = os.environ.get(env_var)
                if self._api_key:
                    break
        if not self._api_key:
            raise ValueError(
                "API key required. Set CHUTES_API_TOKEN environment variable or pass api_key parameter."
            )

        self._lock = threading.Lock()
        self._request_count = 0
        self._input_tokens = 0
        self._output_tokens = 0
        self._cached_tokens = 0

        self._client = httpx.Client(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(timeout=self.timeout, connect=30.0),
            transport=transport,
        )

    @staticmethod
    def _raise_http_error(status_code: int, error_msg: str) -> None:
        if status_code == 401:
            raise LLMError(error_msg, code="authentication_error", status_code=status_code)
        if status_code == 429:
            raise LLMError(error_msg, code="rate_limit", status_code=status_code)
        if status_code >= 500:
            raise LLMError(error_msg, code="server_error", status_code=status_code)
        raise LLMError(f"HTTP {status_code}: {error_msg}", code="api_error", status_code=status_code)

    def _supports_temperature(self, model: str) -> bool:
        model_lower = model.lower()
        return not any(x in model_lower for x in ("o1", "o3", "deepseek-r1"))

    @staticmethod
    def _build_tools(tools: Optional[List[Dict[str, Any]]]) -> Optional[List[Dict[str, Any]]]:
        """Wrap tool specs in the OpenAI function format."""
        if not tools:
            return None
        return [
            {
                "type": "function",
                "function": {
                    "name": tool["name"],
                    "description": tool.get("description", ""),
                    "parameters": tool.get("parameters", {"type": "object", "properties": {}}),
                },
            }
            for tool in tools
        ]

    def chat(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        max_tokens: Optional[int] = None,
        model: Optional[str] = None,
    ) -> LLMResponse:
        """Send one chat completion request."""
        effective_model = model or self.model
        payload: Dict[str, Any] = {
            "model": effective_model,
            "messages": messages,
            "max_tokens": max_tokens or self.max_tokens,
        }
        if self.temperature is not None and self._supports_temperature(effective_model):
            payload["temperature"] = self.temperature
        if tools:
            payload["tools"] = self._build_tools(tools)
            payload["tool_choice"] = "auto"

        try:
            response = self._client.post("/chat/completions", json=payload)
            if response.status_code != 200:
                error_msg = response.text
                try:
                    error_msg = response.json().get("error", {}).get("message", error_msg)
                except (json.JSONDecodeError, AttributeError):
                    pass
                self._raise_http_error(response.status_code, error_msg)
            data = response.json()
        except LLMError:
            raise
        except httpx.TimeoutException as e:
            raise LLMError(f"Request timed out: {e}", code="timeout")
        except httpx.ConnectError as e:
            raise LLMError(f"Connection error: {e}", code="connection_error")
        except httpx.HTTPError as e:
            raise LLMError(f"HTTP error: {e}", code="api_error")
        except json.JSONDecodeError as e:
            raise LLMError(f"Invalid JSON from provider: {e}", code="api_error")

        result = LLMResponse(raw=data, model=data.get("model", effective_model))

        usage = data.get("usage") or {}
        input_tokens = usage.get("prompt_tokens", 0) or 0
        output_tokens = usage.get("completion_tokens", 0) or 0
        cached_tokens = (usage.get("prompt_tokens_details") or {}).get("cached_tokens", 0) or 0
        result.tokens = {"input": input_tokens, "output": output_tokens, "cached": cached_tokens}

        with self._lock:
            self._request_count += 1
            self._input_tokens += input_tokens
            self._output_tokens += output_tokens
            self._cached_tokens += cached_tokens

        choices = data.get("choices") or []
        if choices:
            choice = choices[0]
            message = choice.get("message") or {}
            result.finish_reason = choice.get("finish_reason", "") or ""
            result.text = message.get("content", "") or ""
            for call in message.get("tool_calls") or []:
                result.function_calls.append(FunctionCall.from_openai(call))

        if result.is_empty:
            logger.warning(
                "empty response from %s (finish_reason=%r)", effective_model, result.finish_reason
            )
            raise LLMError(
                f"Empty response: model '{effective_model}' produced no text and no tool calls",
                code="empty_response",
            )

        return result

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "request_count": self._request_count,
                "input_tokens": self._input_tokens,
                "output_tokens": self._output_tokens,
                "cached_tokens": self._cached_tokens,
                "total_tokens": self._input_tokens + self._output_tokens,
            }

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
