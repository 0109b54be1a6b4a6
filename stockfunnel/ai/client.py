"""Judge clients: the external service that rates a setup."""
from __future__ import annotations

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import requests

from stockfunnel.core.config import AIConfig
from stockfunnel.core.exceptions import JudgeError, JudgeResponseError, JudgeTimeoutError

logger = logging.getLogger(__name__)

_USER_AGENT = "StockFunnel/0.1 (setup-judge; Python/requests)"


@dataclass
class JudgeResponse:
    content: str
    input_tokens: int = 0
    output_tokens: int = 0


class JudgeClient(ABC):
    """Takes a prepared prompt and returns the raw model text.

    Implementations raise ``JudgeError`` (or a subclass) on any failure so a
    failed call is never mistaken for a low-confidence verdict.
    """

    @abstractmethod
    async def evaluate(self, prompt: dict[str, Any]) -> JudgeResponse: ...


class HttpJudgeClient(JudgeClient):
    """OpenAI-compatible chat-completions client.

    The blocking ``requests`` call runs in a worker thread so a slow judge
    never stalls the event loop.
    """

    def __init__(self, config: AIConfig, api_key: str | None = None) -> None:
        self._config = config
        self._api_key = api_key if api_key is not None else os.getenv(config.api_key_env, "")
        self._url = config.base_url.rstrip("/") + "/chat/completions"

    async def evaluate(self, prompt: dict[str, Any]) -> JudgeResponse:
        return await asyncio.to_thread(self._post, prompt)

    def _post(self, prompt: dict[str, Any]) -> JudgeResponse:
        headers = {"User-Agent": _USER_AGENT, "Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        body = {
            "model": self._config.model,
            "temperature": self._config.temperature,
            "max_tokens": self._config.max_tokens,
            "messages": [
                {"role": "system", "content": prompt["system_message"]},
                {"role": "user", "content": prompt["user_message"]},
            ],
        }
        try:
            resp = requests.post(self._url, json=body, headers=headers, timeout=self._config.timeout_seconds)
            resp.raise_for_status()
        except requests.Timeout as exc:
            raise JudgeTimeoutError(f"no response within {self._config.timeout_seconds}s") from exc
        except requests.RequestException as exc:
            raise JudgeError(str(exc)) from exc

        try:
            payload = resp.json()
            content = payload["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise JudgeResponseError(f"unexpected completion payload: {exc}") from exc
        if not isinstance(content, str) or not content.strip():
            raise JudgeResponseError("empty completion")

        usage = payload.get("usage")
        if not isinstance(usage, dict):
            usage = {}
        return JudgeResponse(
            content=content,
            input_tokens=_token_count(usage, "prompt_tokens"),
            output_tokens=_token_count(usage, "completion_tokens"),
        )


def _token_count(usage: dict[str, Any], key: str) -> int:
    try:
        return int(usage.get(key) or 0)
    except (TypeError, ValueError):
        logger.warning("Ignoring unreadable usage field %s=%r", key, usage.get(key))
        return 0
