"""
Client for the Anthropic Messages API.

The client sends one system instruction and one user message per call
and returns the text of the reply. Transport failures raise
:class:`LLMError`; a non-2xx response raises :class:`LLMHTTPError` so
that the retry layer can tell rate limits and server errors apart from
permanent failures.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


API_URL = "https://api.anthropic.com/v1/messages"
API_VERSION = "2023-06-01"
DEFAULT_MODEL = "claude-sonnet-4-20250514"


class LLMError(Exception):
    """Raised when communication with the classifier service fails."""

    pass


class LLMHTTPError(LLMError):
    """Raised when the service answers with a non-success HTTP status."""

    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"API returned status {status_code}: {body[:300]}")


_THINKING_TAGS = ("think", "thinking", "thought", "reasoning")


def strip_thinking_tags(text: str) -> str:
    """Remove reasoning blocks such as ``<think>...</think>`` from a reply.

    >>> strip_thinking_tags("<think>reasoning...</think>Answer")
    'Answer'
    """
    result = text
    for tag in _THINKING_TAGS:
        result = re.sub(rf"<{tag}>.*?</{tag}>", "", result, flags=re.DOTALL | re.IGNORECASE)
    return result.strip()


@dataclass
class ClaudeClient:
    """Client for the Anthropic Messages API.

    Parameters
    ----------
    api_key : str
        API key sent in the ``x-api-key`` header.
    model : str
        Model name, e.g. ``"claude-sonnet-4-20250514"``.
    request_timeout : float, optional
        Timeout in seconds for HTTP requests. Defaults to 120 seconds.
    max_tokens : int, optional
        Maximum number of tokens to generate. Defaults to 4096.
    api_url : str, optional
        Endpoint override, mainly for tests and proxies.
    """

    api_key: str
    model: str = DEFAULT_MODEL
    request_timeout: float = 120.0
    max_tokens: int = 4096
    api_url: str = API_URL

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": API_VERSION,
            "content-type": "application/json",
        }

    def generate(self, system: str, prompt: str) -> str:
        """Send ``prompt`` with the ``system`` instruction and return the reply text.

        Raises
        ------
        LLMHTTPError
            If the service returns a non-2xx status.
        LLMError
            If the request cannot be sent or the reply cannot be decoded.
        """
        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            payload["system"] = system
        logger.debug("Sending request to %s (model %s, %d prompt chars)", self.api_url, self.model, len(prompt))
        try:
            response = requests.post(
                self.api_url,
                headers=self._headers(),
                json=payload,
                timeout=self.request_timeout,
            )
        except requests.RequestException as exc:
            logger.error("Failed to reach the API: %s", exc)
            raise LLMError(str(exc)) from exc
        if not 200 <= response.status_code < 300:
            logger.error("API returned status %s", response.status_code)
            raise LLMHTTPError(response.status_code, response.text)
        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError) as exc:
            raise LLMError("Failed to parse API response") from exc
        blocks = data.get("content") if isinstance(data, dict) else None
        if not isinstance(blocks, list):
            raise LLMError("Unexpected response structure from API")
        text = "".join(
            block.get("text", "") for block in blocks if isinstance(block, dict) and block.get("type", "text") == "text"
        )
        if not text.strip():
            raise LLMError("Empty response from API")
        return strip_thinking_tags(text)
