# File: storyreel/openrouter_engine.py
"""
OpenRouter Engine Module

Async client for the OpenRouter chat-completions API (https://openrouter.ai/),
used for story writing and visual prompt generation.

- One shared `httpx.AsyncClient` with Bearer auth.
- Non-streaming completions only; retries are the caller's concern (see retry.py).
- Token usage and cost are read from the `usage` block of each response
  (requested with `usage: {"include": true}`) and accumulated as Decimal.
"""

import json
import logging
import time
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx

from .config import PipelineConfig

DEFAULT_TIMEOUT = 120.0
APP_TITLE = "StoryReel"
APP_URL = "local://storyreel"

logger = logging.getLogger(__name__)


class OpenRouterError(Exception):
    """Custom exception for OpenRouter API errors."""
    pass


class OpenRouterEngine:
    """Asynchronous OpenRouter chat-completion client with cost/time tracking."""

    def __init__(self, config: PipelineConfig, client: Optional[httpx.AsyncClient] = None,
                 timeout: float = DEFAULT_TIMEOUT):
        if not config.openrouter_key:
            raise ValueError("OpenRouter API key is required (OPENROUTER_API_KEY).")
        self.base_url = config.openrouter_base_url.rstrip("/")
        self.default_model = config.text_model
        self.headers = {
            "Authorization": f"Bearer {config.openrouter_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": APP_URL,
            "X-Title": APP_TITLE,
        }
        self.client = client or httpx.AsyncClient(headers=self.headers, timeout=timeout, follow_redirects=True)

        self.total_cost = Decimal("0.0")
        self.total_request_time = 0.0
        self.request_count = 0
        self.total_prompt_tokens = 0
        self.total_completion_tokens = 0
        logger.info(f"OpenRouterEngine initialized. Default model: {self.default_model}")

    async def close(self):
        await self.client.aclose()
        logger.debug("OpenRouterEngine client closed.")

    async def chat_completion(self, messages: List[Dict[str, Any]], model: Optional[str] = None,
                              **kwargs: Any) -> str:
        """Performs one chat completion and returns the trimmed message content."""
        model = model or self.default_model
        payload = {"model": model, "messages": messages, "usage": {"include": True}, **kwargs}
        endpoint = f"{self.base_url}/chat/completions"

        start_time = time.monotonic()
        self.request_count += 1
        try:
            response = await self.client.post(endpoint, json=payload, headers=self.headers)
            response.raise_for_status()
            response_json = response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            body = e.response.text[:300]
            if status in (401, 403):
                raise OpenRouterError(f"Unauthorized: OpenRouter rejected the API key ({status}).") from e
            if status in (400, 422):
                raise OpenRouterError(f"Invalid parameter in OpenRouter request ({status}): {body}") from e
            raise OpenRouterError(f"OpenRouter HTTP error {status}: {body}") from e
        except httpx.RequestError as e:
            raise OpenRouterError(f"Network error calling OpenRouter: {type(e).__name__}: {e}") from e
        except json.JSONDecodeError as e:
            raise OpenRouterError("Failed to decode OpenRouter response.") from e

        request_time = time.monotonic() - start_time
        self.total_request_time += request_time

        if response_json.get("error"):
            error = response_json["error"]
            message = error.get("message", "Unknown") if isinstance(error, dict) else str(error)
            raise OpenRouterError(f"Provider error: {message}")

        self._track_usage(response_json.get("usage") or {}, request_time)
        try:
            content = response_json["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise OpenRouterError(f"Unexpected completion structure: {str(response_json)[:200]}") from e
        return (content or "").strip()

    def _track_usage(self, usage: Dict[str, Any], request_time: float):
        prompt_tokens = int(usage.get("prompt_tokens") or 0)
        completion_tokens = int(usage.get("completion_tokens") or 0)
        cost_value = usage.get("cost")
        cost = Decimal(str(cost_value)) if cost_value is not None else Decimal("0.0")
        self.total_prompt_tokens += prompt_tokens
        self.total_completion_tokens += completion_tokens
        self.total_cost += cost
        logger.info(f"Request Stats: Cost: ${cost:.8f}, Tokens: {prompt_tokens + completion_tokens} "
                    f"({prompt_tokens} prompt + {completion_tokens} completion), Request Time: {request_time:.3f}s")

    def get_total_cost(self) -> Decimal:
        return self.total_cost
