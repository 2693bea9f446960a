"""OpenRouter chat-completions client used for idea generation."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from infinitecanvas.config import CanvasConfig

logger = logging.getLogger(__name__)

REFERER = "https://github.com/infinitecanvas/infinitecanvas"
TITLE = "Infinite Canvas"


class GenerationError(RuntimeError):
    """A generation request failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def describe_generation_error(exc: BaseException) -> str:
    """Turn a generation failure into a message for the user."""
    prefix = "Failed to generate ideas. "
    status = getattr(exc, "status_code", None)
    text = str(exc)
    lowered = text.lower()

    if isinstance(exc, httpx.TransportError) or "network" in lowered:
        return prefix + "Network error. Please try again."
    if status == 401 or "no auth credentials" in lowered or "unauthorized" in lowered:
        return prefix + "Authentication failed. Check your OpenRouter API key."
    if "api key" in lowered:
        return prefix + "No OpenRouter API key configured."
    if "quota" in lowered or status == 402:
        return prefix + "API quota exceeded."
    if status == 429 or "rate limit" in lowered:
        return prefix + "Rate limit exceeded. Please wait and try again."
    if status == 404 or ("model" in lowered and "not found" in lowered):
        return prefix + "The requested model is not available."
    return prefix + (text or "Unknown error occurred.")


class OpenRouterClient:
    """Thin synchronous client; callers run it off the main loop."""

    def __init__(self, config: CanvasConfig,
                 transport: Optional[httpx.BaseTransport] = None):
        self.api_key = config.api_key
        self.base_url = config.base_url.rstrip("/")
        self.temperature = config.temperature
        self.max_tokens = config.max_tokens
        self.timeout = config.generation_timeout
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "HTTP-Referer": REFERER,
            "X-Title": TITLE,
        }

    def complete(self, model: str, messages: List[Dict[str, str]]) -> str:
        """Run one chat completion and return the reply text."""
        if not self.api_key:
            raise GenerationError("OpenRouter API key missing")

        payload: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        logger.info("Requesting completion from %s (%d messages)", model, len(messages))

        try:
            with httpx.Client(transport=self._transport, timeout=self.timeout) as client:
                response = client.post(
                    f"{self.base_url}/chat/completions",
                    headers=self._headers(),
                    json=payload,
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            detail = exc.response.text[:200]
            raise GenerationError(
                f"HTTP {exc.response.status_code}: {detail}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.TransportError as exc:
            raise GenerationError(f"Network error: {exc}") from exc
        except ValueError as exc:
            raise GenerationError(f"Malformed response: {exc}") from exc

        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise GenerationError("Malformed response: no completion choices") from exc

        text = (text or "").strip()
        if not text:
            raise GenerationError(f"{model} returned an empty response")
        return text
