"""Chat client that speaks the OpenAI-compatible Responses API."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Callable, Dict, Iterator, Mapping, Optional

from .llm_client import ChatClient, LLMResponseFormatError, LLMTransportError

__all__ = ["ResponsesChatClient", "Transport", "http_post_json"]

LOGGER = logging.getLogger(__name__)

Transport = Callable[[Dict[str, Any]], str]


def http_post_json(url: str, payload: Mapping[str, Any], *, api_key: Optional[str], timeout: float) -> str:
    """POST ``payload`` as JSON and return the decoded body."""
    import urllib.error
    import urllib.request

    data = json.dumps(payload).encode("utf-8")
    headers = {"Content-Type": "application/json", "User-Agent": "sqlite-agent/0.1"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    request = urllib.request.Request(url, data=data, headers=headers, method="POST")

    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            raw = response.read()
            status = getattr(response, "status", 200)
    except TimeoutError as error:  # pragma: no cover - network-dependent
        raise LLMTransportError(f"Request to {url} timed out.") from error
    except urllib.error.HTTPError as error:  # pragma: no cover - network-dependent
        message = error.read().decode("utf-8", errors="ignore")
        raise LLMTransportError(f"HTTP {error.code}: {message}") from error
    except urllib.error.URLError as error:  # pragma: no cover - network-dependent
        raise LLMTransportError(f"Failed to reach {url}: {error.reason}") from error

    if status >= 400:
        raise LLMTransportError(f"Unexpected HTTP status {status}")
    return raw.decode("utf-8")


class ResponsesChatClient(ChatClient):
    """Thin adapter around the Responses API keeping history client-side."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-5-mini",
        transport: Optional[Transport] = None,
        timeout: float = 60.0,
        default_context_size: int = 4096,
        max_attempts: int = 3,
        retry_delay: float = 0.5,
    ) -> None:
        super().__init__(
            model,
            default_context_size=default_context_size,
            max_attempts=max_attempts,
            retry_delay=retry_delay,
        )
        self._api_key = api_key or os.getenv("OPENAI_API_KEY")
        self._url = base_url.rstrip("/") + "/responses"
        self._timeout = timeout
        self._transport = transport or self._http_transport

        if transport is None and not self._api_key:
            raise ValueError("An API key is required when using the default transport.")

    def _raw_invoke(self, payload: Dict[str, Any]) -> Optional[str]:
        """Send the request over the configured transport."""
        try:
            raw_response = self._transport(payload)
        except LLMTransportError:
            raise
        except Exception as error:  # pragma: no cover
            raise LLMTransportError(f"Transport rejected the request: {error}") from error

        return self._extract_model_payload(raw_response)

    def _http_transport(self, payload: Dict[str, Any]) -> str:
        if os.getenv("SQLITE_AGENT_DEBUG_PAYLOAD"):
            LOGGER.debug("Responses request payload:\n%s", json.dumps(payload, indent=2, sort_keys=True))
        return http_post_json(self._url, payload, api_key=self._api_key, timeout=self._timeout)

    def _extract_model_payload(self, raw_response: str) -> Optional[str]:
        """Extract the text content returned by the Responses API."""
        if not raw_response:
            return None

        try:
            data = json.loads(raw_response)
        except json.JSONDecodeError:
            return raw_response

        if not isinstance(data, dict):
            raise LLMResponseFormatError("Responses payload must be a JSON object.")

        output_text = data.get("output_text")
        if isinstance(output_text, str):
            return output_text

        nested = data.get("response") if isinstance(data.get("response"), dict) else {}
        containers = (data.get("output") or data.get("outputs"), nested.get("output"), data.get("choices"))
        for container in containers:
            text = next(_text_fields(container), None)
            if text is not None:
                return text

        if data.get("status") == "completed":
            return None
        raise LLMResponseFormatError("Responses payload did not contain output text.")


def _text_fields(container: Any) -> Iterator[str]:
    """Yield non-blank text from output items, their content parts, or a chat ``message``."""
    items = [container] if isinstance(container, dict) else container or ()
    for item in items:
        if not isinstance(item, dict):
            continue
        parts = item.get("content") if isinstance(item.get("content"), list) else ()
        candidates = [part.get("text") for part in parts if isinstance(part, dict)]
        candidates.append(item.get("text"))
        message = item.get("message")
        if isinstance(message, dict):
            candidates.append(message.get("content") or message.get("text"))
        for text in candidates:
            if isinstance(text, str) and text.strip():
                yield text
