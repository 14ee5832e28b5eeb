import logging
import threading
from typing import Any, Callable, Dict, Optional

import httpx
from google import genai
from google.genai import errors as genai_errors

from ..config import GEMINI_KEY_ENV, GEMINI_TEXT_MODEL
from ..errors import ConfigurationError, KeyRevokedError, ProviderError, ProviderNetworkError
from ..monitoring import record_provider_stage
from .keys import require_api_key

logger = logging.getLogger(__name__)

# Substrings Google puts in the error body when a key has been disabled.
KEY_REVOKED_MARKERS = ("leaked", "revoked")

KEY_REVOKED_MESSAGES = {
    "gemini": (
        "Your Gemini API key was reported as leaked and has been disabled by Google. "
        "Create a new key at aistudio.google.com and update it in Settings."
    ),
}


def translate_provider_error(provider: str, status_code: int, message: str, payload: Any = None) -> ProviderError:
    lowered = (message or "").lower()
    if any(marker in lowered for marker in KEY_REVOKED_MARKERS):
        hint = KEY_REVOKED_MESSAGES.get(
            provider,
            f"Your {provider.capitalize()} API key has been revoked. Create a new key and update it in Settings.",
        )
        return KeyRevokedError(provider, hint, status_code, payload)
    return ProviderError(provider, message or f"{provider} error ({status_code})", status_code, payload)


def _default_client_factory(api_key: str):
    return genai.Client(api_key=api_key)


class GeminiProxy:
    """
    Server-side forwarder for Gemini ``generate_content`` calls.

    The API key is resolved per call: caller-supplied key, then
    GEMINI_API_KEY, then VITE_GEMINI_API_KEY. Without any key a
    ConfigurationError is raised before a client is even built.
    """

    provider = "gemini"

    def __init__(self, client_factory: Optional[Callable[[str], Any]] = None):
        self._client_factory = client_factory or _default_client_factory
        self._clients: Dict[str, Any] = {}
        self._clients_lock = threading.Lock()

    def _client(self, key: str):
        # one client per key, shared by the parallel image calls
        with self._clients_lock:
            client = self._clients.get(key)
            if client is None:
                client = self._clients[key] = self._client_factory(key)
            return client

    def forward(
        self,
        model: str,
        contents: Any,
        config: Optional[Dict[str, Any]] = None,
        request_type: Optional[str] = None,
        api_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        key = require_api_key("Gemini", api_key, GEMINI_KEY_ENV)
        client = self._client(key)
        context = {"model": model, "type": request_type or "text"}
        try:
            with record_provider_stage("gemini.generate_content", context):
                response = client.models.generate_content(model=model, contents=contents, config=config)
        except genai_errors.APIError as exc:
            logger.warning(f"Gemini proxy error: code={exc.code} message={exc.message}")
            raise translate_provider_error(self.provider, exc.code or 502, exc.message or str(exc), exc.details) from exc
        except httpx.TransportError as exc:
            logger.warning(f"Gemini transport failure: {exc}")
            raise ProviderNetworkError(self.provider, f"Failed to reach Gemini API: {exc}") from exc

        payload = response.model_dump(mode="json", by_alias=True, exclude_none=True)
        if request_type == "image":
            return {"candidates": payload.get("candidates") or []}
        return payload

    def validate_key(self, api_key: str) -> Dict[str, Any]:
        """One-token round trip; never raises for a bad key."""
        try:
            self.forward(
                GEMINI_TEXT_MODEL,
                [{"parts": [{"text": "Hi"}]}],
                {"maxOutputTokens": 1},
                api_key=api_key,
            )
        except (ConfigurationError, ProviderError) as exc:
            return {"valid": False, "message": exc.message}
        return {"valid": True, "message": "API Key valid!"}


def first_text(response: Dict[str, Any]) -> Optional[str]:
    """Text of the first part of the first candidate, as the story caller expects."""
    for candidate in response.get("candidates") or []:
        parts = (candidate.get("content") or {}).get("parts") or []
        for part in parts:
            text = part.get("text")
            if text:
                return text
        break
    return None
