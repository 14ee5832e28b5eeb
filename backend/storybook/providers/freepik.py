import logging
from typing import Any, Dict, Optional

import requests

from ..config import FREEPIK_API_URL, FREEPIK_KEY_ENV, FREEPIK_TIMEOUT
from ..errors import ProviderNetworkError
from ..monitoring import record_provider_stage
from .gemini import translate_provider_error
from .keys import require_api_key

logger = logging.getLogger(__name__)


class FreepikProxy:
    """
    Minimal client for Freepik's text-to-image endpoint.

    Uses the synchronous contract:
      POST /v1/ai/text-to-image  { "prompt": ..., "num_images": 1, ... }
      -> { "data": [ { "base64": "..." } | { "url": "..." } ] }
    """

    provider = "freepik"

    def __init__(self, session: Optional[requests.Session] = None, base_url: Optional[str] = None):
        self.session = session or requests.Session()
        self.base_url = base_url or FREEPIK_API_URL

    def _headers(self, api_key: str) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "x-freepik-api-key": api_key,
        }

    def forward(self, prompt: str, api_key: Optional[str] = None) -> Dict[str, Any]:
        key = require_api_key("Freepik", api_key, FREEPIK_KEY_ENV)
        body = {
            "prompt": prompt,
            "num_images": 1,
            "image": {"size": "square_1_1"},
            "styling": {"style": "cartoon"},
        }
        try:
            with record_provider_stage("freepik.text_to_image", {"prompt_chars": len(prompt)}) as event:
                resp = self.session.post(
                    self.base_url,
                    headers=self._headers(key),
                    json=body,
                    timeout=FREEPIK_TIMEOUT,
                )
                event["context"]["status_code"] = resp.status_code
        except requests.RequestException as exc:
            logger.warning(f"Freepik transport failure: {exc}")
            raise ProviderNetworkError(self.provider, f"Failed to communicate with Freepik API: {exc}") from exc

        if not resp.ok:
            try:
                payload = resp.json()
            except ValueError:
                payload = {"error": resp.text}
            message = ""
            if isinstance(payload, dict):
                message = str(payload.get("message") or payload.get("error") or "")
            logger.warning(f"Freepik proxy error: status={resp.status_code} message={message}")
            raise translate_provider_error(self.provider, resp.status_code, message or "Freepik API Error", payload)
        return resp.json()
