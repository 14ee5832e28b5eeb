"""Server-side forwarders for the text/image generation providers."""

from .freepik import FreepikProxy
from .gemini import GeminiProxy, first_text, translate_provider_error
from .keys import require_api_key, resolve_api_key

__all__ = [
    "FreepikProxy",
    "GeminiProxy",
    "first_text",
    "translate_provider_error",
    "require_api_key",
    "resolve_api_key",
]
