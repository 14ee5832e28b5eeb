"""Error taxonomy shared by the proxy, the generation pipeline and the routes.

Every error carries the HTTP status it should surface with and a short
machine-readable ``code``; ``main.py`` renders them as
``{"error": message, "code": code}``.
"""

from typing import Any, Dict, Optional


class StorybookError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code}


class ConfigurationError(StorybookError):
    """Missing or unusable configuration, raised before any network call."""

    status_code = 500
    code = "configuration_error"


class ProviderError(StorybookError):
    """Upstream provider answered with a non-2xx response."""

    status_code = 502
    code = "provider_error"

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: Optional[int] = None,
        payload: Optional[Any] = None,
    ):
        super().__init__(message, status_code)
        self.provider = provider
        self.payload = payload

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["provider"] = self.provider
        if self.payload is not None:
            data["upstream"] = self.payload
        return data


class KeyRevokedError(ProviderError):
    code = "key_revoked"


class ProviderNetworkError(ProviderError):
    """Transport failure talking to a provider (eligible for image retries)."""

    status_code = 502
    code = "network_error"


class StoryFormatError(ProviderError):
    status_code = 502
    code = "story_format_error"


class ImageGenerationError(ProviderError):
    status_code = 502
    code = "image_generation_error"


class BookNotFoundError(StorybookError):
    status_code = 404
    code = "not_found"

    def __init__(self, book_id: str, page_number: Optional[int] = None):
        if page_number is None:
            message = "Book not found"
        else:
            message = f"Page {page_number} not found"
        super().__init__(message)
        self.book_id = book_id
        self.page_number = page_number


class BookConflictError(StorybookError):
    status_code = 409
    code = "conflict"
