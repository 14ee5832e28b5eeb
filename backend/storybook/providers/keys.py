import os
from typing import Iterable, Optional

from ..errors import ConfigurationError


def resolve_api_key(override: Optional[str], env_names: Iterable[str]) -> Optional[str]:
    """Caller-supplied key first, then the environment in the given order."""
    if override and override.strip():
        return override.strip()
    for name in env_names:
        value = os.getenv(name, "").strip()
        if value:
            return value
    return None


def require_api_key(provider: str, override: Optional[str], env_names: Iterable[str]) -> str:
    key = resolve_api_key(override, env_names)
    if not key:
        raise ConfigurationError(f"{provider} API Key not configured on server")
    return key
