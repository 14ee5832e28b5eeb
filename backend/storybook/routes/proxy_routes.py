from fastapi import APIRouter, Depends

from storybook.dependencies import get_freepik_proxy, get_gemini_proxy
from storybook.providers import FreepikProxy, GeminiProxy
from storybook.schemas import FreepikProxyRequest, GeminiProxyRequest

router = APIRouter(prefix="/api/proxy", tags=["proxy"])


@router.post("/gemini")
def proxy_gemini(payload: GeminiProxyRequest, proxy: GeminiProxy = Depends(get_gemini_proxy)):
    """Forward a generate_content call; the provider key never leaves the server."""
    return proxy.forward(
        payload.model,
        payload.contents,
        payload.config,
        request_type=payload.request_type,
        api_key=payload.api_key,
    )


@router.post("/freepik")
def proxy_freepik(payload: FreepikProxyRequest, proxy: FreepikProxy = Depends(get_freepik_proxy)):
    return proxy.forward(payload.prompt, api_key=payload.api_key)
