from functools import lru_cache
from typing import Optional

from fastapi import Depends

from .image_generators import ImageGenerator, build_image_generator
from .orchestrator import BookOrchestrator
from .providers import FreepikProxy, GeminiProxy
from .story_generator import StoryGenerator


# One proxy per process; provider clients and HTTP sessions live with it.
@lru_cache(maxsize=None)
def get_gemini_proxy() -> GeminiProxy:
    return GeminiProxy()


@lru_cache(maxsize=None)
def get_freepik_proxy() -> FreepikProxy:
    return FreepikProxy()


class GeneratorFactory:
    """Builds story/image generators bound to the proxies of this request."""

    def __init__(self, gemini_proxy: GeminiProxy, freepik_proxy: FreepikProxy):
        self.gemini_proxy = gemini_proxy
        self.freepik_proxy = freepik_proxy

    def image_generator(
        self,
        engine,
        gemini_api_key: Optional[str] = None,
        freepik_api_key: Optional[str] = None,
    ) -> ImageGenerator:
        return build_image_generator(
            engine,
            gemini_proxy=self.gemini_proxy,
            freepik_proxy=self.freepik_proxy,
            gemini_api_key=gemini_api_key,
            freepik_api_key=freepik_api_key,
        )

    def orchestrator(
        self,
        engine,
        gemini_api_key: Optional[str] = None,
        freepik_api_key: Optional[str] = None,
    ) -> BookOrchestrator:
        return BookOrchestrator(
            StoryGenerator(self.gemini_proxy, api_key=gemini_api_key),
            self.image_generator(engine, gemini_api_key, freepik_api_key),
        )


def get_generator_factory(
    gemini_proxy: GeminiProxy = Depends(get_gemini_proxy),
    freepik_proxy: FreepikProxy = Depends(get_freepik_proxy),
) -> GeneratorFactory:
    return GeneratorFactory(gemini_proxy, freepik_proxy)
