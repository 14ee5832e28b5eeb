import base64
import io
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from PIL import Image, ImageDraw, ImageFont

from .config import GEMINI_IMAGE_MODEL, IMAGE_RETRY_ATTEMPTS, IMAGE_RETRY_DELAY
from .errors import ConfigurationError, ImageGenerationError, ProviderNetworkError
from .monitoring import emit_provider_event
from .providers import FreepikProxy, GeminiProxy
from .schemas import ImageEngine

logger = logging.getLogger(__name__)


@dataclass
class ImageResult:
    url: str  # data: URL for inline images, otherwise a hosted URL

    @property
    def is_inline(self) -> bool:
        return self.url.startswith("data:")


def data_url(raw: bytes, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(raw).decode('ascii')}"


class ImageGenerator:
    """
    One illustration per prompt.

    Subclasses implement `_generate_once`; `generate` retries network-class
    failures a bounded number of times with a fixed delay. Any other error
    is final for that prompt.
    """

    name = "base"

    def __init__(
        self,
        attempts: int = IMAGE_RETRY_ATTEMPTS,
        delay: float = IMAGE_RETRY_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.attempts = max(1, attempts)
        self.delay = delay
        self._sleep = sleep

    def generate(self, prompt: str) -> ImageResult:
        attempt = 1
        while True:
            try:
                return self._generate_once(prompt)
            except ProviderNetworkError as exc:
                if attempt >= self.attempts:
                    raise
                logger.warning(f"{self.name} network failure (attempt {attempt}/{self.attempts}): {exc.message}")
                emit_provider_event(f"{self.name}.retry", {"attempt": attempt})
                attempt += 1
                self._sleep(self.delay)

    def _generate_once(self, prompt: str) -> ImageResult:
        raise NotImplementedError


class GeminiImageGenerator(ImageGenerator):
    name = "gemini"

    def __init__(self, proxy: GeminiProxy, api_key: Optional[str] = None, model: str = GEMINI_IMAGE_MODEL, **kwargs):
        super().__init__(**kwargs)
        self.proxy = proxy
        self.api_key = api_key
        self.model = model

    def _generate_once(self, prompt: str) -> ImageResult:
        response = self.proxy.forward(
            self.model,
            {"parts": [{"text": prompt}]},
            {"imageConfig": {"aspectRatio": "1:1"}},
            request_type="image",
            api_key=self.api_key,
        )
        candidates = response.get("candidates") or []
        if not candidates:
            raise ImageGenerationError(self.name, "Gemini returned no candidates")

        refusal = []
        for part in (candidates[0].get("content") or {}).get("parts") or []:
            inline = part.get("inlineData")
            if inline and inline.get("data"):
                mime_type = inline.get("mimeType") or "image/png"
                return ImageResult(f"data:{mime_type};base64,{inline['data']}")
            if part.get("text"):
                refusal.append(part["text"])
        raise ImageGenerationError(self.name, " ".join(refusal).strip() or "Model returned no image data")


class FreepikImageGenerator(ImageGenerator):
    name = "freepik"

    def __init__(self, proxy: FreepikProxy, api_key: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.proxy = proxy
        self.api_key = api_key

    def _generate_once(self, prompt: str) -> ImageResult:
        data = self.proxy.forward(prompt, api_key=self.api_key)
        items = data.get("data") if isinstance(data, dict) else None
        if items:
            first = items[0] or {}
            if first.get("base64"):
                return ImageResult(f"data:image/png;base64,{first['base64']}")
            if first.get("url"):
                return ImageResult(first["url"])
        raise ImageGenerationError(self.name, "No image returned from Freepik")


class PlaceholderImageGenerator(ImageGenerator):
    """Offline engine: draws a labelled card instead of calling a provider."""

    name = "placeholder"

    def __init__(self, size=(800, 800), **kwargs):
        super().__init__(**kwargs)
        self.size = size

    def _generate_once(self, prompt: str) -> ImageResult:
        width, height = self.size
        img = Image.new("RGB", (width, height), color="#E8F4FD")
        draw = ImageDraw.Draw(img)
        font = ImageFont.load_default()

        caption = (prompt or "Illustration").strip()
        lines = [caption[i:i + 48] for i in range(0, min(len(caption), 240), 48)]
        y = height // 2 - 10 * len(lines)
        for line in lines:
            bbox = draw.textbbox((0, 0), line, font=font)
            draw.text(((width - (bbox[2] - bbox[0])) // 2, y), line, fill="#2E86AB", font=font)
            y += (bbox[3] - bbox[1]) + 8

        draw.rectangle([10, 10, width - 10, height - 10], outline="#CCCCCC", width=3)

        buf = io.BytesIO()
        img.save(buf, format="PNG")
        return ImageResult(data_url(buf.getvalue()))


def build_image_generator(
    engine,
    gemini_proxy: Optional[GeminiProxy] = None,
    freepik_proxy: Optional[FreepikProxy] = None,
    gemini_api_key: Optional[str] = None,
    freepik_api_key: Optional[str] = None,
    **kwargs,
) -> ImageGenerator:
    try:
        engine = ImageEngine(engine or ImageEngine.gemini)
    except ValueError:
        raise ConfigurationError(f"Unknown image engine: {engine}")

    if engine == ImageEngine.freepik:
        return FreepikImageGenerator(freepik_proxy or FreepikProxy(), freepik_api_key, **kwargs)
    if engine == ImageEngine.placeholder:
        return PlaceholderImageGenerator(**kwargs)
    return GeminiImageGenerator(gemini_proxy or GeminiProxy(), gemini_api_key, **kwargs)
