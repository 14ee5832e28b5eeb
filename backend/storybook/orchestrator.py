"""
Book creation pipeline: drafting -> illustrating -> assembling -> persisting.

A drafting failure aborts the run with nothing saved. Illustration failures
are isolated per page: the page keeps its text and prompt, loses only its
image, and is listed in ``GenerationResult.failed_pages``.
"""

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, TypeVar

from .config import IMAGE_MAX_WORKERS
from .image_generators import ImageGenerator
from .monitoring import emit_provider_event, sentry_warn
from .schemas import BookCreate, PageIn, StoryDraft, StoryPageDraft, StoryRequest
from .story_generator import StoryGenerator

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GenerationPhase(str, Enum):
    drafting = "drafting"
    illustrating = "illustrating"
    assembling = "assembling"
    persisting = "persisting"
    completed = "completed"
    failed = "failed"


@dataclass
class GenerationResult:
    book: BookCreate
    failed_pages: List[int] = field(default_factory=list)
    phases: List[GenerationPhase] = field(default_factory=list)
    persisted: Optional[object] = None

    @property
    def partial(self) -> bool:
        return bool(self.failed_pages)


class BookOrchestrator:
    def __init__(
        self,
        story_generator: StoryGenerator,
        image_generator: ImageGenerator,
        max_workers: int = IMAGE_MAX_WORKERS,
    ):
        self.story_generator = story_generator
        self.image_generator = image_generator
        self.max_workers = max(1, max_workers)
        self.phases: List[GenerationPhase] = []

    def _enter(self, phase: GenerationPhase) -> None:
        self.phases.append(phase)
        logger.info(f"Book generation: {phase.value}")

    def run(self, request: StoryRequest, persist: Callable[[BookCreate], T]) -> GenerationResult:
        self.phases = []
        try:
            self._enter(GenerationPhase.drafting)
            draft = self.story_generator.generate(request)
            logger.info(f"Story drafted: '{draft.title}' with {len(draft.pages)} pages")

            self._enter(GenerationPhase.illustrating)
            images = self.illustrate(draft.pages)

            self._enter(GenerationPhase.assembling)
            book = assemble_book(request, draft, images)

            self._enter(GenerationPhase.persisting)
            persisted = persist(book)
        except Exception:
            self._enter(GenerationPhase.failed)
            raise

        self._enter(GenerationPhase.completed)
        result = GenerationResult(
            book=book,
            failed_pages=book.failed_pages,
            phases=list(self.phases),
            persisted=persisted,
        )
        if result.partial:
            msg = f"Book {book.id} saved with missing illustrations for pages {result.failed_pages}"
            logger.warning(msg)
            sentry_warn(msg)
            emit_provider_event("generation.partial", {"book_id": book.id, "failed_pages": result.failed_pages})
        return result

    def illustrate(self, pages: List[StoryPageDraft]) -> Dict[int, Optional[str]]:
        """Request every page's image in parallel; a failed page maps to None."""
        if not pages:
            return {}

        def _one(page: StoryPageDraft) -> Optional[str]:
            try:
                return self.image_generator.generate(page.image_prompt).url
            except Exception as exc:
                logger.warning(f"Image generation failed for page {page.page_number}: {exc}")
                return None

        workers = min(self.max_workers, len(pages))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            urls = list(pool.map(_one, pages))
        return {page.page_number: url for page, url in zip(pages, urls)}


def assemble_book(
    request: StoryRequest,
    draft: StoryDraft,
    images: Dict[int, Optional[str]],
) -> BookCreate:
    pages = [
        PageIn(
            page_number=p.page_number,
            content=p.content,
            image_prompt=p.image_prompt,
            image_url=images.get(p.page_number),
        )
        for p in sorted(draft.pages, key=lambda p: p.page_number)
    ]
    return BookCreate(
        id=request.book_id or uuid.uuid4().hex,
        title=draft.title,
        theme=request.theme,
        target_age=request.target_age,
        moral_value=request.moral_value,
        cover_image_url=pages[0].image_url if pages else None,
        pages=pages,
    )
