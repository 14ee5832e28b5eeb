import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storybook import repository
from storybook import settings_repository
from storybook.db import get_db
from storybook.dependencies import GeneratorFactory, get_generator_factory
from storybook.schemas import BookWithPages, GenerationResponse, PageResponse, StoryRequest

router = APIRouter(prefix="/api", tags=["generation"])
logger = logging.getLogger(__name__)


@router.post("/generate", response_model=GenerationResponse, status_code=201)
def generate_book(
    payload: StoryRequest,
    db: Session = Depends(get_db),
    factory: GeneratorFactory = Depends(get_generator_factory),
):
    """
    Run the whole wizard pipeline and save the book.

    Keys sent with the request win over the saved settings record; the
    proxies fall back to the server environment when both are empty.
    """
    settings = settings_repository.get_settings(db)
    orchestrator = factory.orchestrator(
        payload.image_engine or settings.image_engine,
        gemini_api_key=payload.gemini_api_key or settings.gemini_api_key,
        freepik_api_key=payload.freepik_api_key or settings.freepik_api_key,
    )
    result = orchestrator.run(payload, lambda book: repository.create_book(db, book))

    record = result.persisted
    book = BookWithPages.model_validate(record)
    book.pages = [PageResponse.model_validate(p) for p in repository.get_pages(db, record.id)]
    logger.info(f"Generated book {record.id} ({len(book.pages)} pages, failed={result.failed_pages})")
    return GenerationResponse(book=book, failed_pages=result.failed_pages, partial=result.partial)
