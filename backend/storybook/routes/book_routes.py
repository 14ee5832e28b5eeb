import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storybook import repository
from storybook import settings_repository
from storybook.db import get_db
from storybook.errors import BookNotFoundError
from storybook.dependencies import GeneratorFactory, get_generator_factory
from storybook.schemas import (
    BookCreate,
    BookPatch,
    BookReplace,
    BookSummary,
    BookWithPages,
    ImageRegenerateRequest,
    PagePatch,
    PageResponse,
)

router = APIRouter(prefix="/api/books", tags=["books"])
logger = logging.getLogger(__name__)


def _with_pages(db: Session, book) -> BookWithPages:
    response = BookWithPages.model_validate(book)
    response.pages = [PageResponse.model_validate(p) for p in repository.get_pages(db, book.id)]
    return response


@router.post("", status_code=201)
def create_book(payload: BookCreate, db: Session = Depends(get_db)):
    """Save a full book (metadata + every page) as one unit."""
    book = repository.create_book(db, payload)
    logger.info(f"Saved book {book.id} '{book.title}' with {len(payload.pages)} pages")
    return {"success": True, "id": book.id}


@router.get("", response_model=List[BookSummary])
def list_books(
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    order: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    """Library listing; pages are not included."""
    books = repository.list_books(db, sort_by, order)
    return [BookSummary.model_validate(b) for b in books]


@router.delete("")
def delete_all_books(db: Session = Depends(get_db)):
    removed = repository.delete_all_books(db)
    logger.info(f"Deleted all books ({removed})")
    return {"success": True, "deleted": removed}


@router.get("/{book_id}", response_model=BookWithPages)
def get_book(book_id: str, db: Session = Depends(get_db)):
    return _with_pages(db, repository.get_book(db, book_id))


@router.put("/{book_id}", response_model=BookWithPages)
def replace_book(book_id: str, payload: BookReplace, db: Session = Depends(get_db)):
    return _with_pages(db, repository.replace_book(db, book_id, payload))


@router.patch("/{book_id}", response_model=BookWithPages)
def patch_book(book_id: str, payload: BookPatch, db: Session = Depends(get_db)):
    """Partial update; omitted or null fields keep their stored value."""
    return _with_pages(db, repository.update_book(db, book_id, payload))


@router.delete("/{book_id}")
def delete_book(book_id: str, db: Session = Depends(get_db)):
    """Delete pages then the book. Deleting a missing book still succeeds."""
    existed = repository.delete_book(db, book_id)
    if not existed:
        logger.info(f"delete_book: book {book_id} was already absent")
    return {"success": True}


@router.patch("/{book_id}/pages/{page_number}", response_model=PageResponse)
def patch_page(book_id: str, page_number: int, payload: PagePatch, db: Session = Depends(get_db)):
    page = repository.update_page(db, book_id, page_number, payload)
    if page_number == 1 and payload.image_url is not None:
        repository.update_book(db, book_id, BookPatch(cover_image_url=page.image_url))
    return PageResponse.model_validate(page)


@router.post("/{book_id}/pages/{page_number}/image", response_model=PageResponse)
def regenerate_page_image(
    book_id: str,
    page_number: int,
    payload: Optional[ImageRegenerateRequest] = None,
    db: Session = Depends(get_db),
    factory: GeneratorFactory = Depends(get_generator_factory),
):
    """Generate a fresh illustration from the page prompt (editor action)."""
    payload = payload or ImageRegenerateRequest()
    book = repository.get_book(db, book_id)
    page = next((p for p in repository.get_pages(db, book.id) if p.page_number == page_number), None)
    if page is None:
        raise BookNotFoundError(book_id, page_number)

    settings = settings_repository.get_settings(db)
    generator = factory.image_generator(
        payload.image_engine or settings.image_engine,
        gemini_api_key=payload.gemini_api_key or settings.gemini_api_key,
        freepik_api_key=payload.freepik_api_key or settings.freepik_api_key,
    )
    result = generator.generate(payload.prompt or page.image_prompt)
    return patch_page(
        book_id,
        page_number,
        PagePatch(image_url=result.url, image_prompt=payload.prompt),
        db,
    )
