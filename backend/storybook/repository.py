"""Record mapper between books/pages rows and the API representation.

All writes that touch both tables happen inside a single session
transaction: either the book and every page are committed, or nothing is.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import BookConflictError, BookNotFoundError
from .models import Book, BookPage
from .schemas import BookCreate, BookPatch, BookReplace, PagePatch

logger = logging.getLogger(__name__)

# Sort keys are mapped to columns, never interpolated into SQL.
SORT_COLUMNS = {
    "createdAt": Book.created_at,
    "created_at": Book.created_at,
    "title": Book.title,
    "theme": Book.theme,
}
DEFAULT_SORT = "createdAt"


def page_row_id(book_id: str, page_number: int) -> str:
    return f"{book_id}-{page_number}"


def create_book(db: Session, book: BookCreate) -> Book:
    if db.get(Book, book.id) is not None:
        raise BookConflictError(f"Book '{book.id}' already exists")

    record = Book(
        id=book.id,
        title=book.title,
        theme=book.theme,
        target_age=book.target_age,
        moral_value=book.moral_value,
        cover_image_url=book.cover_image_url,
    )
    try:
        db.add(record)
        db.flush()
        for page in book.pages:
            db.add(
                BookPage(
                    id=page_row_id(book.id, page.page_number),
                    book_id=book.id,
                    page_number=page.page_number,
                    content=page.content,
                    image_prompt=page.image_prompt,
                    image_url=page.image_url,
                )
            )
        db.flush()
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning(f"create_book rolled back for book={book.id}: {exc}")
        raise BookConflictError(f"Could not save book '{book.id}': conflicting page rows") from exc
    except Exception:
        db.rollback()
        logger.exception(f"create_book rolled back for book={book.id}")
        raise
    db.refresh(record)
    return record


def list_books(db: Session, sort_by: Optional[str] = None, order: Optional[str] = None) -> List[Book]:
    column = SORT_COLUMNS.get(sort_by or "")
    direction = (order or "").strip().upper()
    if column is None:
        column = SORT_COLUMNS[DEFAULT_SORT]
        direction = "DESC"
    if direction not in ("ASC", "DESC"):
        direction = "DESC"
    ordering = column.asc() if direction == "ASC" else column.desc()
    tiebreak = Book.id.asc() if direction == "ASC" else Book.id.desc()
    return db.query(Book).order_by(ordering, tiebreak).all()


def get_book(db: Session, book_id: str) -> Book:
    book = db.get(Book, book_id)
    if book is None:
        raise BookNotFoundError(book_id)
    return book


def get_pages(db: Session, book_id: str) -> List[BookPage]:
    return (
        db.query(BookPage)
        .filter(BookPage.book_id == book_id)
        .order_by(BookPage.page_number.asc())
        .all()
    )


def replace_book(db: Session, book_id: str, fields: BookReplace) -> Book:
    book = get_book(db, book_id)
    book.title = fields.title
    book.theme = fields.theme
    book.target_age = fields.target_age
    book.moral_value = fields.moral_value
    db.commit()
    db.refresh(book)
    return book


def _coalesce(target, values: Dict[str, object]) -> None:
    for name, value in values.items():
        if value is not None:
            setattr(target, name, value)


def update_book(db: Session, book_id: str, partial: BookPatch) -> Book:
    book = get_book(db, book_id)
    _coalesce(book, partial.model_dump())
    db.commit()
    db.refresh(book)
    return book


def update_page(db: Session, book_id: str, page_number: int, partial: PagePatch) -> BookPage:
    get_book(db, book_id)
    page = db.get(BookPage, page_row_id(book_id, page_number))
    if page is None:
        raise BookNotFoundError(book_id, page_number)
    _coalesce(page, partial.model_dump())
    db.commit()
    db.refresh(page)
    return page


def delete_book(db: Session, book_id: str) -> bool:
    """Remove pages, then the book. Missing books are not an error."""
    try:
        db.query(BookPage).filter(BookPage.book_id == book_id).delete(synchronize_session=False)
        removed = db.query(Book).filter(Book.id == book_id).delete(synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(f"delete_book failed for book={book_id}")
        raise
    return bool(removed)


def delete_all_books(db: Session) -> int:
    try:
        db.query(BookPage).delete(synchronize_session=False)
        removed = db.query(Book).delete(synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("delete_all_books failed")
        raise
    return removed
