"""
Library gateways used by the state store (client side; the API server
itself does not import this module).

``RepositoryGateway`` talks to the database directly through a session
factory. ``HttpLibraryGateway`` talks to a running API with any
requests-compatible session (``requests.Session`` or FastAPI's
``TestClient``).
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from . import repository
from . import settings_repository
from .errors import BookNotFoundError, StorybookError
from .schemas import (
    BookCreate,
    BookPatch,
    BookSummary,
    BookWithPages,
    PagePatch,
    PageResponse,
    SettingsResponse,
    SettingsUpdate,
)

logger = logging.getLogger(__name__)


class LibraryGateway(ABC):
    """Persistence seam of ``LibraryStore``."""

    @abstractmethod
    def list_books(self, sort_by: Optional[str] = None, order: Optional[str] = None) -> List[BookSummary]:
        ...

    @abstractmethod
    def get_book(self, book_id: str) -> BookWithPages:
        ...

    @abstractmethod
    def create_book(self, book: BookCreate) -> str:
        ...

    @abstractmethod
    def update_book(self, book_id: str, partial: BookPatch) -> BookWithPages:
        ...

    @abstractmethod
    def update_page(self, book_id: str, page_number: int, partial: PagePatch) -> PageResponse:
        ...

    @abstractmethod
    def delete_book(self, book_id: str) -> None:
        ...

    @abstractmethod
    def delete_all_books(self) -> int:
        ...

    @abstractmethod
    def push_settings(self, partial: SettingsUpdate) -> SettingsResponse:
        ...


class RepositoryGateway(LibraryGateway):
    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def _book_with_pages(self, db: Session, book) -> BookWithPages:
        result = BookWithPages.model_validate(book)
        result.pages = [PageResponse.model_validate(p) for p in repository.get_pages(db, book.id)]
        return result

    def list_books(self, sort_by=None, order=None):
        with self.session_factory() as db:
            return [BookSummary.model_validate(b) for b in repository.list_books(db, sort_by, order)]

    def get_book(self, book_id):
        with self.session_factory() as db:
            return self._book_with_pages(db, repository.get_book(db, book_id))

    def create_book(self, book):
        with self.session_factory() as db:
            return repository.create_book(db, book).id

    def update_book(self, book_id, partial):
        with self.session_factory() as db:
            return self._book_with_pages(db, repository.update_book(db, book_id, partial))

    def update_page(self, book_id, page_number, partial):
        with self.session_factory() as db:
            return PageResponse.model_validate(repository.update_page(db, book_id, page_number, partial))

    def delete_book(self, book_id):
        with self.session_factory() as db:
            repository.delete_book(db, book_id)

    def delete_all_books(self):
        with self.session_factory() as db:
            return repository.delete_all_books(db)

    def push_settings(self, partial):
        with self.session_factory() as db:
            return settings_repository.to_response(settings_repository.update_settings(db, partial))


class HttpLibraryGateway(LibraryGateway):
    def __init__(self, http, base_url: str = ""):
        self.http = http
        self.base_url = base_url.rstrip("/")

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _check(self, resp, book_id: Optional[str] = None, page_number: Optional[int] = None) -> Any:
        if resp.status_code == 404 and book_id is not None:
            raise BookNotFoundError(book_id, page_number)
        if resp.status_code >= 400:
            try:
                body = resp.json()
            except ValueError:
                body = {}
            message = body.get("error") if isinstance(body, dict) else None
            logger.warning(f"Library API error {resp.status_code}: {message or resp.text}")
            raise StorybookError(message or f"Library API returned {resp.status_code}", resp.status_code)
        return resp.json()

    def list_books(self, sort_by=None, order=None):
        params: Dict[str, str] = {}
        if sort_by:
            params["sortBy"] = sort_by
        if order:
            params["order"] = order
        data = self._check(self.http.get(self._url("/api/books"), params=params))
        return [BookSummary.model_validate(item) for item in data]

    def get_book(self, book_id):
        data = self._check(self.http.get(self._url(f"/api/books/{book_id}")), book_id)
        return BookWithPages.model_validate(data)

    def create_book(self, book):
        data = self._check(self.http.post(self._url("/api/books"), json=book.model_dump(mode="json", by_alias=True)))
        return data["id"]

    def update_book(self, book_id, partial):
        body = partial.model_dump(mode="json", by_alias=True, exclude_none=True)
        data = self._check(self.http.patch(self._url(f"/api/books/{book_id}"), json=body), book_id)
        return BookWithPages.model_validate(data)

    def update_page(self, book_id, page_number, partial):
        body = partial.model_dump(mode="json", by_alias=True, exclude_none=True)
        resp = self.http.patch(self._url(f"/api/books/{book_id}/pages/{page_number}"), json=body)
        return PageResponse.model_validate(self._check(resp, book_id, page_number))

    def delete_book(self, book_id):
        self._check(self.http.delete(self._url(f"/api/books/{book_id}")))

    def delete_all_books(self):
        return self._check(self.http.delete(self._url("/api/books"))).get("deleted", 0)

    def push_settings(self, partial):
        body = partial.model_dump(mode="json", by_alias=True, exclude_none=True)
        return SettingsResponse.model_validate(self._check(self.http.put(self._url("/api/settings"), json=body)))
