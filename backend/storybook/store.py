"""
Application state for a library client: the book list, the book open in
the editor, the generating flag and user settings.

State lives on a ``LibraryStore`` instance; nothing here is module-global.
Persisted actions go through a ``LibraryGateway``; settings are also
written to the local settings tier.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .gateways import LibraryGateway
from .local_settings import LocalSettingsStorage
from .orchestrator import BookOrchestrator, GenerationResult
from .schemas import (
    BookCreate,
    BookPatch,
    BookSummary,
    BookWithPages,
    ImageEngine,
    PagePatch,
    PageResponse,
    SettingsResponse,
    SettingsUpdate,
    StoryRequest,
    ValidationResult,
)

logger = logging.getLogger(__name__)


@dataclass
class StoreSettings:
    brand_name: str = "StoryAI"
    brand_logo: str = "BookOpen"
    brand_logo_url: str = ""
    image_engine: str = ImageEngine.gemini.value
    gemini_api_key: str = ""
    freepik_api_key: str = ""
    last_validation: Optional[ValidationResult] = None

    def to_local(self) -> Dict[str, Any]:
        return {
            "brandName": self.brand_name,
            "brandLogo": self.brand_logo,
            "brandLogoUrl": self.brand_logo_url,
            "imageEngine": self.image_engine,
            "geminiApiKey": self.gemini_api_key,
            "freepikApiKey": self.freepik_api_key,
        }

    @classmethod
    def from_local(cls, data: Optional[Dict[str, Any]]) -> "StoreSettings":
        settings = cls()
        if not data:
            return settings
        settings.brand_name = data.get("brandName") or settings.brand_name
        settings.brand_logo = data.get("brandLogo") or settings.brand_logo
        settings.brand_logo_url = data.get("brandLogoUrl") or ""
        settings.image_engine = data.get("imageEngine") or settings.image_engine
        settings.gemini_api_key = data.get("geminiApiKey") or ""
        settings.freepik_api_key = data.get("freepikApiKey") or ""
        return settings

    def to_update(self) -> SettingsUpdate:
        return SettingsUpdate(
            brand_name=self.brand_name,
            brand_logo=self.brand_logo,
            brand_logo_url=self.brand_logo_url,
            image_engine=self.image_engine,
            gemini_api_key=self.gemini_api_key or None,
            freepik_api_key=self.freepik_api_key or None,
        )


@dataclass
class LibraryStore:
    gateway: LibraryGateway
    local_storage: Optional[LocalSettingsStorage] = None
    sync_remote: bool = False

    books: List[BookSummary] = field(default_factory=list)
    current_book: Optional[BookWithPages] = None
    is_generating: bool = False
    settings: StoreSettings = field(default_factory=StoreSettings)
    # book id -> (position in the list, book) while a delete is in flight
    pending_deletes: Dict[str, Tuple[int, BookSummary]] = field(default_factory=dict)

    def __post_init__(self):
        if self.local_storage is not None:
            self.settings = StoreSettings.from_local(self.local_storage.load())

    # In-memory actions

    def set_books(self, books: List[BookSummary]) -> None:
        self.books = list(books)

    def set_current_book(self, book: Optional[BookWithPages]) -> None:
        self.current_book = book

    def set_is_generating(self, flag: bool) -> None:
        self.is_generating = flag

    def add_book(self, book: BookSummary) -> None:
        self.books = [book] + [b for b in self.books if b.id != book.id]

    def update_page(self, page_number: int, **updates) -> bool:
        """Edit a page of the open book locally; False when there is nothing to edit."""
        if self.current_book is None:
            return False
        changed = False
        pages = []
        for page in self.current_book.pages:
            if page.page_number == page_number:
                page = page.model_copy(update=updates)
                changed = True
            pages.append(page)
        self.current_book = self.current_book.model_copy(update={"pages": pages})
        return changed

    def close_book(self) -> None:
        self.current_book = None

    # Persisted actions

    def load_books(self, sort_by: Optional[str] = None, order: Optional[str] = None) -> List[BookSummary]:
        self.set_books(self.gateway.list_books(sort_by, order))
        return self.books

    def open_book(self, book_id: str) -> BookWithPages:
        book = self.gateway.get_book(book_id)
        self.set_current_book(book)
        return book

    def save_book(self, book: BookCreate) -> str:
        book_id = self.gateway.create_book(book)
        self.add_book(self.gateway.get_book(book_id))
        return book_id

    def save_page(self, page_number: int) -> PageResponse:
        """Write the open book's (locally edited) page back."""
        if self.current_book is None:
            raise ValueError("No book is open")
        page = next((p for p in self.current_book.pages if p.page_number == page_number), None)
        if page is None:
            raise ValueError(f"Page {page_number} is not part of the open book")
        saved = self.gateway.update_page(
            self.current_book.id,
            page_number,
            PagePatch(content=page.content, image_prompt=page.image_prompt, image_url=page.image_url),
        )
        if page_number == 1 and saved.image_url:
            self._apply_details(self.current_book.id, {"cover_image_url": saved.image_url})
        return saved

    def _apply_details(self, book_id: str, fields: Dict[str, Any]) -> None:
        self.books = [b.model_copy(update=fields) if b.id == book_id else b for b in self.books]
        if self.current_book is not None and self.current_book.id == book_id:
            self.current_book = self.current_book.model_copy(update=fields)

    def update_book_details(self, book_id: str, **fields) -> BookWithPages:
        """
        Optimistic metadata edit: the local copies change first and are
        rolled back if the server rejects the update.
        """
        values = {k: v for k, v in fields.items() if v is not None}
        previous_books = list(self.books)
        previous_current = self.current_book
        self._apply_details(book_id, values)
        try:
            updated = self.gateway.update_book(book_id, BookPatch(**values))
        except Exception:
            logger.warning(f"Reverting optimistic update of book {book_id}")
            self.books = previous_books
            self.current_book = previous_current
            raise
        if self.current_book is not None and self.current_book.id == book_id:
            self.current_book = updated
        return updated

    def generate_book(self, request: StoryRequest, orchestrator: BookOrchestrator) -> GenerationResult:
        """Run the wizard pipeline, then open the saved book."""
        self.set_is_generating(True)
        try:
            result = orchestrator.run(request, self.gateway.create_book)
            book = self.gateway.get_book(result.book.id)
            self.add_book(book)
            self.set_current_book(book)
        finally:
            self.set_is_generating(False)
        return result

    # Two-phase delete

    def mark_pending_delete(self, book_id: str) -> bool:
        for index, book in enumerate(self.books):
            if book.id == book_id:
                self.pending_deletes[book_id] = (index, book)
                self.books = self.books[:index] + self.books[index + 1:]
                break
        if self.current_book is not None and self.current_book.id == book_id:
            self.current_book = None
        return book_id in self.pending_deletes

    def reconcile_delete(self, book_id: str, succeeded: bool) -> None:
        pending = self.pending_deletes.pop(book_id, None)
        if pending is None or succeeded:
            return
        index, book = pending
        if any(b.id == book_id for b in self.books):
            return
        self.books.insert(min(index, len(self.books)), book)
        logger.info(f"Delete of book {book_id} failed; restored to the library")

    def delete_book(self, book_id: str) -> None:
        self.mark_pending_delete(book_id)
        try:
            self.gateway.delete_book(book_id)
        except Exception:
            self.reconcile_delete(book_id, succeeded=False)
            raise
        self.reconcile_delete(book_id, succeeded=True)

    def delete_all_books(self) -> int:
        ids = [b.id for b in self.books]
        # from the back so each recorded position stays valid for restore
        for book_id in reversed(ids):
            self.mark_pending_delete(book_id)
        self.current_book = None
        try:
            removed = self.gateway.delete_all_books()
        except Exception:
            for book_id in ids:
                self.reconcile_delete(book_id, succeeded=False)
            raise
        for book_id in ids:
            self.reconcile_delete(book_id, succeeded=True)
        return removed

    # Settings

    def set_brand_settings(self, name: str, logo: str, logo_url: str = "") -> None:
        self.settings.brand_name = name
        self.settings.brand_logo = logo
        self.settings.brand_logo_url = logo_url
        self._persist_settings()

    def set_image_settings(self, engine, freepik_api_key: str = "") -> None:
        self.settings.image_engine = ImageEngine(engine).value
        self.settings.freepik_api_key = freepik_api_key
        self._persist_settings()

    def set_gemini_api_key(self, key: str) -> None:
        self.settings.gemini_api_key = key
        self._persist_settings()

    def set_validation_result(self, result: ValidationResult) -> None:
        self.settings.last_validation = result
        self._persist_settings()

    def sync_remote_settings(self) -> SettingsResponse:
        return self.gateway.push_settings(self.settings.to_update())

    def _persist_settings(self) -> None:
        """Fire-and-forget: a failing tier is logged, never raised to the caller."""
        if self.local_storage is not None:
            try:
                self.local_storage.save(self.settings.to_local())
            except Exception:
                logger.exception("Failed to persist local settings")
        if self.sync_remote:
            try:
                self.sync_remote_settings()
            except Exception as exc:
                logger.warning(f"Remote settings sync failed: {exc}")
