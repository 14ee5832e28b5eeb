import pytest
from sqlalchemy.exc import OperationalError

from storybook import repository, settings_repository
from storybook.errors import BookConflictError, BookNotFoundError
from storybook.models import Book, BookPage
from storybook.schemas import BookCreate, BookPatch, BookReplace, PagePatch, SettingsUpdate, ValidationResult


def _book(book_id="b1", title="Moon Cat", pages=3):
    return BookCreate(
        id=book_id,
        title=title,
        theme="space",
        target_age="3-5",
        moral_value="courage",
        cover_image_url="https://img/cover.png",
        pages=[
            {"page_number": n, "content": f"p{n}", "image_prompt": f"prompt {n}", "image_url": f"https://img/{n}.png"}
            for n in range(pages, 0, -1)
        ],
    )


def test_create_then_get_pages_sorted(db):
    repository.create_book(db, _book())

    book = repository.get_book(db, "b1")
    pages = repository.get_pages(db, "b1")

    assert book.title == "Moon Cat"
    assert [p.page_number for p in pages] == [1, 2, 3]
    assert [p.id for p in pages] == ["b1-1", "b1-2", "b1-3"]
    assert pages[0].content == "p1"


def test_create_existing_id_conflicts_and_keeps_original(db):
    repository.create_book(db, _book())

    with pytest.raises(BookConflictError):
        repository.create_book(db, _book(title="Other"))

    assert repository.get_book(db, "b1").title == "Moon Cat"
    assert len(repository.get_pages(db, "b1")) == 3


def test_create_rolls_back_book_when_pages_fail(db, session_factory, monkeypatch):
    real_flush = db.flush
    flushes = []

    def failing_flush(*args, **kwargs):
        flushes.append(1)
        if len(flushes) == 2:
            raise OperationalError("INSERT INTO pages", {}, Exception("disk I/O error"))
        return real_flush(*args, **kwargs)

    monkeypatch.setattr(db, "flush", failing_flush)

    with pytest.raises(OperationalError):
        repository.create_book(db, _book())

    with session_factory() as fresh:
        assert fresh.query(Book).count() == 0
        assert fresh.query(BookPage).count() == 0


def test_get_missing_book_raises(db):
    with pytest.raises(BookNotFoundError):
        repository.get_book(db, "missing")


def test_list_books_sorting(db):
    repository.create_book(db, _book("a", "Zebra"))
    repository.create_book(db, _book("b", "Apple"))

    by_title = repository.list_books(db, "title", "asc")
    assert [b.title for b in by_title] == ["Apple", "Zebra"]

    by_title_desc = repository.list_books(db, "title", "DESC")
    assert [b.title for b in by_title_desc] == ["Zebra", "Apple"]


def test_list_books_unknown_sort_falls_back_to_newest_first(db):
    repository.create_book(db, _book("old", "Old"))
    repository.create_book(db, _book("new", "New"))
    old = db.get(Book, "old")
    new = db.get(Book, "new")
    new.created_at = old.created_at.replace(year=old.created_at.year + 1)
    db.commit()

    books = repository.list_books(db, "not-a-column; DROP TABLE books", "asc")

    assert [b.id for b in books] == ["new", "old"]


def test_replace_book_overwrites_four_fields(db):
    repository.create_book(db, _book())

    book = repository.replace_book(
        db, "b1", BookReplace(title="New", theme="sea", target_age="6-8", moral_value="kindness")
    )

    assert (book.title, book.theme, book.target_age, book.moral_value) == ("New", "sea", "6-8", "kindness")
    assert book.cover_image_url == "https://img/cover.png"


def test_update_book_keeps_omitted_and_null_fields(db):
    repository.create_book(db, _book())

    book = repository.update_book(db, "b1", BookPatch(title="X", theme=None))

    assert book.title == "X"
    assert book.theme == "space"
    assert book.target_age == "3-5"
    assert book.moral_value == "courage"
    assert book.cover_image_url == "https://img/cover.png"


def test_update_missing_book_raises(db):
    with pytest.raises(BookNotFoundError):
        repository.update_book(db, "nope", BookPatch(title="X"))


def test_update_page(db):
    repository.create_book(db, _book())

    page = repository.update_page(db, "b1", 2, PagePatch(content="edited"))

    assert page.content == "edited"
    assert page.image_prompt == "prompt 2"

    with pytest.raises(BookNotFoundError) as excinfo:
        repository.update_page(db, "b1", 9, PagePatch(content="x"))
    assert excinfo.value.message == "Page 9 not found"


def test_delete_book_removes_pages_and_is_idempotent(db):
    repository.create_book(db, _book())

    assert repository.delete_book(db, "b1") is True
    assert repository.delete_book(db, "b1") is False

    assert db.query(BookPage).count() == 0
    with pytest.raises(BookNotFoundError):
        repository.get_book(db, "b1")


def test_delete_all_books(db):
    repository.create_book(db, _book("a"))
    repository.create_book(db, _book("b"))

    assert repository.delete_all_books(db) == 2
    assert repository.list_books(db) == []
    assert db.query(BookPage).count() == 0


def test_settings_row_created_with_defaults(db):
    settings = settings_repository.get_settings(db)

    assert settings.id == "global"
    assert settings.brand_name == "StoryAI"
    assert settings.image_engine == "gemini"


def test_settings_update_coalesces_and_masks_keys(db):
    settings_repository.update_settings(db, SettingsUpdate(brand_name="Tales", gemini_api_key="secret"))
    settings_repository.update_settings(db, SettingsUpdate(image_engine="freepik"))
    settings_repository.record_validation(db, ValidationResult(valid=True, message="API Key valid!"))

    response = settings_repository.to_response(settings_repository.get_settings(db))
    dumped = response.model_dump(by_alias=True)

    assert response.brand_name == "Tales"
    assert response.image_engine.value == "freepik"
    assert response.has_gemini_api_key is True
    assert response.has_freepik_api_key is False
    assert response.last_validation.valid is True
    assert "secret" not in str(dumped)
