import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator
from pydantic.alias_generators import to_camel

from .config import DEFAULT_PAGE_COUNT


class CamelModel(BaseModel):
    """JSON is camelCase on the wire; attributes stay snake_case."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class ImageEngine(str, Enum):
    gemini = "gemini"
    freepik = "freepik"
    placeholder = "placeholder"


# Books

class PageIn(CamelModel):
    page_number: int = Field(..., ge=1)
    content: str = ""
    image_prompt: str = ""
    image_url: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.image_url)


def check_page_sequence(page_numbers: List[int]) -> None:
    """Page numbers must be unique and form 1..N."""
    if len(set(page_numbers)) != len(page_numbers):
        raise ValueError("page numbers must be unique within a book")
    if sorted(page_numbers) != list(range(1, len(page_numbers) + 1)):
        raise ValueError("page numbers must form a contiguous 1..N sequence")


class BookCreate(CamelModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex, min_length=1, max_length=64)
    title: str = Field(..., min_length=1)
    theme: str = ""
    target_age: str = ""
    moral_value: str = ""
    cover_image_url: Optional[str] = None
    pages: List[PageIn] = []

    @model_validator(mode="after")
    def _pages_form_sequence(self):
        check_page_sequence([p.page_number for p in self.pages])
        return self

    @property
    def failed_pages(self) -> List[int]:
        return [p.page_number for p in self.pages if not p.is_complete]


class BookReplace(CamelModel):
    title: str = Field(..., min_length=1)
    theme: str
    target_age: str
    moral_value: str


class BookPatch(CamelModel):
    title: Optional[str] = Field(None, min_length=1)
    theme: Optional[str] = None
    target_age: Optional[str] = None
    moral_value: Optional[str] = None
    cover_image_url: Optional[str] = None


class PagePatch(CamelModel):
    content: Optional[str] = None
    image_prompt: Optional[str] = None
    image_url: Optional[str] = None


class PageResponse(CamelModel):
    page_number: int
    content: str
    image_prompt: str
    image_url: Optional[str] = None


class BookSummary(CamelModel):
    id: str
    title: str
    theme: Optional[str] = None
    target_age: Optional[str] = None
    moral_value: Optional[str] = None
    cover_image_url: Optional[str] = None
    created_at: Optional[datetime] = None


class BookWithPages(BookSummary):
    pages: List[PageResponse] = []


# Generation

class StoryRequest(CamelModel):
    theme: str = Field(..., min_length=1)
    main_character: str = ""
    target_age: str = "3-5"
    moral_value: str = ""
    genre: str = "Adventure"
    illustration_style: str = "Cartoon"
    character_type: str = "Human"
    language: str = "Indonesian"
    page_count: int = Field(DEFAULT_PAGE_COUNT, ge=1, le=16)

    book_id: Optional[str] = Field(None, min_length=1, max_length=64)
    image_engine: Optional[ImageEngine] = None
    gemini_api_key: Optional[str] = None
    freepik_api_key: Optional[str] = None


class StoryPageDraft(CamelModel):
    page_number: int
    content: str
    image_prompt: str


class StoryDraft(CamelModel):
    title: str
    pages: List[StoryPageDraft]


class GenerationResponse(CamelModel):
    book: BookWithPages
    failed_pages: List[int] = []
    partial: bool = False


class ImageRegenerateRequest(CamelModel):
    prompt: Optional[str] = None
    image_engine: Optional[ImageEngine] = None
    gemini_api_key: Optional[str] = None
    freepik_api_key: Optional[str] = None


# Proxy

class GeminiProxyRequest(CamelModel):
    model: str
    contents: Any
    config: Optional[Dict[str, Any]] = None
    request_type: Optional[str] = Field(None, alias="type")
    api_key: Optional[str] = None


class FreepikProxyRequest(CamelModel):
    prompt: str = Field(..., min_length=1)
    api_key: Optional[str] = None


# Settings

class ValidationResult(CamelModel):
    valid: bool
    message: str


class SettingsUpdate(CamelModel):
    brand_name: Optional[str] = None
    brand_logo: Optional[str] = None
    brand_logo_url: Optional[str] = None
    image_engine: Optional[ImageEngine] = None
    gemini_api_key: Optional[str] = None
    freepik_api_key: Optional[str] = None


class SettingsResponse(CamelModel):
    brand_name: str
    brand_logo: str
    brand_logo_url: str = ""
    image_engine: ImageEngine
    has_gemini_api_key: bool = False
    has_freepik_api_key: bool = False
    last_validation: Optional[ValidationResult] = None
    updated_at: Optional[datetime] = None


class KeyValidationRequest(CamelModel):
    api_key: Optional[str] = None
