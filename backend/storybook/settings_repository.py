from typing import Optional

from sqlalchemy.orm import Session

from .config import SETTINGS_ROW_ID
from .models import AppSettings
from .schemas import SettingsResponse, SettingsUpdate, ValidationResult


def get_settings(db: Session) -> AppSettings:
    """Load the single settings row, creating it with defaults on first use."""
    settings = db.get(AppSettings, SETTINGS_ROW_ID)
    if settings is None:
        settings = AppSettings(id=SETTINGS_ROW_ID)
        db.add(settings)
        db.commit()
        db.refresh(settings)
    return settings


def update_settings(db: Session, partial: SettingsUpdate) -> AppSettings:
    settings = get_settings(db)
    for name, value in partial.model_dump().items():
        if value is None:
            continue
        if name == "image_engine":
            value = value.value
        setattr(settings, name, value)
    db.commit()
    db.refresh(settings)
    return settings


def record_validation(db: Session, result: ValidationResult) -> AppSettings:
    settings = get_settings(db)
    settings.last_validation = result.model_dump()
    db.commit()
    db.refresh(settings)
    return settings


def to_response(settings: AppSettings) -> SettingsResponse:
    last: Optional[ValidationResult] = None
    if isinstance(settings.last_validation, dict):
        last = ValidationResult(**settings.last_validation)
    return SettingsResponse(
        brand_name=settings.brand_name or "StoryAI",
        brand_logo=settings.brand_logo or "BookOpen",
        brand_logo_url=settings.brand_logo_url or "",
        image_engine=settings.image_engine or "gemini",
        has_gemini_api_key=bool(settings.gemini_api_key),
        has_freepik_api_key=bool(settings.freepik_api_key),
        last_validation=last,
        updated_at=settings.updated_at,
    )
