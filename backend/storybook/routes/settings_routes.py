import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storybook import settings_repository
from storybook.db import get_db
from storybook.dependencies import get_gemini_proxy
from storybook.providers import GeminiProxy
from storybook.schemas import KeyValidationRequest, SettingsResponse, SettingsUpdate, ValidationResult

router = APIRouter(prefix="/api/settings", tags=["settings"])
logger = logging.getLogger(__name__)


@router.get("", response_model=SettingsResponse)
def read_settings(db: Session = Depends(get_db)):
    return settings_repository.to_response(settings_repository.get_settings(db))


@router.put("", response_model=SettingsResponse)
def write_settings(payload: SettingsUpdate, db: Session = Depends(get_db)):
    settings = settings_repository.update_settings(db, payload)
    return settings_repository.to_response(settings)


@router.post("/validate-key", response_model=ValidationResult)
def validate_key(
    payload: Optional[KeyValidationRequest] = None,
    db: Session = Depends(get_db),
    proxy: GeminiProxy = Depends(get_gemini_proxy),
):
    """Check a Gemini key with a one-token call and remember the outcome."""
    api_key = (payload.api_key if payload else None) or settings_repository.get_settings(db).gemini_api_key
    result = ValidationResult(**proxy.validate_key(api_key))
    settings_repository.record_validation(db, result)
    logger.info(f"Gemini key validation: valid={result.valid}")
    return result
