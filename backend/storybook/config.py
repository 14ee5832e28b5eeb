import os
from pathlib import Path


DATA_DIR = Path(os.getenv("STORYBOOK_DATA_DIR", "./data")).expanduser()
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./storybook.db")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Provider keys: server-only names win over the browser-exposed ones.
GEMINI_KEY_ENV = ("GEMINI_API_KEY", "VITE_GEMINI_API_KEY")
FREEPIK_KEY_ENV = ("FREEPIK_API_KEY", "VITE_FREEPIK_API_KEY")

GEMINI_TEXT_MODEL = os.getenv("GEMINI_TEXT_MODEL", "gemini-2.0-flash")
GEMINI_IMAGE_MODEL = os.getenv("GEMINI_IMAGE_MODEL", "gemini-2.5-flash-image")

FREEPIK_API_URL = os.getenv("FREEPIK_API_URL", "https://api.freepik.com/v1/ai/text-to-image")
FREEPIK_TIMEOUT = float(os.getenv("FREEPIK_TIMEOUT", "120"))

IMAGE_RETRY_ATTEMPTS = int(os.getenv("IMAGE_RETRY_ATTEMPTS", "3"))
IMAGE_RETRY_DELAY = float(os.getenv("IMAGE_RETRY_DELAY", "2.0"))
IMAGE_MAX_WORKERS = int(os.getenv("IMAGE_MAX_WORKERS", "8"))

DEFAULT_PAGE_COUNT = int(os.getenv("DEFAULT_PAGE_COUNT", "8"))

SETTINGS_ROW_ID = "global"
LOCAL_SETTINGS_KEY = "storybook-ai-storage"
LOCAL_SETTINGS_FILE = Path(
    os.getenv("LOCAL_SETTINGS_FILE", str(DATA_DIR / "local_settings.json"))
).expanduser()
LOCAL_SETTINGS_MAX_BYTES = int(os.getenv("LOCAL_SETTINGS_MAX_BYTES", "5000000"))
