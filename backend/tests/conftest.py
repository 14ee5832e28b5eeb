import json
import os
import tempfile

_TMP_DIR = tempfile.mkdtemp(prefix="storybook-tests-")
os.environ["STORYBOOK_DATA_DIR"] = _TMP_DIR
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP_DIR}/storybook.db"
os.environ["PROVIDER_METRICS_LOG"] = os.path.join(_TMP_DIR, "provider_metrics.ndjson")
os.environ["LOCAL_SETTINGS_FILE"] = os.path.join(_TMP_DIR, "local_settings.json")
os.environ["IMAGE_RETRY_DELAY"] = "0"
for _name in ("GEMINI_API_KEY", "VITE_GEMINI_API_KEY", "FREEPIK_API_KEY", "VITE_FREEPIK_API_KEY", "SENTRY_DSN"):
    os.environ.pop(_name, None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from storybook.config import GEMINI_IMAGE_MODEL  # noqa: E402
from storybook.db import Base, enable_sqlite_foreign_keys, get_db  # noqa: E402
from storybook.dependencies import get_freepik_proxy, get_gemini_proxy  # noqa: E402
from storybook.main import app  # noqa: E402
from storybook.providers import FreepikProxy, GeminiProxy  # noqa: E402

TINY_PNG_B64 = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="


def story_payload(title="Whiskers and the Silver Moon", pages=8):
    return {
        "title": title,
        "pages": [
            {
                "pageNumber": n,
                "content": f"Whiskers takes brave step number {n} across the moon.",
                "imagePrompt": f"page {n}: an orange cat named Whiskers in a tiny space suit on the moon",
            }
            for n in range(1, pages + 1)
        ],
    }


class FakeGenaiResponse:
    def __init__(self, payload):
        self.payload = payload

    def model_dump(self, mode="python", by_alias=False, exclude_none=False):
        return self.payload


class FakeModels:
    def __init__(self, client):
        self.client = client

    def generate_content(self, model, contents, config=None):
        self.client.calls.append({"model": model, "contents": contents, "config": config})
        if self.client.error is not None:
            raise self.client.error
        return FakeGenaiResponse(self.client.respond(model, contents, config))


class FakeGenaiClient:
    """
    Stands in for ``genai.Client``: answers story requests with a fixed
    story and image requests with a 1x1 PNG. Image prompts containing a
    string from ``refuse`` get a text-only (refusal) answer. Setting
    ``error`` makes every call raise it.
    """

    def __init__(self, story=None, refuse=()):
        self.story = story or story_payload()
        self.refuse = set(refuse)
        self.error = None
        self.calls = []
        self.keys = []
        self.models = FakeModels(self)

    def factory(self, api_key):
        self.keys.append(api_key)
        return self

    @property
    def image_calls(self):
        return [c for c in self.calls if c["model"] == GEMINI_IMAGE_MODEL]

    def respond(self, model, contents, config):
        if model == GEMINI_IMAGE_MODEL:
            prompt = contents["parts"][0]["text"]
            if any(marker in prompt for marker in self.refuse):
                part = {"text": "I can't draw that."}
            else:
                part = {"inlineData": {"mimeType": "image/png", "data": TINY_PNG_B64}}
            return {"candidates": [{"content": {"parts": [part]}}], "usageMetadata": {"totalTokenCount": 1}}
        if config and "responseSchema" in config:
            text = json.dumps(self.story)
        else:
            text = "Hi"
        return {"candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}]}


class FakeHttpResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload if payload is not None else {}
        self.text = json.dumps(self._payload)

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return self._payload


class FakeFreepikSession:
    def __init__(self, response=None):
        self.response = response or FakeHttpResponse(200, {"data": [{"base64": TINY_PNG_B64}]})
        self.calls = []

    def post(self, url, headers=None, json=None, timeout=None):
        self.calls.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(eng)
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def genai_client():
    return FakeGenaiClient()


@pytest.fixture
def freepik_session():
    return FakeFreepikSession()


@pytest.fixture
def gemini_proxy(genai_client):
    return GeminiProxy(client_factory=genai_client.factory)


@pytest.fixture
def freepik_proxy(freepik_session):
    return FreepikProxy(session=freepik_session)


@pytest.fixture
def client(session_factory, gemini_proxy, freepik_proxy):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_gemini_proxy] = lambda: gemini_proxy
    app.dependency_overrides[get_freepik_proxy] = lambda: freepik_proxy
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def sample_book():
    return {
        "id": "book-1",
        "title": "The Brave Little Cat",
        "theme": "a brave cat explores the moon",
        "targetAge": "3-5",
        "moralValue": "courage",
        "coverImageUrl": "https://cdn.example.com/cover.png",
        "pages": [
            {"pageNumber": 2, "content": "Second", "imagePrompt": "cat on moon", "imageUrl": "https://cdn.example.com/2.png"},
            {"pageNumber": 1, "content": "First", "imagePrompt": "cat in rocket", "imageUrl": "https://cdn.example.com/1.png"},
            {"pageNumber": 3, "content": "Third", "imagePrompt": "cat home", "imageUrl": None},
        ],
    }
