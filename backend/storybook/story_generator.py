import json
import logging
import re
from typing import Any, Dict, Optional

from .config import GEMINI_TEXT_MODEL
from .errors import StoryFormatError
from .providers import GeminiProxy, first_text
from .schemas import StoryDraft, StoryPageDraft, StoryRequest, check_page_sequence

logger = logging.getLogger(__name__)


# Age-appropriate guidelines
AGE_GUIDELINES = {
    "3-5": {
        "vocabulary": "simple words, basic concepts",
        "sentence_length": "1-2 short sentences per page",
        "complexity": "one simple problem, repetition is welcome",
    },
    "6-8": {
        "vocabulary": "age-appropriate vocabulary with a few new words",
        "sentence_length": "2-3 sentences per page",
        "complexity": "clear cause and effect, a small twist",
    },
    "9-12": {
        "vocabulary": "richer vocabulary, complex emotions",
        "sentence_length": "3-4 sentences per page",
        "complexity": "character development, multiple plot points",
    },
}

# Structured output contract sent with every story request.
STORY_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "title": {"type": "STRING"},
        "pages": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "pageNumber": {"type": "INTEGER"},
                    "content": {"type": "STRING"},
                    "imagePrompt": {"type": "STRING"},
                },
                "required": ["pageNumber", "content", "imagePrompt"],
            },
        },
    },
    "required": ["title", "pages"],
}


def build_story_prompt(request: StoryRequest) -> str:
    guidelines = AGE_GUIDELINES.get(request.target_age, AGE_GUIDELINES["6-8"])
    return f"""Create a children's storybook outline with {request.page_count} pages.
Genre: {request.genre}
Theme: {request.theme}
Main Character: {request.main_character} (Type: {request.character_type})
Target Age: {request.target_age}
Moral Value: {request.moral_value}
Language: {request.language}

Writing guidelines for this age:
- Vocabulary: {guidelines['vocabulary']}
- Sentence length: {guidelines['sentence_length']}
- Story complexity: {guidelines['complexity']}
- No violence, scary content, or inappropriate themes

For each page, provide:
1. The story text (simple, engaging, 50-80 words).
2. A detailed image prompt for a consistent illustration.
Illustration Style: {request.illustration_style}
The image prompt MUST describe the character's appearance (hair, clothes, expression) to maintain consistency.
Style details: {request.illustration_style}, bright, cute.

Number the pages 1 to {request.page_count}. Return the response in JSON format.
IMPORTANT: The story text MUST be in {request.language}."""


def parse_story_text(text: Optional[str]) -> Dict[str, Any]:
    """Decode the model's JSON text, falling back to the first {...} block."""
    if not text:
        raise StoryFormatError("gemini", "Story response contained no text")
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        json_match = re.search(r"\{.*\}", text, re.DOTALL)
        if json_match:
            try:
                return json.loads(json_match.group())
            except json.JSONDecodeError:
                pass
    raise StoryFormatError("gemini", "Could not parse story JSON from Gemini response")


def validate_story(data: Any) -> StoryDraft:
    """Check structure and return pages sorted by page number."""
    if not isinstance(data, dict):
        raise StoryFormatError("gemini", "Story JSON must be an object")
    title = str(data.get("title") or "").strip()
    if not title:
        raise StoryFormatError("gemini", "Generated story has no title")
    raw_pages = data.get("pages")
    if not isinstance(raw_pages, list) or not raw_pages:
        raise StoryFormatError("gemini", "Generated story has no pages")

    pages = []
    for raw in raw_pages:
        if not isinstance(raw, dict):
            raise StoryFormatError("gemini", "Story pages must be objects")
        try:
            number = int(raw.get("pageNumber"))
        except (TypeError, ValueError):
            raise StoryFormatError("gemini", f"Invalid page number: {raw.get('pageNumber')!r}")
        content = str(raw.get("content") or "").strip()
        image_prompt = str(raw.get("imagePrompt") or "").strip()
        if not content or not image_prompt:
            raise StoryFormatError("gemini", f"Page {number} is missing content or an image prompt")
        pages.append(StoryPageDraft(page_number=number, content=content, image_prompt=image_prompt))

    pages.sort(key=lambda p: p.page_number)
    try:
        check_page_sequence([p.page_number for p in pages])
    except ValueError as exc:
        raise StoryFormatError("gemini", f"Generated story pages are malformed: {exc}")
    return StoryDraft(title=title, pages=pages)


class StoryGenerator:
    def __init__(self, proxy: GeminiProxy, api_key: Optional[str] = None, model: str = GEMINI_TEXT_MODEL):
        self.proxy = proxy
        self.api_key = api_key
        self.model = model

    def generate(self, request: StoryRequest) -> StoryDraft:
        """
        Generate title and page drafts (text + illustration prompt, no images).

        Raises ConfigurationError/ProviderError from the proxy, or
        StoryFormatError when the response does not match the schema.
        """
        prompt = build_story_prompt(request)
        response = self.proxy.forward(
            self.model,
            [{"parts": [{"text": prompt}]}],
            {
                "responseMimeType": "application/json",
                "responseSchema": STORY_SCHEMA,
            },
            api_key=self.api_key,
        )
        draft = validate_story(parse_story_text(first_text(response)))
        if len(draft.pages) != request.page_count:
            logger.warning(f"Requested {request.page_count} pages, story has {len(draft.pages)}")
        return draft
