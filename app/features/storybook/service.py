# app/features/storybook/service.py
from typing import Optional

from pydantic import ValidationError

from app.config import config
from app.lib.imaging import to_data_url
from app.lib.json_tools import load_json_object
from app.lib.openai_client import client
from app.logger import get_logger
from .prompt import build_story_structure_prompt
from .schemas import Page, Story, StructurePayload, UserInput

log = get_logger(__name__)

class StorybookError(Exception):
    """Base class for storybook generation failures."""

class StructureGenerationError(StorybookError):
    """The structure call failed or returned unusable data."""

class ImageGenerationError(StorybookError):
    """A single page's illustration call failed or returned no image."""

SYSTEM_MSG = (
    "You are a warm, imaginative children's book author. "
    "Return ONLY a single JSON object with the keys 'title', 'theme', 'moral', and 'pages'. "
    "Each page is an object with 'text' and 'image_prompt' (strings). "
    "No commentary, no markdown."
)

def _story_structure_json_schema() -> dict:
    string = {"type": "string"}

    def obj(props: dict) -> dict:
        # strict mode: every key listed under required
        return {
            "type": "object",
            "additionalProperties": False,
            "properties": props,
            "required": list(props.keys()),
        }

    page = obj({"text": string, "image_prompt": string})
    return obj({
        "title": string,
        "theme": string,
        "moral": string,
        "pages": {"type": "array", "items": page},
    })

def _call_structure_llm(prompt: str) -> str:
    resp = client.chat.completions.create(
        model=config.openai_text_model,
        temperature=config.text_temperature,
        response_format={
            "type": "json_schema",
            "json_schema": {"name": "StoryStructure", "schema": _story_structure_json_schema(), "strict": True},
        },
        timeout=config.text_timeout_seconds,
        messages=[
            {"role": "system", "content": SYSTEM_MSG},
            {"role": "user", "content": prompt},
        ],
    )
    return (resp.choices[0].message.content or "").strip()

def generate_story_structure(user_input: UserInput) -> Story:
    """
    One call to the text model: title/theme/moral plus an ordered (text, image_prompt)
    pair per requested page. Every returned page starts without an image.
    """
    prompt = build_story_structure_prompt(
        child_name=user_input.child_name,
        gender=user_input.child_gender.value,
        description=user_input.activity_description,
        style=user_input.style_preference,
        page_count=user_input.page_count,
    )
    try:
        raw = _call_structure_llm(prompt)
    except Exception as e:
        log.exception("story structure call failed")
        raise StructureGenerationError(f"story structure call failed: {e}") from e

    if not raw:
        raise StructureGenerationError("No text returned from story generation model.")

    try:
        payload = StructurePayload.model_validate(load_json_object(raw))
    except (ValueError, ValidationError) as e:
        log.error(f"unusable story structure: {e}")
        raise StructureGenerationError(f"Model returned an unusable story structure: {e}") from e

    if len(payload.pages) != user_input.page_count:
        raise StructureGenerationError(
            f"expected {user_input.page_count} pages, model returned {len(payload.pages)}"
        )

    story = Story(
        title=payload.title,
        theme=payload.theme,
        moral=payload.moral,
        pages=[
            Page(page_number=i + 1, text=p.text, image_prompt=p.image_prompt, is_loading_image=True)
            for i, p in enumerate(payload.pages)
        ],
    )
    log.info(f"story structure ready: {story.title!r} ({len(story.pages)} pages)")
    return story

def generate_page_image(image_prompt: str, timeout: Optional[float] = None) -> str:
    """
    Render one illustration and return it as a data URL.
    `timeout` bounds the HTTP call itself, so the worker thread is released when it expires.
    """
    extra = {"timeout": timeout} if timeout else {}
    try:
        resp = client.images.generate(
            model=config.openai_image_model,
            prompt=image_prompt,
            size=config.image_size,
            n=1,
            **extra,
        )
    except Exception as e:
        raise ImageGenerationError(f"image call failed: {e}") from e

    data = getattr(resp, "data", None) or []
    b64 = getattr(data[0], "b64_json", None) if data else None
    if not b64:
        log.warning("No inline image data found in image response.")
        raise ImageGenerationError("Failed to generate visual content.")
    try:
        return to_data_url(b64)
    except ValueError as e:
        raise ImageGenerationError(f"image payload is not valid base64: {e}") from e

def fallback_image_url(index: int) -> str:
    """Deterministic placeholder for the page at 0-based `index`."""
    return f"{config.fallback_image_base_url}?random={index}"
