# tests/test_storybook_service.py
import base64
import json

import pytest

from app.config import config, load_config
from app.features.storybook.schemas import UserInput
from app.features.storybook.service import (
    ImageGenerationError,
    StructureGenerationError,
    fallback_image_url,
    generate_page_image,
    generate_story_structure,
)
from app.lib import openai_client
from storybook_fakes import MockChatResponse, MockImagesResponse, fake_png_b64, mia_input, structure_payload


def _reply_with(monkeypatch, content: str):
    def _create(**kwargs):
        return MockChatResponse(content)
    monkeypatch.setattr(openai_client.client.chat.completions, "create", _create)


def test_structure_for_mia_has_three_numbered_pages():
    story = generate_story_structure(mia_input(3))
    assert story.title == "Mia's Brave Ride"
    assert story.moral
    assert [p.page_number for p in story.pages] == [1, 2, 3]
    assert all(p.is_loading_image and p.image_url is None for p in story.pages)
    assert all(p.text and p.image_prompt for p in story.pages)


@pytest.mark.parametrize("count", [3, 7, 10])
def test_structure_matches_requested_page_count(count):
    story = generate_story_structure(mia_input(count))
    assert len(story.pages) == count
    assert [p.page_number for p in story.pages] == list(range(1, count + 1))


def test_structure_prompt_carries_child_and_style(monkeypatch):
    seen = {}

    def _create(**kwargs):
        seen.update(kwargs)
        return MockChatResponse(json.dumps(structure_payload(4)))

    monkeypatch.setattr(openai_client.client.chat.completions, "create", _create)
    req = UserInput(child_name="Leo", child_gender="boy", activity_description="Leo got a vaccine and was brave",
                    style_preference="Crayon Drawing", page_count=4)
    generate_story_structure(req)

    user_msg = seen["messages"][1]["content"]
    assert '"Leo"' in user_msg
    assert "Crayon Drawing" in user_msg
    assert "Exactly 4 pages" in user_msg
    assert seen["response_format"]["type"] == "json_schema"


def test_structure_accepts_fenced_json(monkeypatch):
    _reply_with(monkeypatch, "```json\n" + json.dumps(structure_payload(3)) + "\n```")
    story = generate_story_structure(mia_input(3))
    assert len(story.pages) == 3


def test_structure_empty_reply_fails(monkeypatch):
    _reply_with(monkeypatch, "")
    with pytest.raises(StructureGenerationError):
        generate_story_structure(mia_input(3))


def test_structure_malformed_reply_fails(monkeypatch):
    _reply_with(monkeypatch, "Once upon a time there was no JSON at all")
    with pytest.raises(StructureGenerationError):
        generate_story_structure(mia_input(3))


def test_structure_missing_field_fails(monkeypatch):
    payload = structure_payload(3)
    del payload["moral"]
    _reply_with(monkeypatch, json.dumps(payload))
    with pytest.raises(StructureGenerationError):
        generate_story_structure(mia_input(3))


def test_structure_wrong_page_count_fails(monkeypatch):
    _reply_with(monkeypatch, json.dumps(structure_payload(2)))
    with pytest.raises(StructureGenerationError, match="expected 3 pages"):
        generate_story_structure(mia_input(3))


def test_structure_transport_error_fails(monkeypatch):
    def _boom(**kwargs):
        raise ConnectionError("network down")
    monkeypatch.setattr(openai_client.client.chat.completions, "create", _boom)
    with pytest.raises(StructureGenerationError):
        generate_story_structure(mia_input(3))


def test_page_image_is_png_data_url():
    url = generate_page_image("a girl on a bike")
    assert url.startswith("data:image/png;base64,")
    raw = base64.b64decode(url.split(",", 1)[1])
    assert raw.startswith(b"\x89PNG")


def test_page_image_without_payload_fails(monkeypatch):
    class _Empty:
        data = []
    monkeypatch.setattr(openai_client.client.images, "generate", lambda **kwargs: _Empty())
    with pytest.raises(ImageGenerationError):
        generate_page_image("anything")


def test_page_image_call_error_fails(monkeypatch):
    def _boom(**kwargs):
        raise RuntimeError("content policy")
    monkeypatch.setattr(openai_client.client.images, "generate", _boom)
    with pytest.raises(ImageGenerationError):
        generate_page_image("anything")


def test_fallback_image_url_is_deterministic():
    assert fallback_image_url(0) == fallback_image_url(0)
    assert fallback_image_url(0) != fallback_image_url(1)
    assert fallback_image_url(4).endswith("?random=4")


def test_structure_call_is_bounded_by_text_timeout(monkeypatch):
    seen = {}

    def _create(**kwargs):
        seen.update(kwargs)
        return MockChatResponse(json.dumps(structure_payload(3)))

    monkeypatch.setattr(openai_client.client.chat.completions, "create", _create)
    generate_story_structure(mia_input(3))
    assert seen["timeout"] == config.text_timeout_seconds


def test_page_image_forwards_timeout_to_sdk(monkeypatch):
    seen = {}

    def _generate(**kwargs):
        seen.update(kwargs)
        return MockImagesResponse(fake_png_b64())

    monkeypatch.setattr(openai_client.client.images, "generate", _generate)
    assert generate_page_image("a girl on a bike", timeout=2.5).startswith("data:image/png")
    assert seen["timeout"] == 2.5

    seen.clear()
    generate_page_image("a girl on a bike")
    assert "timeout" not in seen


def test_client_does_not_retry_on_its_own(monkeypatch):
    monkeypatch.delenv("OPENAI_MAX_RETRIES", raising=False)
    assert load_config().openai_max_retries == 0
    assert openai_client.client.max_retries == config.openai_max_retries
