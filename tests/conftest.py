# tests/conftest.py
import json
import os
import re

import pytest
from fastapi.testclient import TestClient

# The OpenAI SDK requires a key at construction; the client is mocked below.
os.environ.setdefault("OPENAI_API_KEY", "test-key")

from app.main import app
from app.features.storybook.orchestrator import StoryOrchestrator
from app.features.storybook.router import get_orchestrator
from storybook_fakes import MockChatResponse, MockImagesResponse, fake_png_b64, structure_payload

@pytest.fixture(autouse=True)
def mock_openai(monkeypatch):
    """
    Auto-mock OpenAI client everywhere so tests don't hit the network.
    """
    from app.lib import openai_client

    png_b64 = fake_png_b64()

    # Mock images.generate -> returns a small PNG base64
    def _fake_images_generate(model, prompt, size, n, **kwargs):
        return MockImagesResponse(png_b64)

    # Mock chat.completions.create -> story structure with the requested page count
    def _fake_chat_create(model, temperature, messages, **kwargs):
        user = messages[1]["content"]
        m = re.search(r"Length: Exactly (\d+) pages", user)
        count = int(m.group(1)) if m else 3
        return MockChatResponse(json.dumps(structure_payload(count)))

    monkeypatch.setattr(openai_client.client.images, "generate", _fake_images_generate)
    monkeypatch.setattr(openai_client.client.chat.completions, "create", _fake_chat_create)
    yield

# -------- Orchestrators & test client --------
@pytest.fixture
def make_orchestrator():
    created = []

    def _make(**kwargs) -> StoryOrchestrator:
        orch = StoryOrchestrator(**kwargs)
        created.append(orch)
        return orch

    yield _make
    for orch in created:
        orch.close()

@pytest.fixture
def orchestrator(make_orchestrator):
    return make_orchestrator()

@pytest.fixture
def client(orchestrator):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.pop(get_orchestrator, None)
