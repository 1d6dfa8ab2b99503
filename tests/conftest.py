"""
Shared fixtures for the MagicSlides tests.
"""

import copy
import json

import pytest
from fastapi.testclient import TestClient

from errors import GenerationError
from llm_service import parse_presentation_response


SAMPLE_DOCUMENT = {
    "title": "Renewable Energy",
    "subtitle": "A short tour",
    "author": "Test Author",
    "slides": [
        {"title": "Renewable Energy", "content": ["Why it matters"], "layout": "title"},
        {"title": "Sources", "content": ["Solar", "Wind", "Hydro"], "layout": "content",
         "notes": "Walk through each source."},
        {"title": "Pros and Cons", "content": ["Clean", "Cheap", "Intermittent"], "layout": "twoColumn"},
        {"title": "Solar Farms", "content": ["Large arrays", "Desert sites"], "layout": "image"},
    ],
    "theme": {
        "primaryColor": "#111827",
        "secondaryColor": "#10b981",
        "backgroundColor": "#f9fafb",
        "fontFamily": "Calibri",
    },
}


class FakeGeminiService:
    """Stands in for GeminiService: answers with a canned document, or echoes the current one on edit."""

    def __init__(self, document=None, fail=False):
        self.document = document or SAMPLE_DOCUMENT
        self.fail = fail
        self.prompts = []

    def generate_presentation(self, prompt):
        self.prompts.append(prompt)
        if self.fail:
            raise GenerationError("model unavailable")
        return parse_presentation_response(json.dumps(self.document))

    def edit_presentation(self, current_presentation, edit_prompt):
        self.prompts.append(edit_prompt)
        if self.fail:
            raise GenerationError("model unavailable")
        return parse_presentation_response(json.dumps(current_presentation))


@pytest.fixture
def sample_document():
    return copy.deepcopy(SAMPLE_DOCUMENT)


@pytest.fixture
def upload_dir(tmp_path, monkeypatch):
    directory = tmp_path / "uploads"
    monkeypatch.setenv("UPLOAD_PATH", str(directory))
    return directory


@pytest.fixture
def fake_service():
    return FakeGeminiService()


@pytest.fixture
def api_client(upload_dir, fake_service):
    from main import app, get_service_factory

    app.dependency_overrides[get_service_factory] = lambda: (lambda: fake_service)
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
