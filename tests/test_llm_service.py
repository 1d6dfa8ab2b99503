"""
Tests for prompt building, response parsing and the Gemini client.
"""

import json
from unittest.mock import MagicMock, patch

import pytest

from errors import ConfigurationError, GenerationError, ResponseParseError
from llm_service import (
    GeminiService,
    build_edit_prompt,
    build_presentation_prompt,
    parse_presentation_response,
)
from models import PresentationData
from ppt_generator import generate_ppt
from settings import Settings


def model_replying(text):
    model = MagicMock()
    model.generate_content.return_value = MagicMock(text=text)
    return model


# =============================================================================
# Prompt builders
# =============================================================================

class TestPromptBuilders:

    def test_presentation_prompt_embeds_request_and_shape(self):
        prompt = build_presentation_prompt("Explain photosynthesis to kids")

        assert '"Explain photosynthesis to kids"' in prompt
        assert '"slides"' in prompt
        assert '"twoColumn"' in prompt
        assert "MagicSlides AI" in prompt
        assert "Respond only with the JSON object" in prompt

    def test_edit_prompt_embeds_current_document(self, sample_document):
        prompt = build_edit_prompt(sample_document, "Add a slide about costs")

        assert '"Add a slide about costs"' in prompt
        assert json.dumps(sample_document, indent=2) in prompt
        assert "Preserve existing content" in prompt

    def test_edit_prompt_accepts_model_instance(self, sample_document):
        document = PresentationData(**sample_document)

        prompt = build_edit_prompt(document, "Shorten it")

        assert '"title": "Pros and Cons"' in prompt


# =============================================================================
# Response parser
# =============================================================================

class TestParsePresentationResponse:

    def test_extracts_json_surrounded_by_text(self, sample_document):
        text = "Sure! Here it is:\n```json\n" + json.dumps(sample_document) + "\n```\nEnjoy."

        document = parse_presentation_response(text)

        assert document.title == "Renewable Energy"
        assert [s.title for s in document.slides] == [
            "Renewable Energy", "Sources", "Pros and Cons", "Solar Farms"
        ]
        assert document.theme.fontFamily == "Calibri"

    @pytest.mark.parametrize("payload", [
        {"slides": [{"title": "A", "content": ["x"]}]},
        {"title": "", "slides": [{"title": "A", "content": ["x"]}]},
        {"title": "No slides"},
        {"title": "Slides not a list", "slides": "one slide"},
        {"title": "Empty slides", "slides": []},
    ])
    def test_rejects_missing_title_or_slides(self, payload):
        with pytest.raises(ResponseParseError, match="Failed to parse AI response"):
            parse_presentation_response(json.dumps(payload))

    @pytest.mark.parametrize("text", [
        "",
        "I could not build a presentation for that.",
        "{ this is not json }",
        "[1, 2, 3]",
    ])
    def test_rejects_unparseable_text(self, text):
        with pytest.raises(ResponseParseError):
            parse_presentation_response(text)

    def test_applies_defaults(self):
        document = parse_presentation_response(json.dumps({
            "title": "Bare",
            "slides": [{"title": "Only slide", "content": ["one"]}],
        }))

        assert document.subtitle == ""
        assert document.author == "MagicSlides AI"
        slide = document.slides[0]
        assert slide.layout == "content"
        assert slide.notes == ""
        assert document.theme.primaryColor == "#1f2937"
        assert document.theme.secondaryColor == "#3b82f6"
        assert document.theme.backgroundColor == "#ffffff"
        assert document.theme.fontFamily == "Arial"

    @pytest.mark.parametrize("slide", [None, "just a title", 42, ["a", "b"]])
    def test_rejects_slide_that_is_not_an_object(self, slide):
        with pytest.raises(ResponseParseError):
            parse_presentation_response(json.dumps({
                "title": "Bad slide",
                "slides": [{"title": "Good", "content": ["x"]}, slide],
            }))

    def test_non_string_theme_values_are_stringified(self, tmp_path):
        document = parse_presentation_response(json.dumps({
            "title": "Numeric theme",
            "slides": [{"title": "S", "content": ["x"]}],
            "theme": {"primaryColor": 123, "secondaryColor": None, "fontFamily": 0},
        }))

        assert document.theme.primaryColor == "123"
        assert document.theme.secondaryColor == "#3b82f6"
        assert document.theme.fontFamily == "Arial"
        assert (tmp_path / generate_ppt(document, str(tmp_path))).is_file()

    def test_partial_theme_keeps_given_fields(self):
        document = parse_presentation_response(json.dumps({
            "title": "Themed",
            "slides": [{"title": "S", "content": []}],
            "theme": {"primaryColor": "#000000"},
        }))

        assert document.theme.primaryColor == "#000000"
        assert document.theme.secondaryColor == "#3b82f6"

    def test_coerces_slide_fields(self):
        document = parse_presentation_response(json.dumps({
            "title": "Coerced",
            "slides": [
                {"content": "single string"},
                {"title": "No content"},
                {"title": "Numbers", "content": [1, 2]},
                {"title": "Odd layout", "content": ["x"], "layout": "bullets"},
            ],
        }))

        first, second, third, fourth = document.slides
        assert first.title == "Untitled Slide"
        assert first.content == ["single string"]
        assert second.content == [""]
        assert third.content == ["1", "2"]
        assert fourth.layout == "content"

    def test_no_op_edit_keeps_slides(self, sample_document):
        original = parse_presentation_response(json.dumps(sample_document))
        service = GeminiService(
            Settings(gemini_api_key="test-key"),
            model=model_replying(json.dumps(original.model_dump())),
        )

        edited = service.edit_presentation(original, "")

        assert len(edited.slides) == len(original.slides)
        assert [s.title for s in edited.slides] == [s.title for s in original.slides]
        assert edited is not original


# =============================================================================
# GeminiService
# =============================================================================

class TestGeminiService:

    def test_requires_api_key_or_project(self):
        with pytest.raises(ConfigurationError):
            GeminiService(Settings())

    def test_accepts_project_without_key(self):
        service = GeminiService(Settings(project_id="my-project"))

        assert service.model is None

    def test_generate_presentation(self, sample_document):
        model = model_replying(json.dumps(sample_document))
        service = GeminiService(Settings(gemini_api_key="test-key"), model=model)

        document = service.generate_presentation("Renewable energy, 4 slides")

        assert document.title == "Renewable Energy"
        sent_prompt = model.generate_content.call_args[0][0]
        assert "Renewable energy, 4 slides" in sent_prompt

    def test_generate_wraps_parse_failure(self):
        service = GeminiService(Settings(gemini_api_key="test-key"), model=model_replying("no json here"))

        with pytest.raises(GenerationError):
            service.generate_presentation("anything at all")

    def test_generate_wraps_model_failure(self):
        model = MagicMock()
        model.generate_content.side_effect = RuntimeError("quota exceeded")
        service = GeminiService(Settings(gemini_api_key="test-key"), model=model)

        with pytest.raises(GenerationError, match="quota exceeded"):
            service.generate_presentation("anything at all")

    @patch("llm_service.GenerativeModel")
    @patch("llm_service.vertexai.init")
    def test_ensure_model_falls_through_candidates(self, mock_init, mock_model_cls):
        broken = MagicMock()
        broken.generate_content.side_effect = RuntimeError("404 model not found")
        working = model_replying("Hi")
        mock_model_cls.side_effect = [broken, working]

        service = GeminiService(Settings(gemini_api_key="test-key", model_names=["old-model", "new-model"]))
        model = service.ensure_model()

        assert model is working
        assert service.model_name == "new-model"
        mock_init.assert_called_once_with(api_key="test-key")

    @patch("llm_service.GenerativeModel")
    @patch("llm_service.vertexai.init")
    def test_ensure_model_raises_when_nothing_works(self, mock_init, mock_model_cls):
        broken = MagicMock()
        broken.generate_content.side_effect = RuntimeError("permission denied")
        mock_model_cls.return_value = broken

        service = GeminiService(Settings(gemini_api_key="test-key", model_names=["a", "b"]))

        with pytest.raises(GenerationError, match="No compatible Gemini model"):
            service.ensure_model()
        assert mock_model_cls.call_count == 2

    @patch("llm_service.GenerativeModel")
    @patch("llm_service.vertexai.init")
    @patch("llm_service.default")
    def test_project_credentials_path(self, mock_default, mock_init, mock_model_cls):
        credentials = object()
        mock_default.return_value = (credentials, "my-project")
        mock_model_cls.return_value = model_replying("Hi")

        service = GeminiService(Settings(project_id="my-project", location="europe-west1"))
        service.ensure_model()

        mock_init.assert_called_once_with(
            project="my-project", location="europe-west1", credentials=credentials
        )
