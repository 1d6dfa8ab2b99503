import json
import logging
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

# Google Cloud clients
import vertexai
from vertexai.generative_models import GenerativeModel
from google.auth import default

from errors import ConfigurationError, GenerationError, ResponseParseError
from models import (
    DEFAULT_AUTHOR,
    DEFAULT_BACKGROUND_COLOR,
    DEFAULT_FONT_FAMILY,
    DEFAULT_PRIMARY_COLOR,
    DEFAULT_SECONDARY_COLOR,
    PresentationData,
)
from settings import Settings, get_settings

logger = logging.getLogger(__name__)

LAYOUTS = ("title", "content", "twoColumn", "image")
PROBE_PROMPT = "Hello"


# --- Prompt builders ---

def build_presentation_prompt(user_prompt: str) -> str:
    """Builds the instruction that asks the model for a new presentation document."""
    return f"""
Create a PowerPoint presentation based on the following request: "{user_prompt}"

Please respond with a JSON object that follows this exact structure:
{{
  "title": "Main presentation title",
  "subtitle": "Optional subtitle",
  "author": "{DEFAULT_AUTHOR}",
  "slides": [
    {{
      "title": "Slide title",
      "content": ["Bullet point 1", "Bullet point 2", "Bullet point 3"],
      "layout": "content",
      "notes": "Optional speaker notes"
    }}
  ],
  "theme": {{
    "primaryColor": "{DEFAULT_PRIMARY_COLOR}",
    "secondaryColor": "{DEFAULT_SECONDARY_COLOR}",
    "backgroundColor": "{DEFAULT_BACKGROUND_COLOR}",
    "fontFamily": "{DEFAULT_FONT_FAMILY}"
  }}
}}

Guidelines:
1. Create 5-8 slides unless specifically requested otherwise
2. Use clear, concise bullet points
3. Choose appropriate layouts: "title", "content", "twoColumn", or "image"
4. Include speaker notes for important slides
5. Select professional color schemes
6. Make content engaging and informative
7. Ensure logical flow between slides

Respond only with the JSON object, no additional text.
"""


def build_edit_prompt(current_presentation: Union[PresentationData, Dict[str, Any]], edit_prompt: str) -> str:
    """Builds the instruction that asks the model to revise an existing document."""
    if isinstance(current_presentation, PresentationData):
        current_presentation = current_presentation.model_dump()
    current_json = json.dumps(current_presentation, indent=2, ensure_ascii=False)

    return f"""
Current presentation data:
{current_json}

Edit request: "{edit_prompt}"

Please modify the presentation according to the edit request and respond with the updated JSON object following the same structure:
{{
  "title": "Main presentation title",
  "subtitle": "Optional subtitle",
  "author": "{DEFAULT_AUTHOR}",
  "slides": [...],
  "theme": {{...}}
}}

Guidelines:
1. Preserve existing content unless specifically asked to change it
2. Make targeted changes based on the edit request
3. Maintain consistency in style and theme
4. Ensure smooth transitions between slides
5. Keep professional formatting

Respond only with the updated JSON object, no additional text.
"""


# --- Response parser ---

def _extract_json(text: str) -> Dict[str, Any]:
    # Find the first '{' and the last '}'
    first_brace = text.find('{')
    last_brace = text.rfind('}')
    if first_brace == -1 or last_brace == -1 or first_brace >= last_brace:
        raise ValueError("No valid JSON found in response")

    data = json.loads(text[first_brace:last_brace + 1])
    if not isinstance(data, dict):
        raise ValueError("Response JSON is not an object")
    return data


def _normalize_slide(slide: Any) -> Dict[str, Any]:
    if not isinstance(slide, dict):
        raise ValueError(f"Slide is not an object: {slide!r}")

    content = slide.get("content")
    if isinstance(content, list):
        content = [str(item) for item in content]
    else:
        content = [str(content or "")]

    layout = slide.get("layout") or "content"
    if layout not in LAYOUTS:
        logger.warning(f"Unknown slide layout '{layout}'. Using 'content'.")
        layout = "content"

    return {
        "title": str(slide.get("title") or "Untitled Slide"),
        "content": content,
        "layout": layout,
        "notes": str(slide.get("notes") or ""),
    }


def _theme_value(theme: Dict[str, Any], key: str, default: str) -> str:
    value = theme.get(key)
    return str(value) if value else default


def parse_presentation_response(response_text: str) -> PresentationData:
    """
    Turns the model's raw reply into a validated PresentationData.

    The first '{' to the last '}' of the reply is parsed as JSON. A reply
    without a title or a non-empty slide list is rejected; every optional
    field receives its default. No repair is attempted.
    """
    try:
        data = _extract_json(response_text or "")

        slides = data.get("slides")
        if not data.get("title") or not isinstance(slides, list) or not slides:
            raise ValueError("Invalid presentation data structure")

        theme = data.get("theme")
        if not isinstance(theme, dict):
            theme = {}

        return PresentationData(
            title=str(data["title"]),
            subtitle=str(data.get("subtitle") or ""),
            author=str(data.get("author") or DEFAULT_AUTHOR),
            slides=[_normalize_slide(slide) for slide in slides],
            theme={
                "primaryColor": _theme_value(theme, "primaryColor", DEFAULT_PRIMARY_COLOR),
                "secondaryColor": _theme_value(theme, "secondaryColor", DEFAULT_SECONDARY_COLOR),
                "backgroundColor": _theme_value(theme, "backgroundColor", DEFAULT_BACKGROUND_COLOR),
                "fontFamily": _theme_value(theme, "fontFamily", DEFAULT_FONT_FAMILY),
            },
        )
    except (ValueError, ValidationError) as e:
        # json.JSONDecodeError is a ValueError
        logger.error(f"Error parsing presentation response: {e}", exc_info=True)
        raise ResponseParseError() from e


# --- Gemini client ---

class GeminiService:
    """Calls a Vertex AI Gemini model to write and revise presentation documents."""

    def __init__(self, settings: Optional[Settings] = None, model: Optional[Any] = None):
        self.settings = settings or get_settings()
        if not self.settings.gemini_api_key and not self.settings.project_id:
            raise ConfigurationError("GEMINI_API_KEY or GOOGLE_CLOUD_PROJECT is required")

        self.model = model
        self.model_name: Optional[str] = None
        self._vertex_initialized = False

    def _init_vertex(self):
        if self._vertex_initialized:
            return

        if self.settings.gemini_api_key:
            logger.info("Initializing Vertex AI with API key...")
            vertexai.init(api_key=self.settings.gemini_api_key)
        else:
            logger.info(
                f"Initializing Vertex AI for project '{self.settings.project_id}' "
                f"in '{self.settings.location}'..."
            )
            # Explicitly request the cloud-platform scope to call Vertex AI
            credentials, _ = default(
                scopes=['https://www.googleapis.com/auth/cloud-platform']
            )
            vertexai.init(
                project=self.settings.project_id,
                location=self.settings.location,
                credentials=credentials,
            )
        self._vertex_initialized = True

    def ensure_model(self):
        """Picks the first candidate model that answers a short test prompt."""
        if self.model is not None:
            return self.model

        try:
            self._init_vertex()
        except Exception as e:
            logger.error(f"Failed to initialize Vertex AI: {e}", exc_info=True)
            raise GenerationError(f"Failed to initialize Vertex AI: {e}") from e

        for model_name in self.settings.model_names:
            try:
                logger.info(f"Trying model: {model_name}")
                candidate = GenerativeModel(model_name)
                candidate.generate_content(PROBE_PROMPT).text
            except Exception as e:
                logger.warning(f"Model {model_name} not available: {e}")
                continue

            logger.info(f"Successfully initialized model: {model_name}")
            self.model = candidate
            self.model_name = model_name
            return self.model

        raise GenerationError(
            "No compatible Gemini model found. Please check your API key permissions and billing status."
        )

    def _complete(self, prompt: str) -> str:
        model = self.ensure_model()
        logger.info("Calling LLM to generate slide data...")
        response = model.generate_content(prompt)
        text = response.text
        logger.debug(f"Received raw response from LLM: {text}")
        return text

    def generate_presentation(self, prompt: str) -> PresentationData:
        logger.info(f"Generating presentation for prompt: {prompt}")
        try:
            text = self._complete(build_presentation_prompt(prompt))
            return parse_presentation_response(text)
        except Exception as e:
            logger.error(f"Error generating presentation: {e}", exc_info=True)
            raise GenerationError(f"Failed to generate presentation with Gemini AI: {e}") from e

    def edit_presentation(
        self,
        current_presentation: Union[PresentationData, Dict[str, Any]],
        edit_prompt: str,
    ) -> PresentationData:
        logger.info(f"Editing presentation with prompt: {edit_prompt}")
        try:
            text = self._complete(build_edit_prompt(current_presentation, edit_prompt))
            return parse_presentation_response(text)
        except Exception as e:
            logger.error(f"Error editing presentation: {e}", exc_info=True)
            raise GenerationError(f"Failed to edit presentation with Gemini AI: {e}") from e
