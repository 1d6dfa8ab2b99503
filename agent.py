import logging
import os
from typing import Any, Dict

from google.adk.agents import LlmAgent

from client import ClientError, MagicSlidesClient

logger = logging.getLogger(__name__)

AGENT_MODEL = os.getenv("AGENT_MODEL", "gemini-2.5-flash")

# One client per agent process, so edits apply to the last generated deck
slides_client = MagicSlidesClient()


def _result(data: Dict[str, Any]) -> Dict[str, Any]:
    presentation = data["presentationData"]
    return {
        "status": "success",
        "title": presentation["title"],
        "slideCount": len(presentation["slides"]),
        "filename": data["filename"],
        "downloadUrl": slides_client.download_url(data["filename"]),
    }


def create_presentation_from_text(text_input: str) -> Dict[str, Any]:
    """
    Calls the MagicSlides service to generate a PowerPoint presentation from a text prompt.

    Args:
        text_input: A string containing the topic and content for the presentation.

    Returns:
        A dictionary with the status and, on success, the download link.
    """
    logger.info(f"Forwarding text prompt to MagicSlides service: {text_input[:200]}...")
    try:
        return _result(slides_client.generate(text_input))
    except ClientError as e:
        logger.error(f"The MagicSlides service returned an error: {e}")
        return {"status": "error", "message": f"The backend service failed to process the request. Detail: {e}"}


def edit_current_presentation(edit_request: str) -> Dict[str, Any]:
    """
    Asks the MagicSlides service to apply an edit to the most recently generated presentation.

    Args:
        edit_request: What to change, e.g. "add a slide about costs".

    Returns:
        A dictionary with the status and, on success, the new download link.
    """
    logger.info(f"Forwarding edit request to MagicSlides service: {edit_request[:200]}...")
    try:
        return _result(slides_client.edit(edit_request))
    except ClientError as e:
        logger.error(f"The MagicSlides service returned an error: {e}")
        return {"status": "error", "message": f"The backend service failed to process the request. Detail: {e}"}


# Define the root agent that uses the service tools
root_agent = LlmAgent(
    name="magicslides_agent",
    model=AGENT_MODEL,
    description="A presentation agent that creates and edits PowerPoint files via the MagicSlides service.",
    instruction="""
    You are a presentation creation assistant.
    When the user asks for a new presentation, you MUST call the `create_presentation_from_text` tool
    and pass the user's entire request as the `text_input` argument.
    When the user asks to change the presentation you already made, call `edit_current_presentation`
    with their request as the `edit_request` argument.
    After a tool call, present the result to the user, including the download link.
    Do not try to write slide content yourself.
    """,
    tools=[create_presentation_from_text, edit_current_presentation]
)
