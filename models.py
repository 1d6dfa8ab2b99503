from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

DEFAULT_AUTHOR = "MagicSlides AI"

DEFAULT_PRIMARY_COLOR = "#1f2937"
DEFAULT_SECONDARY_COLOR = "#3b82f6"
DEFAULT_BACKGROUND_COLOR = "#ffffff"
DEFAULT_FONT_FAMILY = "Arial"

Layout = Literal["title", "content", "twoColumn", "image"]
Stage = Literal["analyzing", "generating", "formatting", "creating", "complete"]


class Theme(BaseModel):
    primaryColor: str = DEFAULT_PRIMARY_COLOR
    secondaryColor: str = DEFAULT_SECONDARY_COLOR
    backgroundColor: str = DEFAULT_BACKGROUND_COLOR
    fontFamily: str = DEFAULT_FONT_FAMILY


class Slide(BaseModel):
    title: str
    content: List[str] = Field(default_factory=list)
    layout: Layout = "content"
    notes: str = ""


class PresentationData(BaseModel):
    title: str
    subtitle: str = ""
    author: str = DEFAULT_AUTHOR
    slides: List[Slide] = Field(min_length=1)
    theme: Theme = Field(default_factory=Theme)


class GenerationProgress(BaseModel):
    """A single advisory progress milestone streamed to a session."""
    stage: Stage
    progress: int = Field(ge=0, le=100)
    message: str


class ChatMessage(BaseModel):
    id: str
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime
    presentationId: Optional[str] = None


# --- Request / response payloads ---

class GenerateRequest(BaseModel):
    prompt: str = Field(min_length=10, max_length=1000)
    sessionId: str


class EditRequest(BaseModel):
    editPrompt: str = Field(min_length=5, max_length=500)
    currentPresentation: dict
    sessionId: str


class GenerationResult(BaseModel):
    presentationData: PresentationData
    filename: str
    downloadUrl: str
    sessionId: Optional[str] = None

    @classmethod
    def for_file(cls, presentation_data: PresentationData, filename: str,
                 session_id: Optional[str] = None) -> "GenerationResult":
        return cls(
            presentationData=presentation_data,
            filename=filename,
            downloadUrl=f"/uploads/{filename}",
            sessionId=session_id,
        )
