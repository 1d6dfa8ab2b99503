import logging
import math
import os
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pptx import Presentation
from pptx.dml.color import RGBColor
from pptx.enum.shapes import MSO_CONNECTOR, MSO_SHAPE
from pptx.enum.text import MSO_ANCHOR, PP_ALIGN
from pptx.util import Emu, Inches, Pt

from errors import RenderError
from models import (
    DEFAULT_AUTHOR,
    DEFAULT_BACKGROUND_COLOR,
    DEFAULT_FONT_FAMILY,
    DEFAULT_PRIMARY_COLOR,
    DEFAULT_SECONDARY_COLOR,
    PresentationData,
    Slide,
    Theme,
)
from settings import get_settings

logger = logging.getLogger(__name__)

PPTX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.presentationml.presentation"

# --- 1. Design Constants ---
# Slide Dimensions (16:9 widescreen, 13.333 x 7.5 in)
SLIDE_WIDTH = Emu(12192000)
SLIDE_HEIGHT = Emu(6858000)
# Font Sizes
TITLE_FONT_SIZE = Pt(44)
TITLE_SUBTITLE_FONT_SIZE = Pt(28)
SLIDE_TITLE_FONT_SIZE = Pt(32)
BODY_FONT_SIZE = Pt(18)
IMAGE_BODY_FONT_SIZE = Pt(16)
PLACEHOLDER_FONT_SIZE = Pt(14)
BODY_LINE_SPACING = Pt(28)
IMAGE_BODY_LINE_SPACING = Pt(24)
# Colors
PLACEHOLDER_FILL = RGBColor(0xF3, 0xF4, 0xF6)

BULLET = "•"
IMAGE_PLACEHOLDER_TEXT = "[Image Placeholder]\n\nAdd your image here"
# python-pptx rejects longer core property values
CORE_PROPERTY_MAX_LENGTH = 255


# --- 2. Helper Functions ---

def to_rgb(value: Optional[str], fallback: str) -> RGBColor:
    """Converts '#rrggbb' to RGBColor, falling back when the model sent something unusable."""
    for candidate in (value, fallback):
        if not candidate:
            continue
        try:
            return RGBColor.from_string(candidate.lstrip('#'))
        except ValueError:
            logger.warning(f"Invalid color '{candidate}'. Using fallback.")
    return RGBColor.from_string(fallback.lstrip('#'))


class ThemeColors:
    """Resolved theme used by every drawing function."""

    def __init__(self, theme: Optional[Theme] = None):
        theme = theme or Theme()
        self.primary = to_rgb(theme.primaryColor, DEFAULT_PRIMARY_COLOR)
        self.secondary = to_rgb(theme.secondaryColor, DEFAULT_SECONDARY_COLOR)
        self.background = to_rgb(theme.backgroundColor, DEFAULT_BACKGROUND_COLOR)
        self.font = theme.fontFamily or DEFAULT_FONT_FAMILY


def split_columns(content: List[str]) -> Tuple[List[str], List[str]]:
    """Splits bullets at the midpoint; an odd item count leaves the extra one on the left."""
    midpoint = math.ceil(len(content) / 2)
    return content[:midpoint], content[midpoint:]


def add_run(p, text, size, color, font, bold=False):
    run = p.add_run()
    run.text = text
    run.font.size = size
    run.font.name = font
    run.font.bold = bold
    run.font.color.rgb = color
    return run


def add_text_box(slide, text, left, top, width, height, size, color, font,
                 bold=False, align=PP_ALIGN.LEFT, anchor=MSO_ANCHOR.TOP):
    shape = slide.shapes.add_textbox(left, top, width, height)
    tf = shape.text_frame
    tf.word_wrap = True
    tf.vertical_anchor = anchor
    p = tf.paragraphs[0]
    p.alignment = align
    add_run(p, text, size, color, font, bold)
    return shape


def add_bullets(slide, items, left, top, width, height, size, line_spacing, theme):
    """Adds a top-anchored text box with one '• item' paragraph per bullet."""
    shape = slide.shapes.add_textbox(left, top, width, height)
    tf = shape.text_frame
    tf.word_wrap = True
    tf.vertical_anchor = MSO_ANCHOR.TOP
    for i, item in enumerate(items):
        p = tf.paragraphs[0] if i == 0 else tf.add_paragraph()
        p.line_spacing = line_spacing
        add_run(p, f"{BULLET} {item}", size, theme.primary, theme.font)
    return shape


def add_slide_heading(slide, data: Slide, theme: ThemeColors):
    return add_text_box(
        slide, data.title, Inches(0.5), Inches(0.5), Inches(12), Inches(0.8),
        SLIDE_TITLE_FONT_SIZE, theme.primary, theme.font, bold=True,
    )


def apply_master(slide, theme: ThemeColors):
    """Paints the background and the accent line every slide shares."""
    fill = slide.background.fill
    fill.solid()
    fill.fore_color.rgb = theme.background

    line = slide.shapes.add_connector(
        MSO_CONNECTOR.STRAIGHT, Inches(0.5), Inches(6.9), Inches(13), Inches(6.9)
    )
    line.line.color.rgb = theme.secondary
    line.line.width = Pt(3)


def add_speaker_notes(slide, notes_text):
    """Adds speaker notes to the slide."""
    if notes_text:
        slide.notes_slide.notes_text_frame.text = notes_text


# --- 3. Slide Drawing Functions ---

def draw_title_slide(slide, data: Slide, theme: ThemeColors):
    """Centered title with the first content item as its subtitle."""
    add_text_box(
        slide, data.title, Inches(1), Inches(2.5), Inches(11), Inches(1.5),
        TITLE_FONT_SIZE, theme.primary, theme.font, bold=True, align=PP_ALIGN.CENTER,
    )
    if data.content:
        add_text_box(
            slide, data.content[0], Inches(1), Inches(4.2), Inches(11), Inches(1),
            TITLE_SUBTITLE_FONT_SIZE, theme.secondary, theme.font, align=PP_ALIGN.CENTER,
        )


def draw_content_slide(slide, data: Slide, theme: ThemeColors):
    add_slide_heading(slide, data, theme)
    if data.content:
        add_bullets(
            slide, data.content, Inches(0.5), Inches(1.5), Inches(11.5), Inches(5),
            BODY_FONT_SIZE, BODY_LINE_SPACING, theme,
        )


def draw_two_column_slide(slide, data: Slide, theme: ThemeColors):
    add_slide_heading(slide, data, theme)
    left_items, right_items = split_columns(data.content)
    if left_items:
        add_bullets(
            slide, left_items, Inches(0.5), Inches(1.5), Inches(5.5), Inches(5),
            BODY_FONT_SIZE, BODY_LINE_SPACING, theme,
        )
    if right_items:
        add_bullets(
            slide, right_items, Inches(6.5), Inches(1.5), Inches(5.5), Inches(5),
            BODY_FONT_SIZE, BODY_LINE_SPACING, theme,
        )


def draw_image_slide(slide, data: Slide, theme: ThemeColors):
    """Narrow bullet column next to a bordered box where an image can be dropped in."""
    add_slide_heading(slide, data, theme)
    if data.content:
        add_bullets(
            slide, data.content, Inches(0.5), Inches(1.5), Inches(5.5), Inches(4),
            IMAGE_BODY_FONT_SIZE, IMAGE_BODY_LINE_SPACING, theme,
        )

    box = slide.shapes.add_shape(
        MSO_SHAPE.RECTANGLE, Inches(6.5), Inches(2), Inches(5), Inches(3.5)
    )
    box.fill.solid()
    box.fill.fore_color.rgb = PLACEHOLDER_FILL
    box.line.color.rgb = theme.secondary
    box.line.width = Pt(1)

    tf = box.text_frame
    tf.word_wrap = True
    tf.vertical_anchor = MSO_ANCHOR.MIDDLE
    for i, line in enumerate(IMAGE_PLACEHOLDER_TEXT.split("\n")):
        p = tf.paragraphs[0] if i == 0 else tf.add_paragraph()
        p.alignment = PP_ALIGN.CENTER
        add_run(p, line, PLACEHOLDER_FONT_SIZE, theme.secondary, theme.font)


# Map layouts to functions
SLIDE_DRAW_FUNCTIONS = {
    "title": draw_title_slide,
    "content": draw_content_slide,
    "twoColumn": draw_two_column_slide,
    "image": draw_image_slide,
}


# --- 4. Main Execution Logic ---

def create_presentation(presentation_data: PresentationData):
    """Creates a new in-memory presentation from a validated document."""
    prs = Presentation()
    prs.slide_width = SLIDE_WIDTH
    prs.slide_height = SLIDE_HEIGHT

    props = prs.core_properties
    props.author = presentation_data.author or DEFAULT_AUTHOR
    props.title = presentation_data.title[:CORE_PROPERTY_MAX_LENGTH]
    props.subject = (presentation_data.subtitle or "")[:CORE_PROPERTY_MAX_LENGTH]

    theme = ThemeColors(presentation_data.theme)
    blank_layout = prs.slide_layouts[6]

    for i, slide_data in enumerate(presentation_data.slides):
        logger.debug(f"Processing slide {i+1}: layout='{slide_data.layout}'")
        slide = prs.slides.add_slide(blank_layout)
        apply_master(slide, theme)

        draw = SLIDE_DRAW_FUNCTIONS.get(slide_data.layout, draw_content_slide)
        draw(slide, slide_data, theme)

        add_speaker_notes(slide, slide_data.notes)

    return prs


def output_directory(output_dir: Optional[str] = None) -> Path:
    return Path(output_dir or get_settings().upload_path)


def generate_ppt(presentation_data: PresentationData, output_dir: Optional[str] = None) -> str:
    """Renders the document to presentation_<uuid>.pptx and returns the filename."""
    logger.info(f"Generating PPT for presentation: {presentation_data.title}")
    try:
        prs = create_presentation(presentation_data)

        directory = output_directory(output_dir)
        directory.mkdir(parents=True, exist_ok=True)
        filename = f"presentation_{uuid.uuid4()}.pptx"
        prs.save(str(directory / filename))
    except Exception as e:
        logger.error(f"Error generating PPT: {e}", exc_info=True)
        raise RenderError() from e

    logger.info(f"PPT generated successfully: {filename}")
    return filename


# --- 5. Generated File Management ---

def is_valid_filename(filename: str) -> bool:
    return (
        bool(filename)
        and filename.endswith(".pptx")
        and os.path.basename(filename) == filename
        and filename not in (".pptx", "..pptx")
    )


def resolve_ppt_path(filename: str, output_dir: Optional[str] = None) -> Path:
    """Maps a generated filename to its path, rejecting anything that is not a bare .pptx name."""
    if not is_valid_filename(filename):
        raise ValueError(f"Invalid filename: {filename}")
    return output_directory(output_dir) / filename


def _file_info(path: Path) -> Dict[str, Any]:
    stats = path.stat()
    created = getattr(stats, "st_birthtime", stats.st_ctime)
    return {
        "filename": path.name,
        "size": stats.st_size,
        "created": datetime.fromtimestamp(created).isoformat(),
        "modified": datetime.fromtimestamp(stats.st_mtime).isoformat(),
        "downloadUrl": f"/api/ppt/download/{path.name}",
    }


def get_ppt_info(filename: str, output_dir: Optional[str] = None) -> Dict[str, Any]:
    """Raises ValueError for a bad name and FileNotFoundError for a missing file."""
    path = resolve_ppt_path(filename, output_dir)
    if not path.is_file():
        raise FileNotFoundError(filename)
    return _file_info(path)


def list_ppts(output_dir: Optional[str] = None) -> List[Dict[str, Any]]:
    directory = output_directory(output_dir)
    if not directory.is_dir():
        return []
    return [_file_info(path) for path in sorted(directory.glob("*.pptx")) if path.is_file()]


def delete_ppt(filename: str, output_dir: Optional[str] = None) -> None:
    """Deletes a generated file. Failures are logged, never raised."""
    try:
        path = resolve_ppt_path(filename, output_dir)
        path.unlink()
        logger.info(f"PPT file deleted: {filename}")
    except (OSError, ValueError) as e:
        logger.error(f"Error deleting PPT file: {e}")
