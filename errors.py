class MagicSlidesError(Exception):
    """Base class for errors raised by the presentation pipeline."""


class ConfigurationError(MagicSlidesError):
    pass


class ResponseParseError(MagicSlidesError):
    def __init__(self, message: str = "Failed to parse AI response"):
        super().__init__(message)


class GenerationError(MagicSlidesError):
    pass


class RenderError(MagicSlidesError):
    def __init__(self, message: str = "Failed to generate PowerPoint presentation"):
        super().__init__(message)
