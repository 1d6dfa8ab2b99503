import os
from typing import List, Optional

from pydantic import BaseModel

DEFAULT_MODEL_NAMES = [
    "gemini-2.5-flash",
    "gemini-2.5-pro",
    "gemini-2.0-flash",
    "gemini-1.5-pro",
]


class Settings(BaseModel):
    gemini_api_key: Optional[str] = None
    project_id: Optional[str] = None
    location: str = "us-central1"
    model_names: List[str] = DEFAULT_MODEL_NAMES
    upload_path: str = "./uploads"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Reads the service configuration from environment variables."""
        model_names = [
            name.strip()
            for name in os.getenv("GEMINI_MODELS", "").split(",")
            if name.strip()
        ]
        return cls(
            gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
            project_id=os.getenv("GOOGLE_CLOUD_PROJECT") or None,
            location=os.getenv("GOOGLE_CLOUD_LOCATION", "us-central1"),
            model_names=model_names or list(DEFAULT_MODEL_NAMES),
            upload_path=os.getenv("UPLOAD_PATH", "./uploads"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


def get_settings() -> Settings:
    return Settings.from_env()
