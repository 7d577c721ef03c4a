# settings.py
import os
from typing import Optional
from pydantic import BaseModel

class Settings(BaseModel):
    N8N_WEBHOOK_URL: str = os.getenv("N8N_WEBHOOK_URL", "")
    DEEPGRAM_API_KEY: str = os.getenv("DEEPGRAM_API_KEY", "")
    DEEPGRAM_URL: str = os.getenv("DEEPGRAM_URL", "https://api.deepgram.com/v1/listen")
    DEEPGRAM_MODEL: str = os.getenv("DEEPGRAM_MODEL", "nova-2")
    DEEPGRAM_LANGUAGE: str = os.getenv("DEEPGRAM_LANGUAGE", "en")
    # webhook retry knobs; attempts must finish under the 60s function ceiling
    CHAT_MAX_ATTEMPTS: int = int(os.getenv("CHAT_MAX_ATTEMPTS", "2"))
    CHAT_RETRY_BACKOFF_SECONDS: float = float(os.getenv("CHAT_RETRY_BACKOFF_SECONDS", "2"))
    CHAT_ATTEMPT_TIMEOUT_SECONDS: float = float(os.getenv("CHAT_ATTEMPT_TIMEOUT_SECONDS", "55"))
    TRANSCRIBE_TIMEOUT_SECONDS: float = float(os.getenv("TRANSCRIBE_TIMEOUT_SECONDS", "30"))
    # request body ceilings
    CHAT_BODY_LIMIT_BYTES: int = int(os.getenv("CHAT_BODY_LIMIT_BYTES", str(4 * 1024 * 1024)))
    TRANSCRIBE_BODY_LIMIT_BYTES: int = int(os.getenv("TRANSCRIBE_BODY_LIMIT_BYTES", str(10 * 1024 * 1024)))
    CORS_ALLOW_ORIGINS: str = os.getenv("CORS_ALLOW_ORIGINS", "*")

    class Config:
        arbitrary_types_allowed = True


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
