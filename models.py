# models.py
from typing import List, Optional

from pydantic import BaseModel, Field

class ChatRequest(BaseModel):
    message: Optional[str] = Field(None, description="User message")
    timestamp: Optional[str] = Field(None, description="Client ISO-8601 send time")
    sessionId: Optional[str] = Field(None, description="Client-generated session identifier")

class ChatResponse(BaseModel):
    response: str
    sessionId: Optional[str] = None
    timestamp: str
    suggestions: List[str] = Field(default_factory=list)

class TranscribeRequest(BaseModel):
    audio: Optional[str] = Field(None, description="Base64 audio or a data: URL")
    mimeType: Optional[str] = None

class TranscribeResponse(BaseModel):
    transcript: str
    success: bool = True

class ErrorResponse(BaseModel):
    error: str
    message: Optional[str] = None
    response: Optional[str] = None
