"""
Request/response models for the matcher HTTP API.
"""

from pydantic import BaseModel, field_validator
from typing import Optional, List, Dict


class MatchRequest(BaseModel):
    query: str

    @field_validator('query')
    @classmethod
    def query_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('query cannot be empty')
        return v.strip()


class AlternativeResponse(BaseModel):
    entry_id: str
    text: str
    confidence: float
    category: str


class MatchResponse(BaseModel):
    status: str
    answer: str
    confidence: float
    matched_entry_id: Optional[str] = None
    matched_text: Optional[str] = None
    category: Optional[str] = None
    alternatives: List[AlternativeResponse] = []


class ChatRequest(BaseModel):
    message: str

    @field_validator('message')
    @classmethod
    def message_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('message cannot be empty')
        return v.strip()


class ChatMessageResponse(BaseModel):
    kind: str
    text: str


class ChatResponse(BaseModel):
    status: str
    reply: str
    confidence: float
    messages: List[ChatMessageResponse]


class HealthResponse(BaseModel):
    status: str  # ready | loading | error
    version: str
    entry_count: int
    cache_hit: Optional[bool] = None
    search_mode: Optional[str] = None
    categories: Dict[str, int] = {}
    db_health: Optional[bool] = None  # None when the engine has no SQLite-backed cache
    error: Optional[str] = None
