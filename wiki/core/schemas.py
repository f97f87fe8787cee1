from typing import Any, List, Literal, Optional
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


# =========================
# Enums
# =========================
class UserRole(str, Enum):
    ADMIN = "admin"
    EDITOR = "editor"
    WRITER = "writer"
    READER = "reader"


# =========================
# PAGE (data service results)
# =========================
class PageLookup(BaseModel):
    """Result of a lookup by name. found=False is a normal outcome."""

    found: bool
    id: Optional[int] = None
    raw_content: Optional[str] = None


class PageById(BaseModel):
    found: bool
    id: Optional[int] = None
    name: Optional[str] = None
    content: Optional[str] = None


class PageRecord(BaseModel):
    id: int
    name: str
    content: str

    model_config = ConfigDict(from_attributes=True)


# =========================
# API payloads
# =========================
class PageCreate(BaseModel):
    name: str = Field(min_length=1)
    markdown: str


class PageUpdate(BaseModel):
    markdown: str


class PageSummary(BaseModel):
    id: int
    name: str


class PageDetail(BaseModel):
    id: int
    name: str
    markdown: str
    html: str


# =========================
# CHANNEL envelopes
# =========================
class RemoteError(BaseModel):
    kind: str
    message: str


class CallMessage(BaseModel):
    kind: Literal["call", "cancel"] = "call"
    correlation_id: str
    method: str = ""
    args: List[Any] = []
    reply_to: str = ""


class ReplyMessage(BaseModel):
    correlation_id: str
    result: Any = None
    error: Optional[RemoteError] = None
