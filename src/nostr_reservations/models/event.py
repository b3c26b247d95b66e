"""
Record models: unsigned templates, rumors (inner records) and signed events.
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

HEX32 = r"^[0-9a-f]{64}$"


class EventTemplate(BaseModel):
    """Draft record before an author key is attached."""
    model_config = ConfigDict(frozen=True)

    kind: int
    created_at: Optional[int] = None
    tags: list[list[str]] = Field(default_factory=list)
    content: str = ""


class UnsignedEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: int
    pubkey: str = Field(pattern=HEX32)
    created_at: int
    tags: list[list[str]] = Field(default_factory=list)
    content: str = ""


class Rumor(UnsignedEvent):
    """Inner record: carries an id but is never signed."""
    id: str = Field(pattern=HEX32)


class SignedEvent(Rumor):
    sig: str = Field(pattern=r"^[0-9a-f]{128}$")
