"""Chat message wire types.

A message is ``{id, role, parts}``; a part is either text or a file
attachment (image data-URI or remote URL). Browser clients also send
bookkeeping parts (``step-start``, ``reasoning``) on assistant
messages; those carry no conversation content and are dropped here.
"""
from __future__ import annotations

import logging
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger("grokchat.messages")

PART_TYPES = ("text", "file")
KEY_SEPARATOR = "|"


class TextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str


class AttachmentPart(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["file"] = "file"
    media_type: str = Field(alias="mediaType")
    url: str
    filename: str | None = None

    @property
    def is_image(self) -> bool:
        return self.media_type.startswith("image/")


Part = Annotated[Union[TextPart, AttachmentPart], Field(discriminator="type")]


class Message(BaseModel):
    id: str
    role: Literal["user", "assistant"]
    parts: list[Part] = []

    @field_validator("parts", mode="before")
    @classmethod
    def _drop_unknown_parts(cls, value):
        if not isinstance(value, list):
            return value
        kept = []
        for part in value:
            if isinstance(part, dict) and part.get("type") not in PART_TYPES:
                logger.debug("Dropping non-content part of type %r", part.get("type"))
                continue
            kept.append(part)
        return kept

    def text(self) -> str:
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


def part_key(part: TextPart | AttachmentPart) -> str:
    if isinstance(part, TextPart):
        return part.text
    if isinstance(part, AttachmentPart):
        return part.url or ""
    raise TypeError(f"Unknown message part: {part!r}")


def prompt_key(message: Message) -> str:
    """Derived equality key: two user turns with the same key are the same prompt."""
    return KEY_SEPARATOR.join(part_key(p) for p in message.parts)


def parse_messages(raw: list) -> list[Message]:
    return [Message.model_validate(item) for item in raw]
