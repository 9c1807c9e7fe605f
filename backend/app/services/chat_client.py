"""
Chat client — the chat page's behaviour, without a browser.

Holds the in-memory conversation of one session, sends turns to /chat,
applies streamed text to the in-flight assistant message and re-runs the
reconciler after every increment. Errors become a dismissible banner
(``error``); the message list is never rolled back.
"""
import base64
import json
import logging
import uuid
from dataclasses import dataclass, field

import httpx

from config import settings

from core.messages import AttachmentPart, Message, Part, TextPart
from services.conversation import Carousel, Group, regenerate_parts

logger = logging.getLogger("grokchat.chat_client")

SUPPORTED_IMAGE_TYPES = (
    "image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp", "image/svg+xml",
)
MAX_ATTACHMENT_SIZE = 10 * 1024 * 1024  # 10 MB


class ChatBusyError(Exception):
    """A response is still in flight; sends are serialized."""
    pass


class AttachmentError(ValueError):
    pass


@dataclass
class ConversationContext:
    """What a send needs besides the messages; passed explicitly per call."""
    system_prompt: str = field(default_factory=lambda: settings.DEFAULT_SYSTEM_PROMPT)
    model: str = field(default_factory=lambda: settings.DEFAULT_MODEL)
    secret_key: str | None = None


def attach_image(data: bytes, media_type: str, filename: str) -> AttachmentPart:
    """Validate an image and wrap it as a data-URI attachment part."""
    if not media_type.startswith("image/"):
        raise AttachmentError(
            f"Unsupported file type: {filename}. Please upload an image file "
            "(JPEG, PNG, GIF, WebP, or SVG)."
        )
    if media_type not in SUPPORTED_IMAGE_TYPES:
        raise AttachmentError(
            f"Unsupported image format: {filename}. "
            "Supported formats: JPEG, PNG, GIF, WebP, SVG."
        )
    if len(data) > MAX_ATTACHMENT_SIZE:
        raise AttachmentError(f"File too large: {filename}. Maximum file size is 10MB.")

    encoded = base64.b64encode(data).decode("ascii")
    return AttachmentPart(
        media_type=media_type,
        url=f"data:{media_type};base64,{encoded}",
        filename=filename,
    )


class ChatSession:

    def __init__(self, http: httpx.AsyncClient):
        self.http = http
        self.messages: list[Message] = []
        self.carousel = Carousel()
        self.status = "ready"           # ready | submitted | streaming
        self.error: str | None = None

    @property
    def groups(self) -> list[Group]:
        return self.carousel.groups

    def dismiss_error(self) -> None:
        self.error = None

    def set_active_index(self, group_id: str, index: int) -> int:
        return self.carousel.set_active_index(group_id, index)

    # ------------------------------------------------------------------
    # System prompt
    # ------------------------------------------------------------------
    async def load_prompt(self) -> str:
        try:
            resp = await self.http.get("/prompt")
            if resp.status_code == 200:
                return resp.json().get("prompt") or settings.DEFAULT_SYSTEM_PROMPT
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Error loading prompt: %s", e)
        return settings.DEFAULT_SYSTEM_PROMPT

    async def save_prompt(self, text: str) -> bool:
        try:
            resp = await self.http.post("/prompt", json={"prompt": text})
        except httpx.HTTPError as e:
            logger.warning("Error saving prompt: %s", e)
            return False
        if resp.status_code != 200:
            logger.warning("Failed to save prompt: HTTP %d", resp.status_code)
            return False
        return True

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------
    async def send(self, parts: list[Part], context: ConversationContext) -> None:
        if self.status != "ready":
            raise ChatBusyError("A response is still being generated")

        self.messages.append(Message(id=uuid.uuid4().hex, role="user", parts=list(parts)))
        self._refresh()
        self.status = "submitted"

        body = {
            "messages": [m.to_wire() for m in self.messages],
            "system": context.system_prompt,
            "model": context.model,
        }
        headers = {}
        if context.secret_key:
            headers["Authorization"] = f"Bearer {context.secret_key}"

        try:
            async with self.http.stream("POST", "/chat", json=body, headers=headers) as resp:
                if resp.status_code != 200:
                    await resp.aread()
                    self._fail(_error_text(resp))
                    return
                self.status = "streaming"
                await self._consume(resp)
        except (httpx.HTTPError, httpx.StreamError) as e:
            logger.warning("Chat transport error: %s", e)
            self._fail(f"Connection error: {e}")
            return
        finally:
            self.status = "ready"
            self._refresh()

    async def regenerate(self, assistant_id: str, context: ConversationContext) -> bool:
        parts = regenerate_parts(self.messages, assistant_id)
        if parts is None:
            return False
        self.error = None
        await self.send(parts, context)
        return True

    async def _consume(self, resp: httpx.Response) -> None:
        current: Message | None = None
        async for line in resp.aiter_lines():
            if not line.startswith("data:"):
                continue
            payload = line[len("data:"):].strip()
            if payload == "[DONE]":
                break
            try:
                event = json.loads(payload)
            except json.JSONDecodeError:
                logger.debug("Skipping undecodable stream line: %r", payload[:80])
                continue

            kind = event.get("type")
            if kind == "start":
                current = Message(
                    id=event.get("messageId") or uuid.uuid4().hex,
                    role="assistant",
                    parts=[TextPart(text="")],
                )
                self.messages.append(current)
                self._refresh()
            elif kind == "text-delta" and current is not None:
                current.parts[0].text += event.get("delta", "")
                self._refresh()
            elif kind == "error":
                self._fail(event.get("errorText") or "An error occurred")

    def _refresh(self) -> None:
        self.carousel.update(self.messages, self.status)

    def _fail(self, message: str) -> None:
        logger.info("Chat error: %s", message)
        self.error = message


def _error_text(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return f"HTTP {resp.status_code}"
