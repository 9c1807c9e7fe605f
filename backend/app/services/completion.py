"""
Completion gateway — forwards a validated conversation to Grok and streams
the answer back as a UI message stream (server-sent events).

Grok is reached through the OpenAI SDK (xAI exposes an OpenAI-compatible
API). The provider stream is opened before the HTTP response starts, so a
failure to start is reported as a plain error response; a failure after
streaming began is reported as an ``error`` event, never as cut-off text.
"""
import json
import logging
import uuid
from typing import AsyncIterator, Sequence

from openai import APIConnectionError, APIError, APIStatusError, APITimeoutError, AsyncOpenAI

from core.errors import Misconfigured, UpstreamFailure
from core.messages import AttachmentPart, Message, TextPart

logger = logging.getLogger("grokchat.completion")

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
    "x-vercel-ai-ui-message-stream": "v1",
}


def format_provider_error(error: Exception) -> str:
    """Human-readable message for a completion provider failure."""
    if isinstance(error, APITimeoutError):
        return "The model did not respond in time. Please try again."
    if isinstance(error, APIConnectionError):
        return "Could not reach the model provider. Please try again later."
    if isinstance(error, APIStatusError):
        code = error.status_code
        if code in (401, 403):
            return "The model provider rejected the API key."
        if code == 429:
            return "Rate limit reached at the model provider. Wait a moment and retry."
        if code >= 500:
            return f"The model provider is temporarily unavailable (HTTP {code})."
        return f"Model provider error (HTTP {code}): {error.message}"
    if isinstance(error, APIError):
        return f"Model provider error: {error.message}"
    return str(error) or UpstreamFailure.default_message


def sse(event: dict | str) -> str:
    payload = event if isinstance(event, str) else json.dumps(event, ensure_ascii=False)
    return f"data: {payload}\n\n"


class CompletionGateway:
    """Model selection, message conversion and streaming for /chat."""

    def __init__(
        self,
        client: AsyncOpenAI | None,
        allowed_models: Sequence[str],
        default_model: str,
        default_system_prompt: str,
    ):
        self.client = client
        self.allowed_models = tuple(allowed_models)
        self.default_model = default_model
        self.default_system_prompt = default_system_prompt

    def select_model(self, requested) -> str:
        if isinstance(requested, str) and requested in self.allowed_models:
            return requested
        if requested:
            logger.info("Model %r not allowed, using %s", requested, self.default_model)
        return self.default_model

    def resolve_system(self, system) -> str:
        if isinstance(system, str) and system:
            return system
        return self.default_system_prompt

    # ------------------------------------------------------------------
    # Message conversion
    # ------------------------------------------------------------------
    @staticmethod
    def _user_content(message: Message) -> list[dict]:
        content = []
        for part in message.parts:
            if isinstance(part, TextPart):
                content.append({"type": "text", "text": part.text})
            elif isinstance(part, AttachmentPart):
                if part.is_image:
                    content.append({"type": "image_url", "image_url": {"url": part.url}})
                else:
                    name = part.filename or part.url
                    content.append({"type": "text", "text": f"[attached file: {name}]"})
            else:
                raise TypeError(f"Unknown message part: {part!r}")
        return content

    def to_provider_messages(self, messages: Sequence[Message], system: str) -> list[dict]:
        payload = [{"role": "system", "content": system}]
        for message in messages:
            if message.role == "user":
                payload.append({"role": "user", "content": self._user_content(message)})
            else:
                payload.append({"role": "assistant", "content": message.text()})
        return payload

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------
    async def open_stream(
        self, messages: Sequence[Message], system: str, model: str
    ) -> AsyncIterator[str]:
        """Start the provider stream; returns the SSE event iterator."""
        if self.client is None:
            raise Misconfigured("Server misconfiguration: XAI_API_KEY is not set")

        logger.info("Chat → %s (%d messages)", model, len(messages))
        try:
            stream = await self.client.chat.completions.create(
                model=model,
                messages=self.to_provider_messages(messages, system),
                stream=True,
            )
        except Exception as e:
            logger.error("Chat API error: %s", e, exc_info=not isinstance(e, APIError))
            raise UpstreamFailure(format_provider_error(e)) from e

        return self._ui_events(stream, model)

    async def _ui_events(self, stream, model: str) -> AsyncIterator[str]:
        message_id = f"msg-{uuid.uuid4().hex}"
        text_id = "text-1"
        chars = 0

        yield sse({"type": "start", "messageId": message_id})
        yield sse({"type": "start-step"})
        yield sse({"type": "text-start", "id": text_id})
        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    chars += len(delta)
                    yield sse({"type": "text-delta", "id": text_id, "delta": delta})
        except Exception as e:
            logger.error("Chat stream error after %d chars: %s", chars, e)
            yield sse({"type": "error", "errorText": format_provider_error(e)})
            yield sse("[DONE]")
            return
        finally:
            await stream.close()

        logger.info("Chat ← %s: %d chars", model, chars)
        yield sse({"type": "text-end", "id": text_id})
        yield sse({"type": "finish-step"})
        yield sse({"type": "finish"})
        yield sse("[DONE]")
