import os
import tempfile

_db_dir = tempfile.mkdtemp(prefix="grokchat-test-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_db_dir, 'app.db')}"
os.environ["XAI_API_KEY"] = ""
os.environ["ADMIN_KEY"] = "admin-key"
os.environ["CHATBOT_SECRET_KEY"] = "chat-secret"
os.environ["CHAT_AUTH_MODE"] = "secret"

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from api.deps import get_gateway, get_prompt_store
from config import settings
from core.messages import Message
from services.completion import CompletionGateway


def chunk(text: str | None):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])


class FakeStream:
    def __init__(self, pieces, fail_after: int | None = None):
        self.pieces = list(pieces)
        self.fail_after = fail_after
        self.closed = False

    def __aiter__(self):
        return self._iter()

    async def _iter(self):
        for i, piece in enumerate(self.pieces):
            if self.fail_after is not None and i >= self.fail_after:
                raise RuntimeError("connection dropped mid-stream")
            yield chunk(piece)

    async def close(self):
        self.closed = True


class FakeCompletions:
    def __init__(self, pieces=("Hello", ", world"), error: Exception | None = None,
                 fail_after: int | None = None):
        self.pieces = pieces
        self.error = error
        self.fail_after = fail_after
        self.calls: list[dict] = []
        self.streams: list[FakeStream] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        stream = FakeStream(self.pieces, fail_after=self.fail_after)
        self.streams.append(stream)
        return stream


def fake_client(completions: FakeCompletions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def make_gateway(completions: FakeCompletions | None = None) -> CompletionGateway:
    return CompletionGateway(
        fake_client(completions) if completions is not None else None,
        allowed_models=settings.ALLOWED_MODELS,
        default_model=settings.DEFAULT_MODEL,
        default_system_prompt=settings.DEFAULT_SYSTEM_PROMPT,
    )


class MemoryPromptStore:
    def __init__(self, default="You are a helpful assistant.", fail_writes=False):
        self.default = default
        self.fail_writes = fail_writes
        self.value: str | None = None

    async def get_prompt(self) -> str:
        return self.value or self.default

    async def set_prompt(self, text: str) -> str:
        if self.fail_writes:
            from core.errors import StoreFailure
            raise StoreFailure("Failed to save prompt")
        self.value = text
        return text


def user(msg_id: str, text: str = "", *files: str) -> Message:
    parts = [{"type": "text", "text": text}] if text else []
    parts += [{"type": "file", "mediaType": "image/png", "url": url} for url in files]
    return Message.model_validate({"id": msg_id, "role": "user", "parts": parts})


def bot(msg_id: str, text: str = "ok") -> Message:
    return Message.model_validate(
        {"id": msg_id, "role": "assistant", "parts": [{"type": "text", "text": text}]}
    )


@pytest.fixture
def completions():
    return FakeCompletions()


@pytest.fixture
def prompt_store():
    return MemoryPromptStore()


@pytest.fixture
def client(completions, prompt_store):
    from main import app

    with TestClient(app) as c:
        app.dependency_overrides[get_gateway] = lambda: make_gateway(completions)
        app.dependency_overrides[get_prompt_store] = lambda: prompt_store
        yield c
    app.dependency_overrides.clear()
