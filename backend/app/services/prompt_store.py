"""System prompt store — get/set a single named text value.

Reads never fail: a missing row, an empty prompt or an unreachable
database all yield the default instruction. Writes upsert the row
wholesale (last write wins) and raise StoreFailure on database errors.

Every round trip runs under a timeout with a bounded retry on transient
errors (connection drops, timeouts).
"""
import asyncio
import logging
from datetime import datetime, timezone

from sqlalchemy import exc as sa_exc
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.errors import StoreFailure
from models.system_prompt import SystemPrompt

logger = logging.getLogger("grokchat.prompt_store")

TRANSIENT_ERRORS = (
    asyncio.TimeoutError,
    OSError,
    sa_exc.OperationalError,
    sa_exc.InterfaceError,
)

# INSERT ... ON CONFLICT DO UPDATE, one statement per save
UPSERT_INSERTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}


class PromptStore:

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        key: str = "system",
        default: str = "You are a helpful assistant.",
        timeout: float = 5.0,
        retries: int = 1,
    ):
        self._session_factory = session_factory
        self.key = key
        self.default = default
        self.timeout = timeout
        self.retries = max(0, retries)

    async def _with_retry(self, op, *args):
        attempts = self.retries + 1
        for attempt in range(attempts):
            try:
                return await asyncio.wait_for(op(*args), timeout=self.timeout)
            except TRANSIENT_ERRORS as exc:
                if attempt + 1 >= attempts:
                    raise
                logger.warning(
                    "Prompt store transient error: %s, retry %d/%d",
                    exc, attempt + 1, self.retries,
                )

    async def _load(self) -> str | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(SystemPrompt.prompt).where(SystemPrompt.key == self.key)
            )
            return result.scalar_one_or_none()

    async def _save(self, text: str) -> None:
        async with self._session_factory() as session:
            now = datetime.now(timezone.utc)
            dialect = session.get_bind().dialect.name
            insert = UPSERT_INSERTS.get(dialect)
            if insert is None:
                raise StoreFailure(f"Prompt store does not support the {dialect} dialect")

            stmt = insert(SystemPrompt).values(key=self.key, prompt=text, updated_at=now)
            stmt = stmt.on_conflict_do_update(
                index_elements=[SystemPrompt.key],
                set_={"prompt": stmt.excluded.prompt, "updated_at": stmt.excluded.updated_at},
            )
            await session.execute(stmt)
            await session.commit()

    async def get_prompt(self) -> str:
        try:
            prompt = await self._with_retry(self._load)
        except Exception as e:
            logger.warning("Could not load system prompt, using default: %s", e)
            return self.default
        return prompt or self.default

    async def set_prompt(self, text: str) -> str:
        try:
            await self._with_retry(self._save, text)
        except Exception as e:
            logger.error("Error saving system prompt: %s", e)
            raise StoreFailure("Failed to save prompt") from e
        logger.info("System prompt saved (%d chars)", len(text))
        return text
