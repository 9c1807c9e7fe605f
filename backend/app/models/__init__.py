from models.base import Base, async_session, create_tables, engine, get_session
from models.system_prompt import SystemPrompt

__all__ = [
    "Base",
    "async_session",
    "create_tables",
    "engine",
    "get_session",
    "SystemPrompt",
]
