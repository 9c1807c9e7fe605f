from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database (required, startup fails without it)
    DATABASE_URL: str

    # App
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list[str] = []        # empty: same-origin only

    # Completion provider (xAI Grok, OpenAI-compatible API)
    XAI_API_KEY: str = ""
    XAI_BASE_URL: str = "https://api.x.ai/v1"
    AI_TIMEOUT: int = 30
    DEFAULT_MODEL: str = "grok-4-fast-reasoning"
    ALLOWED_MODELS: list[str] = [
        "grok-4-fast-reasoning",
        "grok-4-fast-non-reasoning",
        "grok-3-mini",
        "grok-3",
    ]
    DEFAULT_SYSTEM_PROMPT: str = "You are a helpful assistant."

    # Access control
    ADMIN_KEY: str = ""                 # UI login secret
    CHATBOT_SECRET_KEY: str = ""        # chat endpoint secret
    CHAT_AUTH_MODE: str = "secret"      # secret | cookie | none
    CHAT_REJECT_EMPTY: bool = True      # strict variant: 400 on messages=[]
    UI_REQUIRE_LOGIN: bool = True
    COOKIE_SECURE: bool = False

    # System prompt store
    PROMPT_KEY: str = "system"
    PROMPT_STORE_TIMEOUT: float = 5.0
    PROMPT_STORE_RETRIES: int = 1

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
