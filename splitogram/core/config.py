from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    DATABASE_URL: str
    JWT_SECRET: str
    JWT_ALGO: str = "HS256"
    LOG_LEVEL: str = "INFO"
    DB_ECHO: bool = False

    # TON verification oracle
    TONAPI_URL: str = "https://testnet.tonapi.io"
    TONAPI_KEY: str | None = None
    USDT_MASTER_ADDRESS: str | None = None
    ORACLE_TIMEOUT_SECONDS: float = 10.0

    # Telegram notifications
    TELEGRAM_BOT_TOKEN: str | None = None
    TELEGRAM_API_URL: str = "https://api.telegram.org"
    PAGES_URL: str | None = None
    NOTIFY_TIMEOUT_SECONDS: float = 5.0
    NOTIFY_RETRY_DELAY_SECONDS: float = 1.0

    class Config:
        env_file = ".env"

settings = Settings()
