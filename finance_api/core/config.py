# finance_api/core/config.py
import os
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


class Settings:
    APP_NAME: str = os.getenv("APP_NAME", "Finance API")
    ENV: str = os.getenv("ENV", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # DB
    DATABASE_URL: str = os.getenv("DATABASE_URL")
    DB_HOST: str = os.getenv("DB_HOST", "localhost")
    DB_PORT: str = os.getenv("DB_PORT", "5432")
    DB_NAME: str = os.getenv("DB_NAME", "finance")
    DB_USER: str = os.getenv("DB_USER", "postgres")
    DB_PASSWORD: str = os.getenv("DB_PASSWORD", "")
    DB_SSLMODE: str = os.getenv("DB_SSLMODE", "require")

    # FRONTEND
    FRONTEND_BASE_URL: str = os.getenv(
        "FRONTEND_BASE_URL",
        "http://localhost:3000"
    )

    # OCR (GOOGLE DOCUMENT AI / PADDLE FALLBACK)
    OCR_PROVIDER: str = os.getenv("OCR_PROVIDER", "auto")
    GOOGLE_CLOUD_PROJECT_ID: str = os.getenv("GOOGLE_CLOUD_PROJECT_ID")
    GOOGLE_CLOUD_LOCATION: str = (
        os.getenv("GOOGLE_CLOUD_REGION")
        or os.getenv("GOOGLE_CLOUD_LOCATION")
        or "us"
    )
    DOCUMENT_AI_PROCESSOR_ID: str = os.getenv("GOOGLE_DOCUMENT_AI_PROCESSOR_ID")
    DOCUMENT_AI_PROCESSOR_ID_BANK: str = os.getenv("GOOGLE_DOCUMENT_AI_PROCESSOR_ID_BANK")
    DOCUMENT_AI_PROCESSOR_ID_CARD: str = os.getenv("GOOGLE_DOCUMENT_AI_PROCESSOR_ID_CARD")
    DOCUMENT_AI_PROCESSOR_ID_RECEIPT: str = os.getenv("GOOGLE_DOCUMENT_AI_PROCESSOR_ID_RECEIPT")
    DOCUMENT_AI_PROCESSOR_VERSION: str = os.getenv("GOOGLE_DOCUMENT_AI_PROCESSOR_VERSION")
    GOOGLE_APPLICATION_CREDENTIALS: str = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
    PADDLE_OCR_LANG: str = os.getenv("PADDLE_OCR_LANG", "pt")
    GOOGLE_AI_DAILY_LIMIT: int = int(os.getenv("GOOGLE_AI_DAILY_LIMIT", "500"))

    # LLM (GROQ)
    GROQ_API_KEY: str = os.getenv("GROQ_API_KEY")
    LLM_MODEL: str = os.getenv("LLM_MODEL", "llama-3.3-70b-versatile")
    LLM_RECEIPT_MODEL: str = os.getenv("LLM_RECEIPT_MODEL") or LLM_MODEL
    LLM_MAX_TOKENS: int = int(os.getenv("LLM_MAX_TOKENS", "4000"))
    LLM_TEXT_LIMIT: int = int(os.getenv("LLM_TEXT_LIMIT", "8000"))
    DEFAULT_USE_LLM: bool = _flag("DEFAULT_USE_LLM")

    # FX
    EXCHANGE_FALLBACK_EUR_TO_BRL: str = os.getenv("EXCHANGE_FALLBACK_EUR_TO_BRL")

    # UPLOADS
    MAX_UPLOAD_MB: int = int(os.getenv("MAX_UPLOAD_MB", "10"))

settings = Settings()
