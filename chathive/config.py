from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


class Config:
    # WhatsApp (per-organization phone number id / access token live in the organizations table)
    WHATSAPP_APP_SECRET: str = os.getenv("WHATSAPP_APP_SECRET", "")
    WHATSAPP_VERIFY_TOKEN: str = os.getenv("WHATSAPP_VERIFY_TOKEN", "chathive-webhook-verify")
    WHATSAPP_API_VERSION: str = os.getenv("WHATSAPP_API_VERSION", "v21.0")
    WHATSAPP_IMPLICIT_OPT_IN: bool = os.getenv("WHATSAPP_IMPLICIT_OPT_IN", "true").lower() == "true"

    # Webhook ingestion
    WEBHOOK_UNIT_TIMEOUT_SECONDS: float = float(os.getenv("WEBHOOK_UNIT_TIMEOUT_SECONDS", "5"))

    # Postgres
    POSTGRES_HOST: str = os.getenv("POSTGRES_HOST", "localhost")
    POSTGRES_PORT: int = int(os.getenv("POSTGRES_PORT", "5432"))
    POSTGRES_USERNAME: str = os.getenv("POSTGRES_USERNAME", "postgres")
    POSTGRES_PASSWORD: str = os.getenv("POSTGRES_PASSWORD", "")
    POSTGRES_DB_NAME: str = os.getenv("POSTGRES_DB_NAME", "chathive")
    SQL_COMMAND_ECHO: bool = os.getenv("SQL_COMMAND_ECHO", "false").lower() == "true"

    # Dashboard
    CORS_ALLOW_ORIGINS: list[str] = [
        origin.strip()
        for origin in os.getenv("CORS_ALLOW_ORIGINS", "http://localhost:3000").split(",")
        if origin.strip()
    ]
