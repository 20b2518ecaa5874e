import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

DEFAULT_MODEL = "gpt-4o-mini"


@dataclass(frozen=True)
class Settings:
    """
    Process-wide settings, read once at startup.

    Environment variables (a ``.env`` file is honoured):
        OPENAI_API_KEY: Key for the remote model provider
        PII_PROXY_MODEL: Model name (default: gpt-4o-mini)
        PII_WHITELISTED_DOMAINS: Comma-separated email domains never redacted
        PII_PROXY_LOG_LEVEL: Logging level (default: INFO)
    """

    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    whitelisted_domains: tuple = field(default_factory=tuple)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv=True):
        if dotenv:
            load_dotenv()

        domains = os.getenv("PII_WHITELISTED_DOMAINS", "")
        return cls(
            api_key=os.getenv("OPENAI_API_KEY"),
            model=os.getenv("PII_PROXY_MODEL", DEFAULT_MODEL),
            whitelisted_domains=tuple(d.strip().lower() for d in domains.split(",") if d.strip()),
            log_level=os.getenv("PII_PROXY_LOG_LEVEL", "INFO").upper(),
        )


def configure_logging(level="INFO"):
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
