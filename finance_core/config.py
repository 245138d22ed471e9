"""Environment-driven configuration for the finance tracker.

Values come from the process environment, optionally seeded from a ``.env``
file. Settings objects are immutable and passed explicitly to the components
that need them; nothing here caches connections or transports.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

DEFAULT_FROM_ADDRESS = '"Finance Tracker" <noreply@financetracker.com>'
DEFAULT_EMAIL_TIMEOUT = 10.0
ETHEREAL_API_URL = "https://api.nodemailer.com/user"


def load_environment(dotenv_path: Optional[Path] = None) -> None:
    """Populate ``os.environ`` from a .env file without overriding real variables."""
    load_dotenv(dotenv_path=dotenv_path, override=False)


def data_dir(env: Optional[Mapping[str, str]] = None) -> Path:
    env = os.environ if env is None else env
    return Path(env.get("FINANCE_TRACKER_DATA_DIR", "data"))


def _first(env: Mapping[str, str], *names: str) -> Optional[str]:
    for name in names:
        value = env.get(name)
        if value:
            return value
    return None


@dataclass(frozen=True)
class MailSettings:
    """Ordered provider credentials for the mail fallback chain."""

    api_key: Optional[str] = None
    api_host: str = "smtp.sendgrid.net"
    api_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    from_address: str = DEFAULT_FROM_ADDRESS
    timeout: float = DEFAULT_EMAIL_TIMEOUT
    ethereal_api_url: str = ETHEREAL_API_URL
    ethereal_enabled: bool = True

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "MailSettings":
        env = os.environ if env is None else env
        return cls(
            api_key=env.get("SENDGRID_API_KEY") or None,
            api_host=env.get("SENDGRID_HOST", cls.api_host),
            api_port=int(env.get("SENDGRID_PORT", cls.api_port)),
            smtp_user=_first(env, "SMTP_USER", "GMAIL_USER"),
            smtp_password=_first(env, "SMTP_PASS", "GMAIL_PASS"),
            smtp_host=env.get("SMTP_HOST", cls.smtp_host),
            smtp_port=int(env.get("SMTP_PORT", cls.smtp_port)),
            from_address=env.get("EMAIL_FROM") or cls.from_address,
            timeout=float(env.get("EMAIL_TIMEOUT", cls.timeout)),
            ethereal_api_url=env.get("EMAIL_ETHEREAL_API", cls.ethereal_api_url),
            ethereal_enabled=env.get("EMAIL_ETHEREAL_ENABLED", "true").lower() != "false",
        )
