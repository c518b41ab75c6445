"""
Configuration - environment validation and app settings.

All settings come from the process environment (populated from .env by
main.py via load_dotenv). Required variables are checked up front so the
app fails fast with a list of everything that is missing.
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional

from core.formatting import format_private_key
from core.networks import DEFAULT_NETWORK_ID, NETWORKS

logger = logging.getLogger("merchant.config")

REQUIRED_VARS = ["OPENAI_API_KEY"]

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_WALLET_DATA_FILE = "wallet_data.json"
DEFAULT_RECURSION_LIMIT = 25
DEV_RECURSION_LIMIT = 50


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid."""

    def __init__(self, message: str, missing: Optional[list[str]] = None):
        super().__init__(message)
        self.missing = missing or []


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")


def parse_user_ids(raw: str) -> frozenset:
    """Comma-separated Telegram user ids -> set of ints. Empty means no allowlist."""
    try:
        return frozenset(int(uid.strip()) for uid in raw.split(",") if uid.strip())
    except ValueError:
        raise ConfigError(f"TELEGRAM_ALLOWED_USERS must be comma-separated numeric user ids, got: {raw!r}")


def validate_environment(required: Optional[list[str]] = None) -> None:
    """
    Check that every required variable is set.

    Logs a `NAME=your_name_here` hint per missing variable and raises
    ConfigError listing them all. A missing NETWORK_ID only warns.
    """
    required = required if required is not None else REQUIRED_VARS
    missing = [name for name in required if not os.getenv(name)]

    if missing:
        logger.error("Required environment variables are not set.")
        for name in missing:
            logger.error(f"{name}=your_{name.lower()}_here")
        raise ConfigError(f"Missing required environment variables: {', '.join(missing)}", missing)

    if not os.getenv("NETWORK_ID"):
        logger.warning(f"NETWORK_ID not set, defaulting to {DEFAULT_NETWORK_ID} testnet")


@dataclass
class AppConfig:
    openai_api_key: str
    openai_model: str = DEFAULT_MODEL
    openai_base_url: Optional[str] = None
    network_id: str = DEFAULT_NETWORK_ID
    rpc_url: Optional[str] = None
    wallet_private_key: Optional[str] = None
    wallet_data_file: str = DEFAULT_WALLET_DATA_FILE
    wallet_passphrase: str = ""
    autonomous_interval: float = 10.0
    recursion_limit: int = DEFAULT_RECURSION_LIMIT
    recursion_limit_explicit: bool = False
    telegram_bot_token: Optional[str] = None
    telegram_admin_chat_id: Optional[int] = None
    telegram_allowed_users: frozenset = frozenset()
    development_mode: bool = False

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Build config from the environment. Call validate_environment() first."""
        network_id = os.getenv("NETWORK_ID") or DEFAULT_NETWORK_ID
        if network_id not in NETWORKS:
            raise ConfigError(
                f"Unsupported NETWORK_ID '{network_id}' (expected one of: {', '.join(NETWORKS)})"
            )

        admin_chat_raw = os.getenv("TELEGRAM_ADMIN_CHAT_ID", "").strip()
        admin_chat_id = None
        if admin_chat_raw:
            try:
                admin_chat_id = int(admin_chat_raw)
            except ValueError:
                logger.warning(f"Ignoring non-numeric TELEGRAM_ADMIN_CHAT_ID: {admin_chat_raw}")

        try:
            interval = float(os.getenv("AUTONOMOUS_INTERVAL", "10"))
        except ValueError:
            raise ConfigError("AUTONOMOUS_INTERVAL must be a number of seconds")

        dev_mode = _env_flag("DEV_MODE") or os.getenv("NODE_ENV", "") == "development"

        try:
            recursion_limit = int(os.getenv(
                "AGENT_RECURSION_LIMIT",
                str(DEV_RECURSION_LIMIT if dev_mode else DEFAULT_RECURSION_LIMIT),
            ))
        except ValueError:
            raise ConfigError("AGENT_RECURSION_LIMIT must be an integer")

        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            openai_model=os.getenv("OPENAI_MODEL", DEFAULT_MODEL),
            openai_base_url=os.getenv("OPENAI_BASE_URL") or None,
            network_id=network_id,
            rpc_url=os.getenv("RPC_URL") or None,
            wallet_private_key=format_private_key(os.getenv("WALLET_PRIVATE_KEY")),
            wallet_data_file=os.getenv("WALLET_DATA_FILE", DEFAULT_WALLET_DATA_FILE),
            wallet_passphrase=os.getenv("WALLET_PASSPHRASE", ""),
            autonomous_interval=interval,
            recursion_limit=recursion_limit,
            recursion_limit_explicit=bool(os.getenv("AGENT_RECURSION_LIMIT")),
            telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN") or None,
            telegram_admin_chat_id=admin_chat_id,
            telegram_allowed_users=parse_user_ids(os.getenv("TELEGRAM_ALLOWED_USERS", "")),
            development_mode=dev_mode,
        )

    def describe(self) -> dict:
        """Loggable view with secrets hidden."""
        return {
            "network_id": self.network_id,
            "rpc_url": self.rpc_url or NETWORKS[self.network_id].rpc,
            "model": self.openai_model,
            "wallet_data_file": self.wallet_data_file,
            "wallet_private_key": "PRIVATE_KEY_HIDDEN" if self.wallet_private_key else None,
            "telegram": bool(self.telegram_bot_token),
            "telegram_allowed_users": sorted(self.telegram_allowed_users),
            "development_mode": self.development_mode,
        }
