"""
merchant-agent - main entry point

Builds the wallet, action providers and agent, starts the Telegram bot in the
background when a token is configured, then asks which mode to run.
One file to understand how everything connects.

Usage:
    python main.py
"""

import os
import re
import sys
import asyncio
import logging
from typing import Optional

from dotenv import load_dotenv

# ============================================================
# BOOTSTRAP
# ============================================================

load_dotenv()

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
# python-telegram-bot polls constantly; keep httpx request lines out of INFO output
logging.getLogger("httpx").setLevel(logging.WARNING)


class SecretMaskingFilter(logging.Filter):
    """Redact 64-char hex strings (private keys) from all log output."""
    _PATTERN = re.compile(r'(?<![0-9a-fA-F])([0-9a-fA-F]{64})(?![0-9a-fA-F])')

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self._PATTERN.sub('[REDACTED]', record.msg)
        if record.args:
            try:
                formatted = record.getMessage()
            except (TypeError, ValueError):
                return True
            if self._PATTERN.search(formatted):
                record.msg = self._PATTERN.sub('[REDACTED]', formatted)
                record.args = None
        return True


_mask_filter = SecretMaskingFilter()
for _h in logging.root.handlers:
    _h.addFilter(_mask_filter)

logger = logging.getLogger("merchant.main")


# ============================================================
# MODULE IMPORTS
# ============================================================

from core.config import AppConfig, ConfigError, validate_environment
from core.wallet import EvmWalletProvider, WalletError
from core.agent import ChatAgent, create_openai_client
from core.modes import choose_mode, run_autonomous_mode, run_chat_mode
from core.actions.base import ActionProvider, Toolkit
from core.actions.wallet_actions import Erc20ActionProvider, WalletActionProvider, WethActionProvider
from core.actions.pyth import PythActionProvider
from core.actions.aave import AaveActionProvider
from core.actions.merchant import MerchantActionProvider
from secretvault.config import load_secret_vault_config
from secretvault.store import MerchantVault
from secretvault.client import SecretVaultError
from bot.telegram import TelegramIntegration


# ============================================================
# SHUTDOWN
# ============================================================

def _kill():
    """
    End the process immediately with status 0.

    Used by Telegram /kill: the terminal may be blocked in input() on an
    executor thread, which a normal interpreter shutdown would wait for.
    """
    logger.info("Kill requested; terminating")
    logging.shutdown()
    sys.stdout.flush()
    os._exit(0)


# ============================================================
# INITIALIZATION
# ============================================================

async def _connect_vault() -> Optional[MerchantVault]:
    vault_config = load_secret_vault_config()
    if vault_config is None:
        return None
    try:
        vault = await MerchantVault.connect(vault_config)
    except SecretVaultError as e:
        logger.warning(f"SecretVault unavailable, inventory actions disabled: {e}")
        return None
    logger.info(f"SecretVault connected ({len(vault_config.nodes)} nodes)")
    return vault


def build_providers(vault: Optional[MerchantVault]) -> list[ActionProvider]:
    return [
        WalletActionProvider(),
        Erc20ActionProvider(),
        WethActionProvider(),
        PythActionProvider(),
        AaveActionProvider(),
        MerchantActionProvider(vault),
    ]


async def initialize_agent(config: AppConfig) -> tuple[ChatAgent, EvmWalletProvider, list[ActionProvider], Optional[MerchantVault]]:
    wallet = EvmWalletProvider.from_config(config)

    vault = await _connect_vault()
    providers = build_providers(vault)
    toolkit = Toolkit(wallet, providers)

    client = create_openai_client(config.openai_api_key, config.openai_base_url)
    agent = ChatAgent(
        client=client,
        toolkit=toolkit,
        model=config.openai_model,
        recursion_limit=config.recursion_limit,
    )

    # Persist the wallet so the next run reuses the same address
    wallet.save_wallet_data(config.wallet_data_file, config.wallet_passphrase)
    return agent, wallet, providers, vault


async def _close(providers: list[ActionProvider], vault: Optional[MerchantVault]):
    for provider in providers:
        close = getattr(provider, "close", None)
        if close is not None:
            await close()
    if vault is not None:
        await vault.close()


# ============================================================
# MAIN
# ============================================================

async def main():
    try:
        validate_environment()
        config = AppConfig.from_env()
    except ConfigError as e:
        logger.error(f"Error: {e}")
        sys.exit(1)

    logger.info("=" * 60)
    logger.info("Starting Agent...")
    logger.info(f"Config: {config.describe()}")
    logger.info("=" * 60)

    try:
        agent, wallet, providers, vault = await initialize_agent(config)
    except (WalletError, ConfigError) as e:
        logger.error(f"Error: {e}")
        sys.exit(1)
    logger.info(f"Agent wallet: {wallet.get_address()} on {wallet.get_network().network_id}")

    telegram: Optional[TelegramIntegration] = None
    if config.telegram_bot_token:
        telegram = TelegramIntegration(agent, config, on_kill=_kill)
        telegram.log_relay.addFilter(_mask_filter)
        try:
            await telegram.start()
        except Exception as e:
            logger.error(f"Error in Telegram mode: {e}")
            telegram = None

    try:
        mode = await asyncio.get_running_loop().run_in_executor(None, choose_mode)

        if mode == "chat":
            await run_chat_mode(
                agent,
                development_mode=config.development_mode,
                recursion_limit=config.recursion_limit if config.recursion_limit_explicit else None,
            )
        elif mode == "auto":
            await run_autonomous_mode(agent, interval=config.autonomous_interval)
        elif mode == "telegram":
            if telegram is None:
                logger.error("Error: TELEGRAM_BOT_TOKEN is not defined in the environment variables.")
                return
            print("Telegram mode is already running in the background. You can interact via Telegram.")

        # The bot keeps the application alive until /exit
        if telegram is not None and telegram.running:
            await telegram.wait_for_exit()
    finally:
        if telegram is not None:
            await telegram.stop()
        await _close(providers, vault)


# ============================================================
# ENTRY POINT
# ============================================================

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")
