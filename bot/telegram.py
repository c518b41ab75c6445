"""
Telegram Front-end - chat with the agent from Telegram

Receives Telegram messages, runs them through the same ChatAgent the terminal
uses, and sends the replies back. Runs in the background on the main event
loop so the terminal menu stays usable.

Design:
- Text is ignored (with a hint) until /start
- /devmode toggles relaying application logs into the admin chat
- /exit stops only the bot, /kill ends the whole application
- One agent thread per chat: "telegram-<chat_id>"
- When TELEGRAM_ALLOWED_USERS is set, everyone else gets "Unauthorized."

Usage:
    bot = TelegramIntegration(agent, config, on_kill=shutdown)
    await bot.start()
    await bot.wait_for_exit()
"""

import sys
import html
import asyncio
import logging
from collections import deque
from typing import Callable, Optional

from telegram import Update
from telegram.constants import ParseMode
from telegram.error import BadRequest
from telegram.ext import (
    Application,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from core.agent import ChatAgent
from core.config import AppConfig
from core.formatting import split_message

logger = logging.getLogger("merchant.telegram")
reply_logger = logging.getLogger("merchant.telegram.replies")

LOG_BUFFER_SIZE = 100
HISTORY_LIMIT = 50
MAX_LOG_CHARS = 4000

WELCOME_TEXT = (
    "Welcome! Available commands:\n"
    "/devmode - Toggle developer mode\n"
    "/exit - Exit Telegram mode (bot stops, but application remains running)\n"
    "/kill - Terminate the entire application\n"
    "Send your message and I'll help you."
)
NOT_STARTED_TEXT = "Please use /start to begin the conversation."
ERROR_TEXT = "An error occurred while processing your message. Please try again."
EXIT_TEXT = "Exiting Telegram mode. Telegram bot will stop, but the application remains running."
KILL_TEXT = "Terminating the entire application. Goodbye!"
EMPTY_REPLY = "(no response)"
UNAUTHORIZED_TEXT = "Unauthorized."

# Loggers whose records are never relayed (polling traffic, the relay's own sends)
_QUIET_LOGGERS = ("httpx", "httpcore", "telegram", "merchant.telegram.replies")


def format_reply(text: str) -> str:
    """Agent output -> Telegram HTML. Text is escaped, otherwise unchanged."""
    return html.escape(text, quote=False)


def _display_name(update: Update) -> str:
    user = update.effective_user
    if user is None:
        return "unknown"
    return user.username or user.first_name or str(user.id)


# ============================================================
# LOG RELAY
# ============================================================

class TelegramLogRelay(logging.Handler):
    """
    Logging handler that mirrors records into the admin chat in developer mode.

    Keeps the last LOG_BUFFER_SIZE formatted records so /start can replay them.
    Records emitted while a relay send is in flight are dropped.
    """

    def __init__(self, integration: "TelegramIntegration", capacity: int = LOG_BUFFER_SIZE):
        super().__init__()
        self.integration = integration
        self.buffer: deque[str] = deque(maxlen=capacity)
        self._sending = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: set[asyncio.Task] = set()

    def bind_loop(self, loop: asyncio.AbstractEventLoop):
        self._loop = loop

    def emit(self, record: logging.LogRecord):
        if self._sending or record.name.startswith(_QUIET_LOGGERS):
            return
        try:
            message = self.format(record)
        except Exception:
            self.handleError(record)
            return

        self.buffer.append(message)

        integration = self.integration
        if not integration.development_mode or integration.admin_chat_id is None:
            return
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._schedule, message)

    def _schedule(self, message: str):
        task = self._loop.create_task(self.send(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def send(self, message: str):
        chat_id = self.integration.admin_chat_id
        if chat_id is None:
            return
        self._sending = True
        try:
            await self.integration.bot.send_message(
                chat_id=chat_id,
                text=f"<pre>{html.escape(message[:MAX_LOG_CHARS])}</pre>",
                parse_mode=ParseMode.HTML,
            )
        except Exception as e:
            # Not through logging: that would feed the relay again
            sys.stderr.write(f"Error sending log to Telegram: {e}\n")
        finally:
            self._sending = False

    def clear(self):
        self.buffer.clear()


# ============================================================
# BOT
# ============================================================

class TelegramIntegration:
    def __init__(
        self,
        agent: ChatAgent,
        config: AppConfig,
        on_kill: Optional[Callable[[], None]] = None,
    ):
        if not config.telegram_bot_token:
            raise ValueError("TELEGRAM_BOT_TOKEN is not set")
        self.agent = agent
        self.config = config
        self.development_mode = config.development_mode
        self.admin_chat_id: Optional[int] = config.telegram_admin_chat_id
        self.active = False
        self.chat_histories: dict[int, list[dict]] = {}
        self.log_relay = TelegramLogRelay(self)
        self.log_relay.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
        self._on_kill = on_kill
        self._app: Optional[Application] = None
        self._running = False
        self._exit_event: Optional[asyncio.Event] = None
        self._stop_task: Optional[asyncio.Task] = None

    @property
    def bot(self):
        return self._app.bot

    @property
    def running(self) -> bool:
        return self._running

    def build_application(self) -> Application:
        app = Application.builder().token(self.config.telegram_bot_token).build()
        app.add_handler(CommandHandler("start", self.cmd_start))
        app.add_handler(CommandHandler("devmode", self.cmd_devmode))
        app.add_handler(CommandHandler("exit", self.cmd_exit))
        app.add_handler(CommandHandler("kill", self.cmd_kill))
        app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, self.handle_message))
        return app

    # ============================================================
    # LIFECYCLE
    # ============================================================

    async def start(self):
        if self._running:
            return
        self._exit_event = asyncio.Event()
        self._app = self.build_application()
        await self._app.initialize()
        await self._app.start()
        await self._app.updater.start_polling(drop_pending_updates=True)
        self._running = True

        self.log_relay.bind_loop(asyncio.get_running_loop())
        logging.getLogger().addHandler(self.log_relay)
        if self.config.telegram_allowed_users:
            logger.info(f"Authorized users: {sorted(self.config.telegram_allowed_users)}")
        else:
            logger.warning("TELEGRAM_ALLOWED_USERS is not set, any Telegram user can control the agent")
        logger.info("Telegram mode started. Waiting for messages...")

    async def stop(self):
        if not self._running:
            return
        self._running = False
        logging.getLogger().removeHandler(self.log_relay)
        try:
            if self._app.updater.running:
                await self._app.updater.stop()
            await self._app.stop()
            await self._app.shutdown()
        finally:
            logger.info("Telegram bot stopped")
            if self._exit_event is not None:
                self._exit_event.set()

    async def wait_for_exit(self):
        """Resolve once the bot has stopped (via /exit or stop())."""
        if self._exit_event is None:
            return
        await self._exit_event.wait()

    # ============================================================
    # HANDLERS
    # ============================================================

    def is_authorized(self, update: Update) -> bool:
        """No allowlist configured means everyone is allowed."""
        allowed = self.config.telegram_allowed_users
        if not allowed:
            return True
        user = update.effective_user
        return user is not None and user.id in allowed

    async def _reject_unauthorized(self, update: Update) -> bool:
        if self.is_authorized(update):
            return False
        logger.warning(f"Rejected Telegram update from unauthorized user {_display_name(update)}")
        await update.message.reply_text(UNAUTHORIZED_TEXT)
        return True

    async def _reply(self, update: Update, text: str, **kwargs):
        reply_logger.info(f"Bot response to {_display_name(update)}: {text}")
        await update.message.reply_text(text, **kwargs)

    async def cmd_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if await self._reject_unauthorized(update):
            return
        self.active = True
        self.admin_chat_id = update.effective_chat.id

        if self.development_mode and self.log_relay.buffer:
            previous = "\n".join(self.log_relay.buffer)
            self.log_relay.clear()
            for chunk in split_message(previous, MAX_LOG_CHARS):
                await update.message.reply_text(
                    f"Previous logs:\n<pre>{html.escape(chunk)}</pre>", parse_mode=ParseMode.HTML,
                )
        else:
            self.log_relay.clear()

        await self._reply(update, WELCOME_TEXT)

    async def cmd_devmode(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if await self._reject_unauthorized(update):
            return
        self.development_mode = not self.development_mode
        if self.admin_chat_id is None:
            self.admin_chat_id = update.effective_chat.id
        await self._reply(update, f"Developer mode is now {'ON' if self.development_mode else 'OFF'}.")

    async def cmd_exit(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if await self._reject_unauthorized(update):
            return
        await self._reply(update, EXIT_TEXT)
        # Stopping waits for the running handler, so do it outside of it
        self._stop_task = asyncio.create_task(self.stop())

    async def cmd_kill(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if await self._reject_unauthorized(update):
            return
        await self._reply(update, KILL_TEXT)
        if self._on_kill is not None:
            self._on_kill()

    def _remember(self, chat_id: int, role: str, content: str):
        history = self.chat_histories.setdefault(chat_id, [])
        history.append({"role": role, "content": content})
        if len(history) > HISTORY_LIMIT:
            del history[:-HISTORY_LIMIT]

    async def handle_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not update.message or not update.message.text:
            return
        text = update.message.text
        if text.startswith("/"):
            return
        if await self._reject_unauthorized(update):
            return

        if not self.active:
            await self._reply(update, NOT_STARTED_TEXT)
            return

        chat_id = update.effective_chat.id
        logger.info(f"Message from {_display_name(update)}: {text}")
        self._remember(chat_id, "user", text)

        try:
            response = await self.agent.run(text, thread_id=f"telegram-{chat_id}")
        except Exception as e:
            logger.error(f"Error processing message: {e}")
            await self._reply(update, ERROR_TEXT)
            return

        response = response.strip() or EMPTY_REPLY
        self._remember(chat_id, "assistant", response)

        # Split the raw text so no chunk boundary falls inside an HTML entity
        for chunk in split_message(response):
            try:
                await self._reply(update, format_reply(chunk), parse_mode=ParseMode.HTML)
            except BadRequest as e:
                logger.warning(f"Telegram rejected HTML reply ({e}), resending as plain text")
                await self._reply(update, chunk)
