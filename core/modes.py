"""
Run Modes - terminal chat, autonomous loop, mode menu

Design:
- Blocking input() runs in the default executor so a background Telegram bot
  keeps polling on the same event loop
- "exit" leaves chat mode, "kill" ends the process with status 0
- Any unexpected error in chat/auto logs "Error: ..." and exits with status 1
"""

import asyncio
import logging
from typing import Callable, Optional

from core.agent import ChatAgent, DEFAULT_THREAD_ID
from core.config import DEV_RECURSION_LIMIT

logger = logging.getLogger("merchant.modes")

SEPARATOR = "-------------------"
CHAT_PROMPT = "\nPrompt: "
AUTONOMOUS_THOUGHT = (
    "Be creative and do something interesting on-chain. "
    "Choose an action that showcases your skills and execute it."
)
DEFAULT_INTERVAL = 10

MODES = {
    "1": "chat",
    "2": "auto",
    "3": "telegram",
}

MENU = (
    "\nAvailable modes:\n"
    "1. chat      - Interactive chat mode\n"
    "2. auto      - Autonomous action mode\n"
    "3. telegram  - Telegram chat interface mode"
)


def choose_mode(input_fn: Callable[[str], str] = input, print_fn: Callable[..., None] = print) -> str:
    """Ask until the answer is a mode number or name. Returns "chat", "auto" or "telegram"."""
    while True:
        print_fn(MENU)
        choice = input_fn("\nChoose a mode (enter number or name): ").strip().lower()
        if choice in MODES:
            return MODES[choice]
        if choice in MODES.values():
            return choice
        print_fn("Invalid choice. Please try again.")


async def _ainput(input_fn: Callable[[str], str], prompt: str) -> str:
    return await asyncio.get_running_loop().run_in_executor(None, input_fn, prompt)


async def run_chat_mode(
    agent: ChatAgent,
    development_mode: bool = False,
    recursion_limit: Optional[int] = None,
    thread_id: str = DEFAULT_THREAD_ID,
    input_fn: Callable[[str], str] = input,
    print_fn: Callable[..., None] = print,
) -> None:
    print_fn("Starting chat mode... Type 'exit' to end, or 'kill' to terminate the entire application.")

    # An explicit limit wins over the developer-mode default
    if recursion_limit is not None:
        agent.recursion_limit = recursion_limit
    elif development_mode:
        agent.recursion_limit = DEV_RECURSION_LIMIT

    try:
        while True:
            user_input = await _ainput(input_fn, CHAT_PROMPT)
            command = user_input.strip().lower()

            if command == "exit":
                logger.info("Leaving chat mode")
                return
            if command == "kill":
                print_fn("Terminating the entire application from terminal.")
                raise SystemExit(0)
            if not command:
                continue

            async for chunk in agent.stream(user_input, thread_id):
                print_fn(chunk.content)
                print_fn(SEPARATOR)
    except (KeyboardInterrupt, EOFError):
        logger.info("Chat input closed")
    except Exception as e:
        logger.error(f"Error: {e}")
        raise SystemExit(1) from e


async def run_autonomous_mode(
    agent: ChatAgent,
    interval: float = DEFAULT_INTERVAL,
    thread_id: str = DEFAULT_THREAD_ID,
    print_fn: Callable[..., None] = print,
    max_iterations: int = 0,
) -> None:
    """
    Send the creative on-chain thought every `interval` seconds.

    max_iterations=0 runs until the process is stopped.
    """
    print_fn("Starting autonomous mode...")
    iteration = 0
    try:
        while True:
            async for chunk in agent.stream(AUTONOMOUS_THOUGHT, thread_id):
                print_fn(chunk.content)
                print_fn(SEPARATOR)

            iteration += 1
            if max_iterations and iteration >= max_iterations:
                return
            await asyncio.sleep(interval)
    except Exception as e:
        logger.error(f"Error: {e}")
        raise SystemExit(1) from e
