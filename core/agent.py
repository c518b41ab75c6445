"""
Chat Agent - LLM tool-calling loop

Sends the conversation plus the toolkit's tool definitions to an
OpenAI-compatible chat model. When the model asks for tools they are run
through the Toolkit and their results fed back; the loop ends on a plain
reply or when the recursion limit is hit.

Conversation history is kept in memory per thread id, so each Telegram chat
and the terminal session keep separate context. Each thread keeps the system
prompt plus roughly the last MAX_HISTORY_MESSAGES messages, cut at a user turn.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from openai import AsyncOpenAI
from openai import APIStatusError as OpenAIAPIStatusError

from core.actions.base import Toolkit

logger = logging.getLogger("merchant.agent")

DEFAULT_THREAD_ID = "merchant-agent"

SYSTEM_PROMPT = (
    "You are a helpful agent that can interact on-chain using your wallet and tools. "
    "You have access to tools for on-chain interaction, Aave lending, price feeds and a merchant "
    "inventory. When executing an action, verify if you need to store a merchant profile or "
    "register a product in inventory based on the user's request. "
    "If you need funds on a testnet, tell the user your wallet address and ask them to send some. "
    "If a tool fails, explain the error to the user and suggest what to try next. "
    "Be concise."
)

TRANSIENT_STATUS = (500, 502, 503, 529)
MAX_RETRIES = 2
MAX_HISTORY_MESSAGES = 40


@dataclass
class AgentChunk:
    kind: str       # "agent" or "tools"
    content: str


class ChatAgent:
    def __init__(
        self,
        client: AsyncOpenAI,
        toolkit: Toolkit,
        model: str,
        system_prompt: str = SYSTEM_PROMPT,
        recursion_limit: int = 25,
        max_history_messages: int = MAX_HISTORY_MESSAGES,
    ):
        self._client = client
        self._toolkit = toolkit
        self._model = model
        self._system_prompt = system_prompt
        self.recursion_limit = recursion_limit
        self.max_history_messages = max_history_messages
        self._threads: dict[str, list[dict]] = {}

    @property
    def toolkit(self) -> Toolkit:
        return self._toolkit

    def history(self, thread_id: str = DEFAULT_THREAD_ID) -> list[dict]:
        if thread_id not in self._threads:
            self._threads[thread_id] = [{"role": "system", "content": self._system_prompt}]
        return self._threads[thread_id]

    def reset(self, thread_id: str = DEFAULT_THREAD_ID) -> None:
        self._threads.pop(thread_id, None)

    def _trim(self, messages: list[dict]) -> None:
        """Drop the oldest turns, keeping the system prompt at index 0."""
        if len(messages) - 1 <= self.max_history_messages:
            return
        start = len(messages) - self.max_history_messages
        # The kept window must open on a user message so tool results stay with their tool_calls
        while start < len(messages) and messages[start]["role"] != "user":
            start += 1
        if start == len(messages):
            user_turns = [i for i, m in enumerate(messages) if m["role"] == "user"]
            if not user_turns:
                return
            start = user_turns[-1]
        del messages[1:start]

    # ============================================================
    # LLM CALL
    # ============================================================

    async def _complete(self, messages: list[dict]):
        kwargs = {"model": self._model, "messages": messages}
        tools = self._toolkit.to_openai_tools()
        if tools:
            kwargs["tools"] = tools

        for attempt in range(MAX_RETRIES + 1):
            try:
                response = await self._client.chat.completions.create(**kwargs)
                return response.choices[0].message
            except OpenAIAPIStatusError as e:
                if e.status_code in TRANSIENT_STATUS and attempt < MAX_RETRIES:
                    wait = 2 ** attempt  # 1s, 2s
                    logger.warning(
                        f"LLM returned {e.status_code} (attempt {attempt + 1}/{MAX_RETRIES + 1}), "
                        f"retrying in {wait}s"
                    )
                    await asyncio.sleep(wait)
                    continue
                raise

    # ============================================================
    # PUBLIC API
    # ============================================================

    async def stream(self, message: str, thread_id: str = DEFAULT_THREAD_ID) -> AsyncIterator[AgentChunk]:
        """
        Run one user turn. Yields an "agent" chunk for each assistant text and a
        "tools" chunk for each tool result, in order.
        """
        messages = self.history(thread_id)
        self._trim(messages)
        messages.append({"role": "user", "content": message})

        for _ in range(self.recursion_limit):
            reply = await self._complete(messages)
            tool_calls = reply.tool_calls or []

            entry = {"role": "assistant", "content": reply.content or ""}
            if tool_calls:
                entry["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.function.name, "arguments": call.function.arguments},
                    }
                    for call in tool_calls
                ]
            messages.append(entry)

            if reply.content:
                yield AgentChunk("agent", reply.content)

            if not tool_calls:
                return

            for call in tool_calls:
                result = await self._toolkit.invoke(call.function.name, call.function.arguments)
                messages.append({"role": "tool", "tool_call_id": call.id, "content": result})
                yield AgentChunk("tools", result)

        logger.warning(f"Recursion limit ({self.recursion_limit}) reached on thread {thread_id}")
        yield AgentChunk(
            "agent",
            f"Stopped after {self.recursion_limit} steps without reaching a final answer.",
        )

    async def run(self, message: str, thread_id: str = DEFAULT_THREAD_ID) -> str:
        """Collect a whole turn into one string (agent and tool output concatenated)."""
        parts = []
        async for chunk in self.stream(message, thread_id):
            parts.append(chunk.content)
        return "".join(parts)


def create_openai_client(api_key: str, base_url: Optional[str] = None) -> AsyncOpenAI:
    return AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=60.0)
