"""
Action framework - tools the agent can call.

An ActionProvider groups related actions. Each action has a name, a
description the LLM reads, a pydantic schema for its arguments, and an
async invoke(wallet, args) -> str.

Toolkit gathers actions from every provider that supports the wallet's
network, exports them as OpenAI tool definitions, and dispatches tool calls.
Errors raised inside an action are turned into a result string so the model
can see what went wrong and the chat loop keeps running.
"""

import json
import inspect
import logging
from abc import ABC
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Type

from pydantic import BaseModel, ValidationError

from core.networks import Network

logger = logging.getLogger("merchant.actions")

_ACTION_ATTR = "_action_meta"


@dataclass
class Action:
    name: str
    description: str
    schema: Type[BaseModel]
    invoke: Callable[[Any, BaseModel], Awaitable[str]]


@dataclass(frozen=True)
class _ActionMeta:
    name: str
    description: str
    schema: Type[BaseModel]


def create_action(name: str, description: str, schema: Type[BaseModel]):
    """Mark an ActionProvider coroutine method as an action."""
    def decorator(fn):
        setattr(fn, _ACTION_ATTR, _ActionMeta(name=name, description=inspect.cleandoc(description), schema=schema))
        return fn
    return decorator


class ActionProvider(ABC):
    """Base class. Subclasses decorate methods with @create_action."""

    def __init__(self, name: str):
        self.name = name

    def supports_network(self, network: Network) -> bool:
        return True

    def get_actions(self, wallet=None) -> list[Action]:
        actions = []
        for attr_name in dir(type(self)):
            fn = getattr(type(self), attr_name, None)
            meta = getattr(fn, _ACTION_ATTR, None)
            if meta is None:
                continue
            actions.append(Action(
                name=meta.name,
                description=meta.description,
                schema=meta.schema,
                invoke=getattr(self, attr_name),
            ))
        return actions


class CustomActionProvider(ActionProvider):
    """Provider built from plain (name, description, schema, invoke) definitions."""

    def __init__(self, actions: list[Action], name: str = "custom"):
        super().__init__(name)
        self._actions = actions

    def get_actions(self, wallet=None) -> list[Action]:
        return list(self._actions)


def custom_action_provider(
    name: str,
    description: str,
    schema: Type[BaseModel],
    invoke: Callable[[Any, BaseModel], Awaitable[str]],
) -> CustomActionProvider:
    return CustomActionProvider([Action(name=name, description=description, schema=schema, invoke=invoke)])


# ============================================================
# TOOLKIT
# ============================================================

class Toolkit:
    """
    The set of tools handed to the agent.

    Tool names are "<provider>_<action>" so two providers can both have
    e.g. a "get_balance" action.
    """

    def __init__(self, wallet, providers: list[ActionProvider]):
        self._wallet = wallet
        self._actions: dict[str, Action] = {}

        network = wallet.get_network()
        for provider in providers:
            if not provider.supports_network(network):
                logger.info(f"Action provider '{provider.name}' does not support {network.network_id}; skipping")
                continue
            for action in provider.get_actions(wallet):
                tool_name = f"{provider.name}_{action.name}"
                if tool_name in self._actions:
                    raise ValueError(f"Duplicate tool name: {tool_name}")
                self._actions[tool_name] = action

        logger.info(f"Toolkit ready: {len(self._actions)} tools on {network.network_id}")

    @property
    def tool_names(self) -> list[str]:
        return list(self._actions)

    def get_action(self, tool_name: str) -> Optional[Action]:
        return self._actions.get(tool_name)

    def to_openai_tools(self) -> list[dict]:
        tools = []
        for tool_name, action in self._actions.items():
            parameters = action.schema.model_json_schema()
            parameters.pop("title", None)
            tools.append({
                "type": "function",
                "function": {
                    "name": tool_name,
                    "description": action.description,
                    "parameters": parameters,
                },
            })
        return tools

    async def invoke(self, tool_name: str, raw_args: Any) -> str:
        """Validate arguments, run the action, always return a string."""
        action = self._actions.get(tool_name)
        if action is None:
            return f"Error: unknown tool '{tool_name}'"

        try:
            if isinstance(raw_args, str):
                raw_args = json.loads(raw_args) if raw_args.strip() else {}
            args = action.schema.model_validate(raw_args or {})
        except (ValidationError, json.JSONDecodeError) as e:
            logger.warning(f"Invalid arguments for {tool_name}: {e}")
            return f"Error executing {tool_name}: invalid arguments: {e}"

        logger.info(f"Tool call: {tool_name}({args.model_dump_json()})")
        try:
            result = await action.invoke(self._wallet, args)
        except Exception as e:
            logger.warning(f"Tool {tool_name} failed: {e}")
            return f"Error executing {tool_name}: {e}"
        return str(result)
