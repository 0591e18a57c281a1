"""
Action tokens embedded in assistant (LLM) replies.

Recognized tokens:
    ACTION:SWITCH_CLIENT <client name>
    ACTION:CHECK_ALL_CLIENTS
    ACTION:SYNC_ALL
    ACTION:SYNC [SKU1,SKU2]
    ACTION:COMPARE

Only the first matching token is acted on, in the order above.
"""

import re
from enum import Enum
from typing import Awaitable, List, Optional, Protocol

import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger()

SWITCH_CLIENT_PATTERN = re.compile(r"ACTION:SWITCH_CLIENT\s+(.+)", re.IGNORECASE)
SYNC_SKUS_PATTERN = re.compile(r"ACTION:SYNC\s+\[([\w\-,\s]+)\]")
COMPARE_PATTERN = re.compile(r"ACTION:COMPARE\b")


class ActionType(str, Enum):
    SWITCH_CLIENT = "switch_client"
    CHECK_ALL_CLIENTS = "check_all_clients"
    SYNC_ALL = "sync_all"
    SYNC_SKUS = "sync_skus"
    COMPARE = "compare"


class Action(BaseModel):
    type: ActionType
    client_name: Optional[str] = None
    skus: List[str] = Field(default_factory=list)


class ActionHandlers(Protocol):
    """Operations an action can trigger."""

    def switch_client(self, client_name: str) -> Awaitable[object]: ...

    def check_all_clients(self) -> Awaitable[object]: ...

    def sync_all(self) -> Awaitable[object]: ...

    def sync_skus(self, skus: List[str]) -> Awaitable[object]: ...

    def compare(self) -> Awaitable[object]: ...


def parse_action(text: str) -> Optional[Action]:
    """Extract the action token from an assistant reply, if any."""
    if not text:
        return None

    switch_match = SWITCH_CLIENT_PATTERN.search(text)
    if switch_match:
        return Action(type=ActionType.SWITCH_CLIENT, client_name=switch_match.group(1).strip())

    if "ACTION:CHECK_ALL_CLIENTS" in text:
        return Action(type=ActionType.CHECK_ALL_CLIENTS)

    if "ACTION:SYNC_ALL" in text:
        return Action(type=ActionType.SYNC_ALL)

    sync_match = SYNC_SKUS_PATTERN.search(text)
    if sync_match:
        skus = [sku.strip() for sku in sync_match.group(1).split(",") if sku.strip()]
        if skus:
            return Action(type=ActionType.SYNC_SKUS, skus=skus)

    if COMPARE_PATTERN.search(text):
        return Action(type=ActionType.COMPARE)

    return None


async def execute_action(text: str, handlers: ActionHandlers) -> Optional[Action]:
    """
    Parse an assistant reply and run the matching handler.

    Returns:
        The action that was executed, or None if the reply had no action token
    """
    action = parse_action(text)
    if action is None:
        return None

    logger.info("Executing assistant action", action=action.type.value, skus=action.skus)

    if action.type == ActionType.SWITCH_CLIENT:
        await handlers.switch_client(action.client_name)
    elif action.type == ActionType.CHECK_ALL_CLIENTS:
        await handlers.check_all_clients()
    elif action.type == ActionType.SYNC_ALL:
        await handlers.sync_all()
    elif action.type == ActionType.SYNC_SKUS:
        await handlers.sync_skus(action.skus)
    elif action.type == ActionType.COMPARE:
        await handlers.compare()

    return action
