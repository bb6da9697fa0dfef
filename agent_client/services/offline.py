"""Keyword-pattern agent that answers without a backend."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence, Tuple

from shared.models.agent import AgentResponse, UiIntent, now_ms
from shared.protocol import new_message_id

LOGGER = logging.getLogger(__name__)

DEFAULT_REPLY = (
    "I can help you with swaps, checking gas prices, viewing your assets, and more. "
    "What would you like to do?"
)


@dataclass(frozen=True)
class PatternRule:
    keywords: Tuple[str, ...]
    reply: str
    component: str

    def matches(self, text: str) -> bool:
        return any(keyword in text for keyword in self.keywords)

    def ui_intent(self) -> UiIntent:
        return UiIntent(type="RENDER_COMPONENT", component=self.component, props={})


DEFAULT_RULES: Tuple[PatternRule, ...] = (
    PatternRule(("gas", "fee"), "Here are the current gas prices:", "NetworkStatus"),
    PatternRule(("swap", "exchange", "trade"), "I can help you swap tokens:", "TokenSwap"),
    PatternRule(("lend", "lending", "apy", "earn"), "Here are the current lending rates:", "LendingSection"),
    PatternRule(("balance", "asset", "portfolio"), "Here are your current assets:", "YourAssets"),
    PatternRule(("perpetual", "perp", "leverage"), "You can open leveraged positions here:", "PerpetualsSection"),
    PatternRule(("activity", "history", "transaction"), "Here's your recent activity:", "RecentActivity"),
)


class PatternAgentService:
    """Offline stand-in for the agent backend.

    The first rule whose keyword occurs in the lower-cased message wins; when
    none match the default reply is returned without a UI intent. Replies are
    delayed by a random amount inside ``[min_delay, max_delay]`` seconds.
    """

    def __init__(
        self,
        *,
        min_delay: float = 0.2,
        max_delay: float = 0.4,
        rules: Sequence[PatternRule] = DEFAULT_RULES,
    ) -> None:
        if min_delay < 0 or max_delay < min_delay:
            raise ValueError("expected 0 <= min_delay <= max_delay")
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.rules = tuple(rules)

    def match(self, message: str) -> Optional[PatternRule]:
        text = message.lower()
        for rule in self.rules:
            if rule.matches(text):
                return rule
        return None

    async def send_message(self, message: str, history: Iterable[Any] = ()) -> AgentResponse:
        if self.max_delay > 0:
            await asyncio.sleep(random.uniform(self.min_delay, self.max_delay))
        rule = self.match(message)
        LOGGER.debug("Offline agent matched %s", rule.component if rule else "default")
        return AgentResponse(
            id=new_message_id(),
            content=rule.reply if rule else DEFAULT_REPLY,
            timestamp=now_ms(),
            ui_intent=rule.ui_intent() if rule else None,
        )
