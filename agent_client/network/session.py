"""Server-issued session identity and exchange history."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExchangeRecord:
    request: Dict[str, Any]
    response: Dict[str, Any]
    completed_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))


@dataclass(frozen=True)
class ContextRestoreNotice:
    """Emitted after a reconnect when prior conversation state was not replayed."""

    previous_session_id: Optional[str]
    history_length: int
    reason: str = "server does not support session resume"


@dataclass
class SessionContext:
    """Opaque session id plus the append-only history of completed exchanges."""

    session_id: Optional[str] = None
    previous_session_id: Optional[str] = None
    history: List[ExchangeRecord] = field(default_factory=list)

    def assign(self, session_id: str) -> None:
        if self.session_id and self.session_id != session_id:
            self.previous_session_id = self.session_id
            LOGGER.info("Server issued new session %s (previous %s)", session_id, self.session_id)
        else:
            LOGGER.info("Server issued session %s", session_id)
        self.session_id = session_id

    def record(self, request: Optional[Dict[str, Any]], response: Dict[str, Any]) -> ExchangeRecord:
        entry = ExchangeRecord(request=request or {}, response=response)
        self.history.append(entry)
        return entry

    def restore_notice(self) -> ContextRestoreNotice:
        return ContextRestoreNotice(
            previous_session_id=self.session_id or self.previous_session_id,
            history_length=len(self.history),
        )

    def reset(self) -> None:
        """Forget the session identity; history stays until ``clear_history``."""

        if self.session_id:
            self.previous_session_id = self.session_id
        self.session_id = None

    def clear_history(self) -> None:
        self.history.clear()
