"""Operation log writer.

Audit records are best-effort: a failure to append one is logged and
never undoes or fails the business operation that produced it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable

from expense_settlement.constants import Collection

if TYPE_CHECKING:
    from expense_settlement.store import DocumentStore

logger = logging.getLogger(__name__)


class OperationLog:
    """Append-only sink over the ``operation_logs`` collection."""

    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], str],
        id_factory: Callable[[str], str],
    ):
        self.store = store
        self.clock = clock
        self.id_factory = id_factory

    async def record(
        self,
        action: str,
        user_id: str | None,
        target_type: str,
        target_id: str,
        payload: dict[str, Any] | None = None,
    ) -> bool:
        """Append one audit record. Returns False if the write failed."""
        try:
            await self.store.insert(
                Collection.OPERATION_LOGS,
                {
                    "log_id": self.id_factory("log"),
                    "action": action,
                    "user_id": user_id or None,
                    "target_type": target_type,
                    "target_id": target_id,
                    "payload": payload or {},
                    "created_at": self.clock(),
                },
            )
        except Exception:
            logger.exception(
                "Failed to write operation log %s for %s %s",
                action,
                target_type,
                target_id,
            )
            return False
        return True
