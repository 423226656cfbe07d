from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Literal

logger = logging.getLogger(__name__)

TransactionStatus = Literal["pending", "applied", "committed", "rolled_back", "rejected"]


class StoreError(RuntimeError):
    pass


@dataclass
class Transaction:
    """One optimistic store mutation.

    ``apply`` changes local state, ``commit`` pushes it to the remote side and
    ``rollback`` restores the previous local state when the commit fails.
    """

    label: str
    apply: Callable[[], None]
    rollback: Callable[[], None]
    commit: Callable[[], Any] | None = None
    status: TransactionStatus = "pending"
    error: str | None = None
    result: Any = None

    @classmethod
    def rejected(cls, label: str, error: str) -> Transaction:
        return cls(
            label=label,
            apply=_noop,
            rollback=_noop,
            status="rejected",
            error=error,
        )

    @property
    def committed(self) -> bool:
        return self.status == "committed"

    @property
    def failed(self) -> bool:
        return self.status in {"rolled_back", "rejected"}

    def execute(self) -> Transaction:
        if self.status != "pending":
            raise StoreError(f"Transaction {self.label} already {self.status}.")
        self.apply()
        self.status = "applied"
        if self.commit is None:
            self.status = "committed"
            return self
        try:
            self.result = self.commit()
        except Exception as exc:
            self.revert(str(exc))
            return self
        self.status = "committed"
        return self

    def revert(self, reason: str) -> None:
        if self.status != "applied":
            raise StoreError(f"Cannot roll back transaction in state {self.status}.")
        self.rollback()
        self.status = "rolled_back"
        self.error = reason
        logger.warning("Rolled back %s: %s", self.label, reason)


def _noop() -> None:
    return None
