"""
Compensating actions for multi-document writes.

MongoDB updates in the checkout path are issued one by one. A ``Saga`` records
an undo callable for every step that completed; if a later step raises, the
recorded undos run in reverse order and the original exception propagates.

    with Saga("place-order") as saga:
        order_id = saga.step("insert order", insert, undo=delete)
        saga.step("decrement stock", decrement, undo=increment)
"""
import logging
from typing import Any, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class Saga:
    def __init__(self, name: str):
        self.name = name
        self.completed: List[str] = []
        self._undo: List[Tuple[str, Callable[[], Any]]] = []

    def step(self, label: str, action: Callable[[], Any], undo: Optional[Callable[[Any], Any]] = None) -> Any:
        result = action()
        self.completed.append(label)
        if undo is not None:
            self._undo.append((label, lambda: undo(result)))
        return result

    def rollback(self) -> List[str]:
        """Run compensations newest first. Returns the labels of failed compensations."""
        failed = []
        while self._undo:
            label, undo = self._undo.pop()
            try:
                undo()
                logger.info("[%s] compensated: %s", self.name, label)
            except Exception:
                logger.exception("[%s] compensation failed: %s", self.name, label)
                failed.append(label)
        return failed

    def __enter__(self) -> "Saga":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            logger.warning("[%s] failed after %s; rolling back", self.name, self.completed or "no steps")
            self.rollback()
        return False
