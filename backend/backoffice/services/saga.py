# Overview: Saga runner for multi-ledger operations; executes steps and compensates in reverse order.

"""
Saga runner

WHY: Creating a sale touches stock, prizes, cash accounts, receivables and
points. Each of those ledger calls commits on its own, so a failure half way
through cannot be rolled back by the database; it has to be undone by
running the compensating ledger operation of every step that already
completed, newest first.

DESIGN PRINCIPLES:
- A step is (action, compensation); the action runs immediately
- Compensation is registered only after its action succeeded
- compensate() runs each registered compensation at most once, so calling it
  again after a partial failure only retries what did not finish
- A step that runs past SAGA_STEP_TIMEOUT_SECONDS is treated as failed: its
  compensation is registered and StepTimeoutError is raised
- A failing compensation is logged critically and surfaces as
  ConsistencyError; it is never retried automatically
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable

from flask import current_app

from ..errors import ConsistencyError, StepTimeoutError
from ..extensions import db


@dataclass
class _Step:
    name: str
    compensation: Callable[[], Any]
    compensated: bool = False


class Saga:
    """
    Usage:

        with Saga("create_sale") as saga:
            sale = saga.step("insert sale", insert, lambda: delete(sale.id))
            ...

    Leaving the block with an exception compensates every completed step
    and re-raises the original error (or ConsistencyError if a compensation
    failed).
    """

    def __init__(self, name: str, *, step_timeout: float | None = None):
        self.name = name
        if step_timeout is None:
            step_timeout = current_app.config.get("SAGA_STEP_TIMEOUT_SECONDS", 10.0)
        self.step_timeout = step_timeout
        self._steps: list[_Step] = []

    def __enter__(self) -> "Saga":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            return False
        # Drop whatever the failed step flushed but did not commit
        db.session.rollback()
        current_app.logger.warning("Saga %s failed (%s: %s); compensating", self.name, exc_type.__name__, exc)
        self.compensate()
        return False

    @property
    def completed_steps(self) -> list[str]:
        return [s.name for s in self._steps]

    def step(self, name: str, action: Callable[[], Any], compensation: Callable[[], Any] | None = None) -> Any:
        """Run ``action`` now and register ``compensation`` for it. Returns the action's result."""
        started = time.monotonic()
        result = action()
        elapsed = time.monotonic() - started

        if compensation is not None:
            self._steps.append(_Step(name=name, compensation=compensation))

        if self.step_timeout and elapsed > self.step_timeout:
            raise StepTimeoutError(
                f"Saga {self.name} step {name!r} took {elapsed:.2f}s (limit {self.step_timeout}s)",
                details={"saga": self.name, "step": name, "elapsed_seconds": round(elapsed, 3)},
            )
        return result

    def compensate(self) -> None:
        """Undo completed steps newest first. Steps already undone are skipped."""
        failures = []
        for step in reversed(self._steps):
            if step.compensated:
                continue
            try:
                step.compensation()
            except Exception as exc:
                db.session.rollback()
                current_app.logger.critical(
                    "Saga %s: compensation for step %r failed: %s", self.name, step.name, exc, exc_info=True
                )
                failures.append({"step": step.name, "error": str(exc)})
                continue
            step.compensated = True
            current_app.logger.warning("Saga %s: compensated step %r", self.name, step.name)

        if failures:
            raise ConsistencyError(
                f"Saga {self.name} could not be fully compensated; manual reconciliation required",
                details={"saga": self.name, "failed_steps": failures},
            )

