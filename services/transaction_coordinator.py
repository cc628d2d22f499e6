"""
Best-effort transaction coordinator (saga).

Supabase offers no multi-row transactions through PostgREST, so multi-step
operations run as an ordered list of compensable steps:

- steps run strictly in order;
- when step k fails, the rollbacks of steps k-1..1 run in reverse order;
- a failing rollback is logged at CRITICAL and recorded, never raised, and
  never stops the remaining rollbacks;
- a cancelled step also triggers the rollbacks, then the cancellation
  propagates.

NOT atomic: between a step succeeding and its rollback, concurrent readers can
observe the intermediate state (e.g. a sale row whose piece is not reserved
yet). Callers must tolerate that.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Sequence

logger = logging.getLogger(__name__)

ExecuteFn = Callable[[], Awaitable[Any]]
RollbackFn = Callable[[Any], Awaitable[Any]]


@dataclass(frozen=True, slots=True)
class TransactionStep:
    """
    One compensable step.

    rollback receives the value returned by execute.
    """
    name: str
    execute: ExecuteFn
    rollback: Optional[RollbackFn] = None


@dataclass(frozen=True, slots=True)
class CompensationFailure:
    step: str
    error: str


@dataclass(frozen=True, slots=True)
class TransactionResult:
    success: bool
    data: List[Any] = field(default_factory=list)
    error: Optional[str] = None
    failed_operation: Optional[str] = None
    exception: Optional[BaseException] = None
    compensation_failures: List[CompensationFailure] = field(default_factory=list)

    @property
    def fully_compensated(self) -> bool:
        return not self.compensation_failures


async def _compensate(completed: Sequence[tuple[TransactionStep, Any]], failed_step: str) -> List[CompensationFailure]:
    failures: List[CompensationFailure] = []

    for step, result in reversed(completed):
        if step.rollback is None:
            continue
        try:
            await step.rollback(result)
        except Exception as exc:
            logger.critical(
                f"Rollback of {step.name!r} failed after {failed_step!r} failed: "
                "manual reconciliation required",
                extra={"step": step.name, "failed_operation": failed_step, "error": str(exc)},
                exc_info=True,
            )
            failures.append(CompensationFailure(step=step.name, error=str(exc)))
        else:
            logger.info(f"Rolled back {step.name!r}", extra={"step": step.name})

    return failures


async def execute_transaction(steps: Sequence[TransactionStep]) -> TransactionResult:
    """
    Run `steps` in order, compensating completed steps on the first failure.

    Returns:
        TransactionResult; on success `data` holds each step's return value
        in order. Never raises for a failing step or rollback; only
        re-raises CancelledError, after compensating.
    """

    completed: List[tuple[TransactionStep, Any]] = []

    for step in steps:
        try:
            result = await step.execute()
        except asyncio.CancelledError:
            logger.warning(
                f"Step {step.name!r} cancelled, rolling back {len(completed)} completed step(s)",
                extra={"step": step.name},
            )
            await asyncio.shield(_compensate(completed, step.name))
            raise
        except Exception as exc:
            logger.error(
                f"Step {step.name!r} failed, rolling back {len(completed)} completed step(s)",
                extra={"step": step.name, "error": str(exc)},
            )
            failures = await _compensate(completed, step.name)
            return TransactionResult(
                success=False,
                data=[value for _, value in completed],
                error=str(exc) or f"Step {step.name!r} failed",
                failed_operation=step.name,
                exception=exc,
                compensation_failures=failures,
            )
        completed.append((step, result))

    return TransactionResult(success=True, data=[value for _, value in completed])


__all__ = [
    "CompensationFailure",
    "TransactionResult",
    "TransactionStep",
    "execute_transaction",
]
