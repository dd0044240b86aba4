"""
Mutation Saga

A multi-step mutation (insert record, adjust balances, write audit
records) runs as an ordered list of steps. Each step may register a
compensating action that undoes it.

When a step raises:
- with compensation on, completed steps are undone in reverse order;
  a compensation that raises is logged and skipped, the rest still run
- SagaFailedError is raised either way, chained to the original error

DESIGN DECISION: The record store has no multi-row transactions, so
this is the closest we get to atomicity. Compensations re-read current
state before writing, so they undo the step's delta instead of
restoring a snapshot that a concurrent writer may have moved on from.
"""

from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, ConfigDict

from fintrack.audit.logger import AuditLogger
from fintrack.reconciliation.errors import SagaFailedError


logger = structlog.get_logger(__name__)

SagaContext = dict[str, Any]
StepAction = Callable[[SagaContext], Awaitable[Any]]


class SagaStep(BaseModel):
    """One forward action and its optional undo."""
    model_config = ConfigDict(frozen=True)

    name: str
    action: StepAction
    compensation: Optional[StepAction] = None


class MutationSaga:
    """
    Ordered forward steps with compensations.

    Each action receives the shared context dict; its return value is
    stored in the context under the step name, so later steps can use
    ids assigned by earlier ones.

    Usage:
        saga = MutationSaga("create_expense")
        saga.add_step("insert_expense", insert, compensation=delete)
        saga.add_step("debit_account", debit, compensation=credit)
        context = await saga.run()
    """

    def __init__(
        self,
        name: str,
        compensate_on_failure: bool = True,
        audit_logger: Optional[AuditLogger] = None,
        correlation_id: Optional[UUID] = None,
    ):
        self.name = name
        self._compensate = compensate_on_failure
        self._audit = audit_logger
        self._correlation_id = correlation_id
        self._steps: list[SagaStep] = []

    @property
    def step_names(self) -> list[str]:
        return [step.name for step in self._steps]

    def add_step(
        self,
        name: str,
        action: StepAction,
        compensation: Optional[StepAction] = None,
    ) -> "MutationSaga":
        if name in self.step_names:
            raise ValueError(f"Duplicate saga step name: {name}")
        self._steps.append(SagaStep(name=name, action=action, compensation=compensation))
        return self

    async def run(self, context: Optional[SagaContext] = None) -> SagaContext:
        """
        Execute all steps in order.

        Returns:
            The context, holding each step's result under its name

        Raises:
            SagaFailedError: If any step raised
        """
        ctx: SagaContext = context if context is not None else {}
        completed: list[SagaStep] = []

        for step in self._steps:
            try:
                ctx[step.name] = await step.action(ctx)
            except Exception as e:
                logger.error(
                    "saga_step_failed",
                    saga=self.name,
                    step=step.name,
                    error=str(e),
                    correlation_id=str(self._correlation_id) if self._correlation_id else None,
                )
                compensated, failed = [], []
                if self._compensate:
                    compensated, failed = await self._compensate_steps(completed, ctx)
                if self._audit:
                    await self._audit.log_saga_compensated(
                        saga_name=self.name,
                        failed_step=step.name,
                        compensated_steps=compensated,
                        failed_compensations=failed,
                        error_message=str(e),
                        correlation_id=self._correlation_id,
                    )
                raise SagaFailedError(self.name, step.name, compensated, failed) from e
            completed.append(step)

        return ctx

    async def _compensate_steps(
        self,
        completed: list[SagaStep],
        ctx: SagaContext,
    ) -> tuple[list[str], list[str]]:
        compensated: list[str] = []
        failed: list[str] = []
        for step in reversed(completed):
            if step.compensation is None:
                continue
            try:
                await step.compensation(ctx)
                compensated.append(step.name)
            except Exception as e:
                # Keep going; the remaining undos are independent
                logger.critical(
                    "saga_compensation_failed",
                    saga=self.name,
                    step=step.name,
                    error=str(e),
                )
                failed.append(step.name)
        return compensated, failed
