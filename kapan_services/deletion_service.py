"""
kapan_services.deletion_service -- Cascading kapan deletion.

Responsibility:
    Removes every record that references a kapan from every kapan-scoped
    collection in one call.  Global collections (box sorting) and the
    audit log are never touched.

Architecture position:
    Services -- imperative shell over ``kapan_engines.cascade``.

Invariants enforced:
    - Deletion requires explicit confirmation; ``preview`` shows the
      counts first.
    - A store slot the registry does not know aborts the deletion before
      anything is written.
    - Only collections that actually lose records are rewritten.

Failure modes:
    - ConfirmationRequiredError -- ``confirmed`` was not set.
    - EmptySelectionError -- blank kapan id.
    - UnregisteredCollectionError -- unknown slot present in the store.

Audit relevance:
    Every executed deletion logs ``kapan_cascade_deleted`` at WARNING with
    the ``INTEGRITY_RISK`` code and per-collection removal counts.  There
    is no undo; callers take a ``snapshot_all`` backup first when they
    need one.
"""

from __future__ import annotations

from kapan_engines.cascade import (
    CollectionRegistry,
    DeletionPlan,
    default_registry,
    plan_kapan_deletion,
)
from kapan_kernel.domain.outcome import Outcome
from kapan_kernel.exceptions import ConfirmationRequiredError, IntegrityRisk
from kapan_kernel.logging_config import LogContext, get_logger
from kapan_kernel.store import CollectionStore

logger = get_logger("services.deletion")


class KapanDeletionService:
    """
    Purge one kapan across the registered collections.

    Contract:
        ``delete_kapan`` returns the executed ``DeletionPlan``; the store
        is untouched on any rejection.
    """

    def __init__(self, store: CollectionStore, registry: CollectionRegistry | None = None):
        self._store = store
        self._registry = registry or default_registry()

    @property
    def registry(self) -> CollectionRegistry:
        return self._registry

    def _plan(self, kapan_id: str) -> Outcome[DeletionPlan]:
        collections = {name: self._store.read(name) for name in self._store.names()}
        return plan_kapan_deletion(self._registry, kapan_id, collections)

    def preview(self, kapan_id: str) -> Outcome[DeletionPlan]:
        """Plan without writing; the counts to show before confirmation."""
        return self._plan(kapan_id)

    def delete_kapan(self, kapan_id: str, confirmed: bool = False) -> Outcome[DeletionPlan]:
        if not confirmed:
            return Outcome.reject(ConfirmationRequiredError("kapan_deletion", kapan_id))

        outcome = self._plan(kapan_id)
        if not outcome.ok:
            return outcome
        plan = outcome.value

        for name in plan.changed_collections:
            self._store.write(name, plan.keep[name])

        risk = IntegrityRisk(plan.kapan_id, dict(plan.removed))
        with LogContext.bind(kapan_id=plan.kapan_id):
            logger.warning(
                "kapan_cascade_deleted",
                extra={
                    "code": risk.code,
                    "removed": dict(plan.removed),
                    "total_removed": plan.total_removed,
                    "pruned": {k: v for k, v in plan.pruned.items() if v},
                },
            )
        return Outcome.accept(plan, warnings=(str(risk),))
