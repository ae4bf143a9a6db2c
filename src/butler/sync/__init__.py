"""Record reconciliation: policies, batch reconciler and per-source updater."""

from butler.sync.reconciler import (
    FreshnessGatedPolicy,
    IdentityKeyedPolicy,
    ReconcilePolicy,
    ReconcileResult,
    Reconciler,
    RecordError,
)
from butler.sync.updater import ContextUpdater

__all__ = [
    "ContextUpdater",
    "FreshnessGatedPolicy",
    "IdentityKeyedPolicy",
    "ReconcilePolicy",
    "ReconcileResult",
    "Reconciler",
    "RecordError",
]
