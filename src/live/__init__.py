"""Live: reconciliation of live events against upstream liveness."""

from src.live.reconciler import LiveStateReconciler, ReconcileResult

__all__ = ["LiveStateReconciler", "ReconcileResult"]
