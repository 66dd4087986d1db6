"""Reconciliation of canonical entities with the persisted store."""

from .engine import ReconcileResult, Reconciler
from .store import PharmacyStore, SQLitePharmacyStore

__all__ = ["PharmacyStore", "ReconcileResult", "Reconciler", "SQLitePharmacyStore"]
