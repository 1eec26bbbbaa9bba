"""Reconciliation core: validation, correlation, change sets and plans."""

from .changeset import ChangeSet, build_change_set, build_property_change_set
from .correlator import adopt_ids, correlate, correlate_properties
from .planner import (
    AccountPlan,
    ClientPlan,
    plan_account_create,
    plan_account_update,
    plan_create,
    plan_update,
)
from .reconciler import AccountReconciler, ClientReconciler, ReconcileResult
from .secrets import SecretChangeSet, build_secret_change_set, create_secrets
from .validator import validate, violations

__all__ = [
    "AccountPlan",
    "AccountReconciler",
    "ChangeSet",
    "ClientPlan",
    "ClientReconciler",
    "ReconcileResult",
    "SecretChangeSet",
    "adopt_ids",
    "build_change_set",
    "build_property_change_set",
    "build_secret_change_set",
    "correlate",
    "correlate_properties",
    "create_secrets",
    "plan_account_create",
    "plan_account_update",
    "plan_create",
    "plan_update",
    "validate",
    "violations",
]
