"""Reconciliation between the local state and the remote API."""

from .backoff import BackoffPolicy
from .inbound import InboundReport, InboundSync
from .outbound import OutboundReport, OutboundSync, OutboundSyncError
from .periodic import PeriodicSync
from .reconciler import SyncReconciler
from .scheduler import AsyncioScheduler, ManualScheduler, ScheduledCall, Scheduler

__all__ = [
    "AsyncioScheduler",
    "BackoffPolicy",
    "InboundReport",
    "InboundSync",
    "ManualScheduler",
    "OutboundReport",
    "OutboundSync",
    "OutboundSyncError",
    "PeriodicSync",
    "ScheduledCall",
    "Scheduler",
    "SyncReconciler",
]
