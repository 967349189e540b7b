"""Reconciliation engine: the transition rules and the components that drive them."""

from .identifier_repairer import IdentifierRepairer, RepairReport
from .playback_ensurer import EnsureOutcome, EnsureResult, PlaybackIdEnsurer
from .state_machine import (
    AssetNeverUploaded,
    AssetOrphaned,
    SideEffect,
    Transition,
    TransitionOutcome,
    transition,
)
from .sweep_reconciler import RecordOutcome, SweepReconciler, SweepReport
from .transition_applier import AppliedTransition, TransitionApplier
from .webhook_ingestor import IngestResult, WebhookIngestor

__all__ = [
    "AppliedTransition",
    "AssetNeverUploaded",
    "AssetOrphaned",
    "EnsureOutcome",
    "EnsureResult",
    "IdentifierRepairer",
    "IngestResult",
    "PlaybackIdEnsurer",
    "RecordOutcome",
    "RepairReport",
    "SideEffect",
    "SweepReconciler",
    "SweepReport",
    "Transition",
    "TransitionApplier",
    "TransitionOutcome",
    "WebhookIngestor",
    "transition",
]
