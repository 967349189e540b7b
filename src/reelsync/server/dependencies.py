"""Dependency provider functions for FastAPI endpoints.

This module contains functions that retrieve dependencies from the
application state for use in FastAPI endpoints via the Depends system.
"""

from typing import Annotated

from fastapi import Depends, Request

from reelsync.db import AssetDatabase
from reelsync.reconciler import (
    IdentifierRepairer,
    PlaybackIdEnsurer,
    SweepReconciler,
    WebhookIngestor,
)


def get_webhook_ingestor(request: Request) -> WebhookIngestor:
    """Return the shared :class:`WebhookIngestor` from application state.

    Args:
        request: Incoming FastAPI request.

    Returns:
        Webhook ingestor stored on ``app.state``.
    """
    return request.app.state.webhook_ingestor


def get_asset_database(request: Request) -> AssetDatabase:
    """Return the :class:`AssetDatabase` bound to the app.

    Args:
        request: Incoming FastAPI request.

    Returns:
        Asset database reference.
    """
    return request.app.state.asset_database


def get_sweep_reconciler(request: Request) -> SweepReconciler:
    return request.app.state.sweep_reconciler


def get_identifier_repairer(request: Request) -> IdentifierRepairer:
    return request.app.state.identifier_repairer


def get_playback_ensurer(request: Request) -> PlaybackIdEnsurer:
    return request.app.state.playback_ensurer


WebhookIngestorDep = Annotated[WebhookIngestor, Depends(get_webhook_ingestor)]
AssetDatabaseDep = Annotated[AssetDatabase, Depends(get_asset_database)]
SweepReconcilerDep = Annotated[SweepReconciler, Depends(get_sweep_reconciler)]
IdentifierRepairerDep = Annotated[IdentifierRepairer, Depends(get_identifier_repairer)]
PlaybackEnsurerDep = Annotated[PlaybackIdEnsurer, Depends(get_playback_ensurer)]
