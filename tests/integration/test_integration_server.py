# pyright: reportPrivateUsage=false

"""Integration tests for both HTTP apps over real components.

The database is a migrated SQLite file and the Mux API is stubbed with respx;
everything between the two is the production wiring.
"""

from collections.abc import AsyncGenerator
import os
from pathlib import Path
from unittest.mock import patch

from helpers.alembic import run_migrations
from helpers.assets import WEBHOOK_SECRET, make_record, sign, webhook_body
import httpx
import pytest
import pytest_asyncio
import respx

from reelsync.cli.components import Components, build_components
from reelsync.config import AppSettings
from reelsync.db.sqlalchemy_core import DB_FILENAME
from reelsync.server.app import create_admin_app, create_app

MUX_URL = "https://mux.test"
ASSETS_URL = f"{MUX_URL}/video/v1/assets"


@pytest_asyncio.fixture
async def components(tmp_path: Path) -> AsyncGenerator[Components]:
    """Builds every component against a migrated database in tmp_path."""
    db_dir = tmp_path / "db"
    db_dir.mkdir()
    run_migrations(db_dir / DB_FILENAME)

    with patch.dict(os.environ, {}, clear=True):
        settings = AppSettings(
            data_dir=tmp_path,
            mux_token_id="token-id",
            mux_token_secret="token-secret",
            mux_api_base_url=MUX_URL,
            mux_webhook_secret=WEBHOOK_SECRET,
        )
    built = build_components(settings)
    yield built
    await built.close()


@pytest_asyncio.fixture
async def public_client(components: Components) -> AsyncGenerator[httpx.AsyncClient]:
    """HTTP client bound to the public webhook app."""
    app = create_app(components.webhook_ingestor)
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://public"
    ) as client:
        yield client


@pytest_asyncio.fixture
async def admin_client(components: Components) -> AsyncGenerator[httpx.AsyncClient]:
    """HTTP client bound to the private admin app."""
    app = create_admin_app(
        components.asset_db,
        components.sweep_reconciler,
        components.identifier_repairer,
        components.playback_ensurer,
    )
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://admin"
    ) as client:
        yield client


async def _post_webhook(
    client: httpx.AsyncClient, event_type: str, data: dict[str, object], event_id: str
) -> httpx.Response:
    body = webhook_body(event_type, data, event_id=event_id)
    return await client.post(
        "/api/webhooks/mux", content=body, headers={"mux-signature": sign(body)}
    )


@pytest.mark.integration
@pytest.mark.asyncio
async def test_upload_lifecycle_then_sweep(
    components: Components,
    public_client: httpx.AsyncClient,
    admin_client: httpx.AsyncClient,
    respx_mock: respx.Router,
):
    """An upload goes through created and ready, gets a playback id, then is re-keyed."""
    await components.asset_db.create(make_record())
    bare_asset = {"id": "asset-1", "status": "ready", "upload_id": "upload-1"}
    respx_mock.get(f"{ASSETS_URL}/asset-1").mock(
        return_value=httpx.Response(200, json={"data": bare_asset})
    )
    create_route = respx_mock.post(f"{ASSETS_URL}/asset-1/playback-ids").mock(
        return_value=httpx.Response(
            201, json={"data": {"id": "play-new", "policy": "public"}}
        )
    )

    created = await _post_webhook(
        public_client,
        "video.upload.asset_created",
        {"id": "upload-1", "asset_id": "asset-1"},
        "evt-1",
    )
    assert created.status_code == 200
    assert created.json()["outcome"] == "applied"

    ready = await _post_webhook(
        public_client,
        "video.asset.ready",
        {"id": "asset-1", "upload_id": "upload-1", "passthrough": "rec-1"},
        "evt-2",
    )
    assert ready.status_code == 200
    assert ready.json()["ensure_outcome"] == "updated"
    assert create_route.call_count == 1

    asset = await admin_client.get("/admin/assets/rec-1")
    assert asset.status_code == 200
    assert asset.json()["status"] == "ready"
    assert asset.json()["playback_id"] == "play-new"
    assert asset.json()["playback_id_confirmed"] is True

    respx_mock.get(ASSETS_URL).mock(
        return_value=httpx.Response(
            200,
            json={
                "data": [
                    {**bare_asset, "playback_ids": [{"id": "play-new", "policy": "public"}]}
                ]
            },
        )
    )
    sweep = await admin_client.post("/admin/sweep")
    assert sweep.status_code == 200
    report = sweep.json()
    assert report["overall_success"] is True
    assert report["repair"]["repaired_ids"] == ["rec-1"]
    assert report["consistent"] == 1

    assert (await admin_client.get("/admin/assets/rec-1")).status_code == 404
    moved = await admin_client.get("/admin/assets/asset-1")
    assert moved.json()["playback_id"] == "play-new"
    assert create_route.call_count == 1


@pytest.mark.integration
@pytest.mark.asyncio
async def test_forged_webhook_rejected(
    components: Components, public_client: httpx.AsyncClient
):
    """A delivery signed with the wrong secret gets 401 and changes nothing."""
    await components.asset_db.create(make_record())
    body = webhook_body("video.upload.cancelled", {"id": "upload-1"})

    response = await public_client.post(
        "/api/webhooks/mux",
        content=body,
        headers={"mux-signature": sign(body, secret="not-the-secret")},
    )

    assert response.status_code == 401
    stored = await components.asset_db.get_by_id("rec-1")
    assert stored is not None
    assert stored.status.value == "uploading"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_health_on_both_apps(
    public_client: httpx.AsyncClient, admin_client: httpx.AsyncClient
):
    """Both apps answer the health check."""
    assert (await public_client.get("/api/health")).status_code == 200
    assert (await admin_client.get("/api/health")).status_code == 200
