"""Async client for the Mux Video API.

Only the three calls the reconciler needs are implemented: fetch one asset,
list every asset, and create a public playback id. Failures are mapped to
TransientProviderError (worth retrying later) or ProviderError (not).
"""

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from ..exceptions import ProviderError, TransientProviderError
from .types import AssetInfo, PlaybackIdInfo

logger = logging.getLogger(__name__)

ASSETS_PATH = "/video/v1/assets"
LIST_PAGE_SIZE = 100
MAX_LIST_PAGES = 1000


class MuxClient:
    """Talk to the Mux Video API with HTTP basic auth.

    Attributes:
        _client: The underlying httpx AsyncClient.
    """

    def __init__(
        self,
        token_id: str,
        token_secret: str,
        base_url: str = "https://api.mux.com",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            auth=httpx.BasicAuth(token_id, token_secret),
            timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0)),
            headers={"Accept": "application/json"},
            transport=transport,
        )
        logger.debug("MuxClient initialized.", extra={"base_url": base_url})

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        provider_asset_id: str | None = None,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        """Issue one request and classify failures.

        Args:
            method: HTTP method.
            path: Path below the base URL.
            provider_asset_id: Asset the call concerns, for error reporting.
            params: Query parameters.
            json: JSON body.

        Returns:
            The successful response.

        Raises:
            TransientProviderError: On network failure, timeout, 429 or 5xx.
            ProviderError: On any other non-success status, including 404.
        """
        try:
            response = await self._client.request(method, path, params=params, json=json)
        except httpx.TimeoutException as e:
            raise TransientProviderError(
                "Mux request timed out.", provider_asset_id=provider_asset_id
            ) from e
        except httpx.HTTPError as e:
            raise TransientProviderError(
                "Mux request failed.", provider_asset_id=provider_asset_id
            ) from e

        status = response.status_code
        match status:
            case _ if response.is_success:
                return response
            case httpx.codes.TOO_MANY_REQUESTS:
                raise TransientProviderError(
                    "Mux rate limited the request.",
                    provider_asset_id=provider_asset_id,
                    status_code=status,
                )
            case _ if status >= 500:
                raise TransientProviderError(
                    "Mux returned a server error.",
                    provider_asset_id=provider_asset_id,
                    status_code=status,
                )
            case _:
                raise ProviderError(
                    f"Mux rejected the request: {response.text[:200]}",
                    provider_asset_id=provider_asset_id,
                    status_code=status,
                )

    @staticmethod
    def _data(response: httpx.Response, provider_asset_id: str | None = None) -> Any:
        try:
            body = response.json()
        except ValueError as e:
            raise ProviderError(
                "Mux returned invalid JSON.",
                provider_asset_id=provider_asset_id,
                status_code=response.status_code,
            ) from e
        if not isinstance(body, dict) or "data" not in body:
            raise ProviderError(
                "Mux response has no 'data' member.",
                provider_asset_id=provider_asset_id,
                status_code=response.status_code,
            )
        return body["data"]  # type: ignore[reportUnknownVariableType]

    async def get_asset(self, provider_asset_id: str) -> AssetInfo | None:
        """Fetch one asset.

        Args:
            provider_asset_id: The provider asset identifier.

        Returns:
            The asset, or None if Mux does not know it.

        Raises:
            TransientProviderError: On retryable failures.
            ProviderError: On other failures or an undecodable response.
        """
        try:
            response = await self._request(
                "GET",
                f"{ASSETS_PATH}/{provider_asset_id}",
                provider_asset_id=provider_asset_id,
            )
        except ProviderError as e:
            if e.status_code != httpx.codes.NOT_FOUND:
                raise
            logger.debug(
                "Mux asset not found.", extra={"provider_asset_id": provider_asset_id}
            )
            return None
        data = self._data(response, provider_asset_id)
        try:
            return AssetInfo.model_validate(data)
        except ValidationError as e:
            raise ProviderError(
                "Mux asset payload did not validate.",
                provider_asset_id=provider_asset_id,
            ) from e

    async def list_assets(self) -> list[AssetInfo]:
        """List every asset, following ``limit``/``page`` pagination.

        Entries that do not validate are skipped with a warning.

        Returns:
            All assets known to Mux.

        Raises:
            TransientProviderError: On retryable failures.
            ProviderError: On other failures or an undecodable page.
        """
        assets: list[AssetInfo] = []
        for page in range(1, MAX_LIST_PAGES + 1):
            response = await self._request(
                "GET", ASSETS_PATH, params={"limit": LIST_PAGE_SIZE, "page": page}
            )
            data = self._data(response)
            if not isinstance(data, list):
                raise ProviderError("Mux asset listing is not a list.")

            for entry in data:  # type: ignore[reportUnknownVariableType]
                try:
                    assets.append(AssetInfo.model_validate(entry))
                except ValidationError as e:
                    logger.warning(
                        "Skipping undecodable asset in Mux listing.",
                        extra={"page": page},
                        exc_info=e,
                    )

            if len(data) < LIST_PAGE_SIZE:  # type: ignore[reportUnknownArgumentType]
                break
        else:
            logger.warning(
                "Mux asset listing hit the page limit.",
                extra={"max_pages": MAX_LIST_PAGES},
            )

        logger.debug("Listed Mux assets.", extra={"asset_count": len(assets)})
        return assets

    async def create_public_playback_id(self, provider_asset_id: str) -> str:
        """Create a public playback id on an asset.

        Args:
            provider_asset_id: The provider asset identifier.

        Returns:
            The new playback identifier.

        Raises:
            TransientProviderError: On retryable failures.
            ProviderError: On other failures, including an unknown asset.
        """
        response = await self._request(
            "POST",
            f"{ASSETS_PATH}/{provider_asset_id}/playback-ids",
            provider_asset_id=provider_asset_id,
            json={"policy": "public"},
        )
        data = self._data(response, provider_asset_id)
        try:
            playback = PlaybackIdInfo.model_validate(data)
        except ValidationError as e:
            raise ProviderError(
                "Mux playback id payload did not validate.",
                provider_asset_id=provider_asset_id,
            ) from e

        logger.info(
            "Created public playback id.",
            extra={"provider_asset_id": provider_asset_id, "playback_id": playback.id},
        )
        return playback.id
