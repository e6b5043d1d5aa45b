"""
op.gg remote source: profile bootstrap page, refresh request/status, paginated match list.

No retries: transport failures surface as TransportError, unexpected shapes as ParseError.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Protocol, Type, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from opgg_collector.core.config import Settings, get_settings
from opgg_collector.errors import ParseError, TransportError
from opgg_collector.remote.schema import (
    BootstrapPayload,
    GamesEnvelope,
    MatchPage,
    NextData,
    RefreshStatus,
    RenewalEnvelope,
)

logger = logging.getLogger(__name__)

PAGE_SIZE = 20

DATA_BEGIN_TAG = '<script id="__NEXT_DATA__" type="application/json">'
DATA_END_TAG = "</script>"

M = TypeVar("M", bound=BaseModel)


class RemoteSource(Protocol):
    """The four logical operations the collector needs from the remote service."""

    async def fetch_bootstrap(self, region: str, name: str) -> BootstrapPayload:
        ...

    async def request_refresh(self, region: str, summoner_id: str) -> RefreshStatus:
        ...

    async def fetch_refresh_status(self, region: str, summoner_id: str) -> RefreshStatus:
        ...

    async def fetch_match_page(
        self,
        region: str,
        summoner_id: str,
        cursor: Optional[str],
        game_type: str,
        page_size: int = PAGE_SIZE,
    ) -> MatchPage:
        ...


def extract_embedded_json(html: str) -> Any:
    """Return the JSON document embedded between the page data markers. Raises ParseError."""
    begin = html.find(DATA_BEGIN_TAG)
    if begin < 0:
        raise ParseError("Couldn't find embedded page data. Website changed again?")
    begin += len(DATA_BEGIN_TAG)
    end = html.find(DATA_END_TAG, begin)
    if end < 0:
        raise ParseError("Embedded page data is not terminated")
    try:
        return json.loads(html[begin:end])
    except json.JSONDecodeError as e:
        raise ParseError(f"Embedded page data is not valid JSON: {e}") from e


def _decode(model: Type[M], raw: Any, *, operation: str, region: str, account: str) -> M:
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        raise ParseError(
            f"Unexpected {model.__name__} shape: {e.error_count()} error(s), first: {e.errors()[0]['msg']}",
            region=region,
            account=account,
            operation=operation,
        ) from e


class OpggClient:
    """Async op.gg client. Owns its httpx.AsyncClient unless one is injected."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=self._settings.http_timeout_seconds,
            follow_redirects=True,
        )
        self._headers = {"User-Agent": self._settings.user_agent}

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "OpggClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        region: str,
        account: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        logger.debug("%s %s (%s)", method, url, operation)
        try:
            response = await self._client.request(method, url, params=params, headers=self._headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            body = e.response.text[:200]
            raise TransportError(
                f"HTTP {e.response.status_code}: {body}",
                region=region,
                account=account,
                operation=operation,
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(
                f"{type(e).__name__}: {e}",
                region=region,
                account=account,
                operation=operation,
            ) from e
        return response

    @staticmethod
    def _json(response: httpx.Response, *, operation: str, region: str, account: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise ParseError(
                f"Response is not JSON: {e}", region=region, account=account, operation=operation
            ) from e

    def _api(self, path: str) -> str:
        return f"{self._settings.api_base_url}/{path.lstrip('/')}"

    async def fetch_bootstrap(self, region: str, name: str) -> BootstrapPayload:
        """Profile page: summoner id, account snapshot, first games page and static catalogs."""
        operation = "bootstrap"
        url = f"{self._settings.site_base_url}/summoners/{region}/{quote(name, safe='')}"
        response = await self._request("GET", url, operation=operation, region=region, account=name)
        try:
            raw = extract_embedded_json(response.text)
        except ParseError as e:
            raise ParseError(e.message, region=region, account=name, operation=operation) from e
        next_data = _decode(NextData, raw, operation=operation, region=region, account=name)
        try:
            return next_data.to_bootstrap()
        except ValidationError as e:
            raise ParseError(
                f"Unexpected player snapshot shape: {e.errors()[0]['msg']}",
                region=region,
                account=name,
                operation=operation,
            ) from e

    async def request_refresh(self, region: str, summoner_id: str) -> RefreshStatus:
        operation = "request_refresh"
        response = await self._request(
            "POST",
            self._api(f"summoners/{region}/{summoner_id}/renewal"),
            operation=operation,
            region=region,
            account=summoner_id,
        )
        raw = self._json(response, operation=operation, region=region, account=summoner_id)
        return _decode(RenewalEnvelope, raw, operation=operation, region=region, account=summoner_id).to_status()

    async def fetch_refresh_status(self, region: str, summoner_id: str) -> RefreshStatus:
        operation = "refresh_status"
        response = await self._request(
            "GET",
            self._api(f"summoners/{region}/{summoner_id}/renewal-status"),
            operation=operation,
            region=region,
            account=summoner_id,
        )
        raw = self._json(response, operation=operation, region=region, account=summoner_id)
        return _decode(RenewalEnvelope, raw, operation=operation, region=region, account=summoner_id).to_status()

    async def fetch_match_page(
        self,
        region: str,
        summoner_id: str,
        cursor: Optional[str],
        game_type: str,
        page_size: int = PAGE_SIZE,
    ) -> MatchPage:
        """Games older than cursor (newest first); cursor None requests the newest page."""
        operation = "match_page"
        params: Dict[str, Any] = {"limit": page_size, "hl": "en_US", "game_type": game_type}
        if cursor:
            params["ended_at"] = cursor
        response = await self._request(
            "GET",
            self._api(f"games/{region}/summoners/{summoner_id}"),
            operation=operation,
            region=region,
            account=summoner_id,
            params=params,
        )
        raw = self._json(response, operation=operation, region=region, account=summoner_id)
        return _decode(GamesEnvelope, raw, operation=operation, region=region, account=summoner_id).to_page()
