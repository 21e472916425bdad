from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

import requests
from requests import Response
from requests.adapters import HTTPAdapter
from urllib3.util import Retry

from domain.errors import UpstreamUnavailableError

from .rate_sources import RateSource

logger = logging.getLogger(__name__)

ASSET_IDS: dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "USDT": "tether",
}


class CoinGeckoAPIError(Exception):
    def __init__(self, message: str, *, status_code: int | None = None, payload: Any | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class _CoinGeckoClient:
    def __init__(
        self,
        base_url: str = "https://api.coingecko.com/api/v3",
        timeout: float = 10.0,
        api_key: str | None = None,
        session: requests.Session | None = None,
        retry_attempts: int = 1,
        retry_backoff_seconds: float = 0.5,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.api_key = api_key
        self._session = session or requests.Session()

        # A 429 Retry-After can ask for a minute; waits stay within the request timeout.
        retry = Retry(
            total=retry_attempts,
            backoff_factor=retry_backoff_seconds,
            backoff_max=timeout,
            respect_retry_after_header=False,
            status_forcelist={429},
            allowed_methods={"GET"},
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        self._session.mount("https://", adapter)
        self._session.mount("http://", adapter)

    def get_simple_price(self, *, ids: list[str], vs_currency: str) -> dict[str, Decimal]:
        """Return ``{coin_id: price}`` for the ids present in the response."""
        if not ids:
            raise ValueError("ids must be provided")
        if not vs_currency:
            raise ValueError("vs_currency must be provided")

        currency = vs_currency.lower()
        params = {"ids": ",".join(ids), "vs_currencies": currency}
        payload = self._request("GET", "/simple/price", params=params)

        prices: dict[str, Decimal] = {}
        for coin_id in ids:
            entry = payload.get(coin_id)
            if not isinstance(entry, dict) or entry.get(currency) is None:
                continue
            prices[coin_id] = self._to_decimal(entry[currency], payload=payload)
        return prices

    def _request(self, method: str, path: str, *, params: dict[str, Any] | None = None) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["x-cg-demo-api-key"] = self.api_key
        try:
            response = self._session.request(method, url, params=params, timeout=self.timeout, headers=headers)
            response.raise_for_status()
        except requests.HTTPError as exc:
            resp = exc.response
            message, payload_err = self._extract_error(resp)
            raise CoinGeckoAPIError(message, status_code=getattr(resp, "status_code", None), payload=payload_err) from exc
        except requests.RequestException as exc:
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            raise CoinGeckoAPIError("CoinGecko API request failed", status_code=status_code) from exc

        try:
            payload: Any = response.json()
        except ValueError as exc:
            raise CoinGeckoAPIError("CoinGecko API returned invalid JSON", payload=response.text) from exc

        if not isinstance(payload, dict):
            raise CoinGeckoAPIError("CoinGecko API returned unexpected payload type", payload=payload)

        return payload

    @staticmethod
    def _to_decimal(value: Any, *, payload: Any) -> Decimal:
        try:
            price = Decimal(str(value))
        except InvalidOperation as exc:
            raise CoinGeckoAPIError("CoinGecko API returned a non-numeric price", payload=payload) from exc
        if not price.is_finite():
            raise CoinGeckoAPIError("CoinGecko API returned a non-finite price", payload=payload)
        return price

    @staticmethod
    def _extract_error(response: Response | None) -> tuple[str, Any | None]:
        message = "CoinGecko API request failed"
        payload: Any | None = None
        if response is None:
            return message, payload
        try:
            payload = response.json()
            if isinstance(payload, dict):
                status = payload.get("status")
                if isinstance(status, dict) and status.get("error_message"):
                    message = status["error_message"]
                elif payload.get("error"):
                    message = str(payload["error"])
        except ValueError:
            payload = response.text
        return message, payload


class CoinGeckoSource(RateSource):
    def __init__(
        self,
        *,
        client: _CoinGeckoClient | None = None,
        asset_ids: dict[str, str] | None = None,
    ) -> None:
        self.client = client or _CoinGeckoClient()
        self.asset_ids = {asset.upper(): coin_id for asset, coin_id in (asset_ids or ASSET_IDS).items()}

    def fetch_rates(self, assets: Iterable[str], quote_currency: str) -> dict[str, Decimal]:
        requested = [asset.upper() for asset in assets]
        mapped = {asset: self.asset_ids[asset] for asset in requested if asset in self.asset_ids}
        unmapped = sorted(set(requested) - set(mapped))
        if unmapped:
            logger.warning("No CoinGecko id mapping for %s", ", ".join(unmapped))
        if not mapped:
            return {}

        try:
            prices = self.client.get_simple_price(ids=sorted(set(mapped.values())), vs_currency=quote_currency)
        except CoinGeckoAPIError as exc:
            raise UpstreamUnavailableError(
                f"CoinGecko unavailable (status={exc.status_code}): {exc}"
            ) from exc

        return {asset: prices[coin_id] for asset, coin_id in mapped.items() if coin_id in prices}


__all__ = ["ASSET_IDS", "CoinGeckoAPIError", "CoinGeckoSource"]
