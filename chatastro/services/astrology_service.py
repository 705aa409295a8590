"""
Divine API client.

One form-encoded POST per requested data key. Every key gets an entry in the
result map: the provider's JSON on success, otherwise an error record, so a
single failing endpoint never hides the others.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable

import httpx

from chatastro.config import Settings
from chatastro.logger import logger
from chatastro.utils.models import BirthData

ERROR_DETAIL_LIMIT = 200


def build_form(birth: BirthData, api_key: str) -> Dict[str, str]:
    return {
        "api_key": api_key,
        "full_name": birth.full_name,
        "day": str(birth.day),
        "month": str(birth.month),
        "year": str(birth.year),
        "hour": str(birth.hour),
        "min": str(birth.minute),
        "sec": "0",
        "gender": birth.gender.value if birth.gender else "male",
        "place": birth.birth_place,
        "lat": str(birth.latitude),
        "lon": str(birth.longitude),
        "tzone": str(birth.timezone_offset or 5.5),
        "lan": "en",
    }


def http_error_record(resp: httpx.Response) -> Dict[str, Any]:
    text = resp.text
    if len(text) > ERROR_DETAIL_LIMIT:
        text = text[:ERROR_DETAIL_LIMIT] + "..."
    return {
        "error": True,
        "status": resp.status_code,
        "message": f"API error: {resp.status_code} {resp.reason_phrase}",
        "details": text,
    }


def network_error_record(exc: Exception) -> Dict[str, Any]:
    return {
        "error": True,
        "message": f"Network error: {exc}",
        "fallback": True,
    }


class AstrologyDataService:
    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.settings.divine_auth_token}"}

    async def _post(self, client: httpx.AsyncClient, endpoint: str, form: Dict[str, str]) -> httpx.Response:
        url = f"{self.settings.divine_base_url.rstrip('/')}/{endpoint}"
        attempts = self.settings.provider_max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return await client.post(url, data=form, headers=self.headers)
            except httpx.TransportError as exc:
                if attempt == attempts:
                    raise
                logger.warning("divine_api_retry", endpoint=endpoint, attempt=attempt, error=str(exc))
        raise RuntimeError("unreachable")

    async def fetch(self, birth: BirthData, keys: Iterable[str]) -> Dict[str, Any]:
        """Fetch every key in `keys`; returns {key: data-or-error-record}."""
        keys = list(keys)
        form = build_form(birth, self.settings.divine_api_key)
        results: Dict[str, Any] = {}

        logger.info("divine_api_request", endpoints=keys, full_name=birth.full_name)
        async with httpx.AsyncClient(timeout=self.settings.api_timeout_seconds) as client:
            for endpoint in keys:
                try:
                    resp = await self._post(client, endpoint, form)
                except httpx.HTTPError as exc:
                    logger.error("divine_api_network_error", endpoint=endpoint, error=str(exc))
                    results[endpoint] = network_error_record(exc)
                    continue

                if resp.is_success:
                    try:
                        results[endpoint] = resp.json()
                    except ValueError as exc:
                        logger.error("divine_api_bad_payload", endpoint=endpoint, error=str(exc))
                        results[endpoint] = network_error_record(exc)
                    continue

                logger.error("divine_api_error", endpoint=endpoint, status_code=resp.status_code)
                results[endpoint] = http_error_record(resp)

        logger.info(
            "divine_api_response",
            endpoints=keys,
            failed=[key for key, value in results.items() if isinstance(value, dict) and value.get("error")],
        )
        return results
