"""VirusTotal v3 file lookup provider."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

import httpx

from snitch.errors import ScanFailure
from snitch.models import Sample, ScanResult
from snitch.providers.base import PendingProvider

logger = logging.getLogger(__name__)

VT_API = "https://www.virustotal.com/api/v3"

# Free tier limit is 4 requests per minute, but only 500 a day.
VT_MAX_REQUESTS = 4
VT_THRESHOLD = timedelta(minutes=2)


class VirusTotalProvider(PendingProvider):
    name = "virustotal"

    def __init__(
        self,
        api_key: str,
        max_requests: int = VT_MAX_REQUESTS,
        threshold: timedelta = VT_THRESHOLD,
        name: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(max_requests, threshold)
        if name:
            self.name = name
        self._client = client or httpx.AsyncClient(base_url=VT_API, timeout=30.0)
        self._headers = {"x-apikey": api_key, "accept": "application/json"}

    async def scan(self, sample: Sample) -> ScanResult | None:
        try:
            resp = await self._client.get(f"/files/{sample.hash}", headers=self._headers)
        except httpx.HTTPError as exc:
            raise ScanFailure(self.name, sample, f"request error: {exc}") from exc

        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise ScanFailure(self.name, sample, f"HTTP {resp.status_code}")

        try:
            attributes = resp.json()["data"]["attributes"]
        except (ValueError, KeyError, TypeError) as exc:
            raise ScanFailure(self.name, sample, "malformed response") from exc

        return ScanResult(
            sample=sample,
            provider=self.name,
            last_seen=_last_seen(attributes),
        )

    async def aclose(self) -> None:
        await self._client.aclose()


def _last_seen(attributes: dict) -> datetime:
    for key in ("last_submission_date", "first_submission_date"):
        ts = attributes.get(key)
        if isinstance(ts, int | float):
            return datetime.fromtimestamp(ts, tz=UTC)
    logger.debug("No submission date in VirusTotal report, using current time")
    return datetime.now(UTC)
