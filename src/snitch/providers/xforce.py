"""IBM X-Force Exchange malware lookup provider."""

from __future__ import annotations

from datetime import datetime, timedelta

import httpx

from snitch.errors import ScanFailure
from snitch.models import Sample, ScanResult
from snitch.providers.base import PendingProvider

XFORCE_API = "https://api.xforce.ibmcloud.com"

# Free tier is 5000 requests a month, about 6.9 an hour.
XFORCE_MAX_REQUESTS = 6
XFORCE_THRESHOLD = timedelta(minutes=10)


class XForceProvider(PendingProvider):
    name = "xforce"

    def __init__(
        self,
        api_key: str,
        api_password: str,
        max_requests: int = XFORCE_MAX_REQUESTS,
        threshold: timedelta = XFORCE_THRESHOLD,
        name: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(max_requests, threshold)
        if name:
            self.name = name
        self._client = client or httpx.AsyncClient(base_url=XFORCE_API, timeout=30.0)
        self._auth = httpx.BasicAuth(api_key, api_password)

    async def scan(self, sample: Sample) -> ScanResult | None:
        try:
            resp = await self._client.get(
                f"/malware/{sample.hash}",
                auth=self._auth,
                headers={"accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise ScanFailure(self.name, sample, f"request error: {exc}") from exc

        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise ScanFailure(self.name, sample, f"HTTP {resp.status_code}")

        try:
            created = resp.json()["malware"]["created"]
            last_seen = datetime.fromisoformat(created.replace("Z", "+00:00"))
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise ScanFailure(self.name, sample, "malformed response") from exc

        return ScanResult(sample=sample, provider=self.name, last_seen=last_seen)

    async def aclose(self) -> None:
        await self._client.aclose()
