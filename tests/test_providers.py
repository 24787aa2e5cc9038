"""Tests for the pending list and the HTTP providers."""

import asyncio
import threading
from datetime import UTC, datetime, timedelta

import httpx
import pytest

from snitch.config import SnitchConfig, apply_env
from snitch.errors import ConfigError, ScanFailure
from snitch.models import Sample
from snitch.providers import build_providers, configured_providers
from snitch.providers.base import PendingProvider, Provider
from snitch.providers.virustotal import VT_API, VirusTotalProvider
from snitch.providers.xforce import XFORCE_API, XForceProvider
from tests.helpers import FakeProvider, close_all, make_samples

SAMPLE = Sample(name="dropper.bin", hash="44d88612fea8a8f36de82e1278abb02f")


# --- Pending list ---


def test_add_keeps_order():
    p = FakeProvider()
    samples = make_samples(3)
    for s in samples:
        p.add(s)
    assert p.samples() == samples


def test_samples_is_a_snapshot():
    p = FakeProvider()
    p.add(SAMPLE)
    snap = p.samples()
    snap.clear()
    p.add(Sample(name="other", hash="ff"))
    assert len(p.samples()) == 2
    assert snap == []


def test_remove_drops_every_matching_hash():
    p = FakeProvider()
    p.add(SAMPLE)
    p.add(Sample(name="copy", hash=SAMPLE.hash))
    p.add(Sample(name="keep", hash="ff"))
    p.remove(Sample(name="whatever", hash=SAMPLE.hash))
    assert [s.hash for s in p.samples()] == ["ff"]


def test_remove_is_idempotent():
    p = FakeProvider()
    for s in make_samples(3):
        p.add(s)
    p.remove(Sample(name="x", hash="h2"))
    after_first = p.samples()
    p.remove(Sample(name="x", hash="h2"))
    p.remove(Sample(name="x", hash="never-added"))
    assert p.samples() == after_first
    assert [s.hash for s in after_first] == ["h1", "h3"]


def test_max_requests_must_be_positive():
    with pytest.raises(ValueError):
        PendingProvider(0, timedelta(minutes=1))


def test_wait_for_samples():
    async def run():
        p = FakeProvider()
        assert await p.wait_for_samples(0.01) is False

        waiter = asyncio.create_task(p.wait_for_samples(5.0))
        await asyncio.sleep(0.01)
        p.add(SAMPLE)
        return await asyncio.wait_for(waiter, 1.0)

    assert asyncio.run(run()) is True


def test_providers_satisfy_protocol():
    vt = VirusTotalProvider("key")
    xf = XForceProvider("key", "secret")
    assert isinstance(vt, Provider)
    assert isinstance(xf, Provider)
    assert isinstance(FakeProvider(), Provider)
    close_all(vt, xf)


# --- VirusTotal ---


def _vt(handler) -> VirusTotalProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=VT_API)
    return VirusTotalProvider("vt-key", client=client)


def test_vt_defaults():
    vt = VirusTotalProvider("k")
    assert vt.name == "virustotal"
    assert vt.max_requests == 4
    assert vt.threshold == timedelta(minutes=2)
    assert VirusTotalProvider("k", name="vt-2").name == "vt-2"


def test_vt_known_sample():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["x-apikey"] == "vt-key"
        assert request.url.path == f"/api/v3/files/{SAMPLE.hash}"
        return httpx.Response(200, json={
            "data": {"attributes": {
                "first_submission_date": 1600000000,
                "last_submission_date": 1700000000,
            }},
        })

    result = asyncio.run(_vt(handler).scan(SAMPLE))
    assert result is not None
    assert result.sample == SAMPLE
    assert result.provider == "virustotal"
    assert result.last_seen == datetime.fromtimestamp(1700000000, tz=UTC)


def test_vt_falls_back_to_first_submission():
    def handler(request):
        return httpx.Response(200, json={"data": {"attributes": {"first_submission_date": 1600000000}}})

    result = asyncio.run(_vt(handler).scan(SAMPLE))
    assert result.last_seen == datetime.fromtimestamp(1600000000, tz=UTC)


def test_vt_unknown_sample_is_none():
    def handler(request):
        return httpx.Response(404, json={"error": {"code": "NotFoundError"}})

    assert asyncio.run(_vt(handler).scan(SAMPLE)) is None


@pytest.mark.parametrize("status", [401, 429, 500])
def test_vt_http_errors_raise(status):
    def handler(request):
        return httpx.Response(status)

    with pytest.raises(ScanFailure) as exc_info:
        asyncio.run(_vt(handler).scan(SAMPLE))
    assert exc_info.value.provider == "virustotal"
    assert exc_info.value.sample == SAMPLE
    assert str(status) in exc_info.value.reason


def test_vt_transport_error_raises():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ScanFailure):
        asyncio.run(_vt(handler).scan(SAMPLE))


def test_vt_malformed_body_raises():
    def handler(request):
        return httpx.Response(200, content=b"<html>oops</html>")

    with pytest.raises(ScanFailure, match="malformed"):
        asyncio.run(_vt(handler).scan(SAMPLE))


# --- X-Force ---


def _xforce(handler) -> XForceProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=XFORCE_API)
    return XForceProvider("xf-key", "xf-pass", client=client)


def test_xforce_known_sample():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == f"/malware/{SAMPLE.hash}"
        assert request.headers["authorization"].startswith("Basic ")
        return httpx.Response(200, json={"malware": {"created": "2023-03-04T05:06:07Z"}})

    result = asyncio.run(_xforce(handler).scan(SAMPLE))
    assert result.provider == "xforce"
    assert result.last_seen == datetime(2023, 3, 4, 5, 6, 7, tzinfo=UTC)


def test_xforce_unknown_sample_is_none():
    def handler(request):
        return httpx.Response(404, json={"error": "Not found."})

    assert asyncio.run(_xforce(handler).scan(SAMPLE)) is None


def test_xforce_missing_field_raises():
    def handler(request):
        return httpx.Response(200, json={"malware": {}})

    with pytest.raises(ScanFailure):
        asyncio.run(_xforce(handler).scan(SAMPLE))


def test_xforce_quota_raises():
    def handler(request):
        return httpx.Response(402)

    with pytest.raises(ScanFailure):
        asyncio.run(_xforce(handler).scan(SAMPLE))


# --- Registry ---


def test_configured_providers():
    cfg = apply_env(SnitchConfig(), {"VT_API_KEY": "k"})
    assert configured_providers(cfg) == ["virustotal"]

    cfg = apply_env(SnitchConfig(), {"XFORCE_API_KEY": "k"})
    assert configured_providers(cfg) == []


def test_build_providers_from_config():
    cfg = apply_env(
        SnitchConfig(providers=["virustotal", "xforce"]),
        {"VT_API_KEY": "a", "XFORCE_API_KEY": "b", "XFORCE_API_PASSWORD": "c"},
    )
    cfg.virustotal.max_requests = 2
    cfg.xforce.threshold = 30

    vt, xf = build_providers(cfg)
    assert isinstance(vt, VirusTotalProvider)
    assert vt.max_requests == 2
    assert isinstance(xf, XForceProvider)
    assert xf.threshold == timedelta(seconds=30)
    close_all(vt, xf)


def test_build_providers_missing_credentials():
    cfg = apply_env(SnitchConfig(providers=["xforce"]), {"XFORCE_API_KEY": "only-key"})
    with pytest.raises(ConfigError, match="credentials"):
        build_providers(cfg)


def test_build_providers_unknown_name():
    cfg = apply_env(SnitchConfig(providers=["shodan"]), {})
    with pytest.raises(ConfigError, match="Unknown provider"):
        build_providers(cfg)


def test_build_providers_empty():
    with pytest.raises(ConfigError):
        build_providers(SnitchConfig(providers=[]))


def test_add_from_another_thread_wakes_waiter():
    async def run():
        p = FakeProvider()
        waiter = asyncio.create_task(p.wait_for_samples(30.0))
        await asyncio.sleep(0.01)
        adder = threading.Thread(target=p.add, args=(SAMPLE,))
        adder.start()
        woke = await asyncio.wait_for(waiter, 1.0)
        adder.join()
        return woke

    assert asyncio.run(run()) is True
