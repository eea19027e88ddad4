from __future__ import annotations

from pathlib import Path

import httpx
import pytest
from dotenv import load_dotenv

TEST_ROOT = Path(__file__).resolve().parent
# test/.env wins over the checked-in defaults
load_dotenv(TEST_ROOT / ".env", override=False)
load_dotenv(TEST_ROOT / ".env.example", override=False)

# Hosts the suites may address: mock transports and local servers only.
OFFLINE_HOST_PREFIXES = ("mock", "localhost", "127.0.0.1")


def _check_offline(request: httpx.Request) -> None:
    host = request.url.host or ""
    if not host.startswith(OFFLINE_HOST_PREFIXES):
        raise RuntimeError(f"Outbound HTTP is disabled in tests: {request.method} {request.url}")


@pytest.fixture(autouse=True)
def _offline_http(monkeypatch: pytest.MonkeyPatch):
    """Fail any httpx request that would leave the machine.

    Every request (streaming or not) goes through ``send``, so patching it on
    both clients covers provider clients and tool HTTP calls alike.
    """
    sync_send = httpx.Client.send
    async_send = httpx.AsyncClient.send

    def guarded_send(self, request, *args, **kwargs):
        _check_offline(request)
        return sync_send(self, request, *args, **kwargs)

    async def guarded_async_send(self, request, *args, **kwargs):
        _check_offline(request)
        return await async_send(self, request, *args, **kwargs)

    monkeypatch.setattr(httpx.Client, "send", guarded_send)
    monkeypatch.setattr(httpx.AsyncClient, "send", guarded_async_send)
