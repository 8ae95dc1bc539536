"""
Fake backend, clock and sleep used across the test suite
"""
import asyncio
import base64
import json
from datetime import datetime, timedelta, timezone

import httpx
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

BASE_URL = "http://backend.test"


class FakeClock:
    """Injected clock; only moves when told to"""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class SleepRecorder:
    """Stands in for asyncio.sleep and remembers the requested delays"""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class FakeBackend:
    """Route table served through httpx.MockTransport"""

    def __init__(self):
        self.routes = {}
        self.requests = []
        self.delay = 0.0

    def on(self, method, path, response):
        """Register a Response, or a callable taking the request and returning one"""
        self.routes[(method, path)] = response

    def count(self, method, path):
        return sum(1 for r in self.requests if r.method == method and r.url.path == path)

    def bodies(self, method, path):
        return [
            json.loads(r.content)
            for r in self.requests
            if r.method == method and r.url.path == path
        ]

    def transport(self):
        return httpx.MockTransport(self.handle)

    async def handle(self, request):
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        responder = self.routes.get((request.method, request.url.path))
        if responder is None:
            return httpx.Response(404, json={"error": "Not found"})
        if callable(responder):
            return responder(request)
        return responder


def info_response(unlocked, provider="SecretManagement", available=True):
    return httpx.Response(200, json={
        "provider": provider,
        "isSecretManagementAvailable": True,
        "isSecretStoreAvailable": available,
        "isSecretStoreUnlocked": unlocked,
    })


def persisted_session(clock, ttl=3600, token="persisted-token"):
    return {
        "session-token": token,
        "session-expiry": (clock.now + timedelta(seconds=ttl)).isoformat(),
    }


def decrypt_transmission(encrypted_base64, key_base64, iv_base64):
    """Unwrap a secure-unlock password the way the backend does"""
    ciphertext = base64.b64decode(encrypted_base64)
    key = base64.b64decode(key_base64)
    iv = base64.b64decode(iv_base64)
    return AESGCM(key).decrypt(iv, ciphertext, None).decode("utf-8")
