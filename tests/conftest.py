"""
Fixtures partagées : un ApiClient branché sur un stockage de jeton en
mémoire et un ``httpx.MockTransport`` qui enregistre chaque requête.
"""

import asyncio
import json

import httpx
import pytest

from equipements.infra.api_client import ApiClient
from equipements.infra.session import MemoryTokenStore, Session


class RecordingHandler:
    """Associe ``(méthode, chemin)`` à des réponses préparées et garde les requêtes reçues."""

    def __init__(self, routes=None, default=None):
        self.routes = dict(routes or {})
        self.default = default
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        answer = self.routes.get(key, self.default)
        if answer is None:
            return httpx.Response(404, json={"message": f"Route inconnue {key}"})
        if callable(answer):
            return answer(request)
        status, body = answer
        if isinstance(body, (bytes, str)):
            return httpx.Response(status, content=body)
        return httpx.Response(status, json=body)

    def calls(self, method=None):
        return [
            (r.method, r.url.path)
            for r in self.requests
            if method is None or r.method == method
        ]

    def json_bodies(self, method=None):
        return [
            json.loads(r.content)
            for r in self.requests
            if r.content and (method is None or r.method == method)
        ]


def make_client(handler, token="tok-123"):
    store = MemoryTokenStore(token)
    client = ApiClient(
        base_url="http://test/api",
        session=Session(store),
        transport=httpx.MockTransport(handler),
    )
    return client, store


@pytest.fixture
def handler():
    return RecordingHandler()


def call(client, action):
    """Exécute ``action(client)`` dans une nouvelle boucle puis ferme le client."""
    async def go():
        async with client:
            return await action(client)

    return asyncio.run(go())
