"""Tests for the consumer-side resource routes."""

import json
from typing import Any, Dict

import pytest
from fastapi.testclient import TestClient

from resource_provider.receiver import ResourceHandler, create_app
from resource_provider.signing import Signer

from tests.conftest import PROVIDER_UUID, REALM_UUID, SECRET

UUID = "84e8a690b6e1012e744a6c626d58b44c"


class MemoryHandler(ResourceHandler):
    """Keeps received resources in a dict keyed by (klass, uuid)."""

    def __init__(self) -> None:
        self.store: Dict[tuple, Dict[str, Any]] = {}
        self.realms: Dict[tuple, str] = {}

    async def create(self, klass, uuid, attributes, realm):
        self.store[(klass, uuid)] = attributes
        self.realms[(klass, uuid)] = realm

    async def update(self, klass, uuid, attributes, realm):
        self.store[(klass, uuid)] = attributes
        self.realms[(klass, uuid)] = realm

    async def destroy(self, klass, uuid):
        return self.store.pop((klass, uuid), None) is not None


@pytest.fixture
def handler():
    return MemoryHandler()


@pytest.fixture
def client(handler):
    with TestClient(create_app(Signer(SECRET), handler)) as c:
        yield c


def _envelope(attributes, secret=SECRET):
    fields = {
        "resource": json.dumps(attributes, separators=(",", ":")),
        "realm": REALM_UUID,
        "service": PROVIDER_UUID,
    }
    return dict(fields, sign=Signer(secret).sign(fields))


@pytest.mark.parametrize("prefix", ["", "/backend"])
def test_create_update_destroy(client, handler, prefix):
    path = f"{prefix}/api/resources/provider_models/{UUID}"

    resp = client.post(path, json=_envelope({"name": "Jenny", "uuid": UUID}))
    assert resp.status_code == 201
    assert handler.store[("provider_models", UUID)] == {"name": "Jenny", "uuid": UUID}
    assert handler.realms[("provider_models", UUID)] == REALM_UUID

    resp = client.put(path, json=_envelope({"name": "Marta", "uuid": UUID}))
    assert resp.status_code == 200
    assert handler.store[("provider_models", UUID)]["name"] == "Marta"

    resp = client.delete(path)
    assert resp.status_code == 200
    assert handler.store == {}


def test_rejects_bad_signature(client, handler):
    resp = client.post(
        f"/api/resources/provider_models/{UUID}",
        json=_envelope({"name": "Jenny"}, secret="wrong"),
    )
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "UNAUTHORIZED"
    assert handler.store == {}


def test_rejects_tampered_resource(client):
    body = _envelope({"name": "Jenny"})
    body["resource"] = '{"name":"Mallory"}'
    resp = client.put(f"/backend/api/resources/provider_models/{UUID}", json=body)
    assert resp.status_code == 401


def test_rejects_incomplete_envelope(client):
    resp = client.post(f"/api/resources/provider_models/{UUID}", json={"resource": "{}"})
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


def test_rejects_non_json_body(client):
    resp = client.post(
        f"/api/resources/provider_models/{UUID}",
        content=b"resource=1",
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "BAD_REQUEST"


def test_rejects_resource_that_is_not_an_object(client):
    fields = {"resource": "[1, 2]", "realm": REALM_UUID, "service": PROVIDER_UUID}
    body = dict(fields, sign=Signer(SECRET).sign(fields))
    resp = client.post(f"/api/resources/provider_models/{UUID}", json=body)
    assert resp.status_code == 400


def test_destroy_unknown_resource(client):
    resp = client.delete(f"/api/resources/provider_models/{UUID}")
    assert resp.status_code == 404
    assert resp.json()["error"]["status"] == 404


class FailingHandler(MemoryHandler):
    async def create(self, klass, uuid, attributes, realm):
        raise RuntimeError("storage offline")


def test_handler_failure_returns_error_body():
    app = create_app(Signer(SECRET), FailingHandler())
    with TestClient(app, raise_server_exceptions=False) as c:
        resp = c.post(
            f"/backend/api/resources/provider_models/{UUID}",
            json=_envelope({"name": "Jenny", "uuid": UUID}),
        )
    assert resp.status_code == 500
    assert resp.json()["error"] == {
        "code": "INTERNAL_SERVER_ERROR",
        "status": 500,
        "message": "An unexpected error occurred",
    }


def test_request_validation_error_uses_error_body(handler):
    app = create_app(Signer(SECRET), handler)

    @app.get("/api/resources")
    async def list_resources(limit: int):
        return {"limit": limit}

    with TestClient(app) as c:
        resp = c.get("/api/resources", params={"limit": "many"})
    assert resp.status_code == 422
    error = resp.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["details"][0]["field"] == "query.limit"
