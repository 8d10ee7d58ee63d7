"""HTTP-level fixtures: the full app wired with fake providers and a frozen clock."""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from billing_engine.config import Config
from billing_engine.main import create_app
from billing_engine.models import EstablishmentRecord, Provider
from billing_engine.services.container import BillingServices


class ProviderApi:
    """MockTransport handler answering with canned responses keyed by (method, path)."""

    def __init__(self):
        self.responses = {}
        self.requests = []

    def respond(self, method, path, status_code=200, body=None):
        self.responses[(method, path)] = (status_code, body or {})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key not in self.responses:
            return httpx.Response(404, json={"message": "not found"})
        status_code, body = self.responses[key]
        return httpx.Response(status_code, content=json.dumps(body).encode("utf-8"))


@pytest.fixture
def provider_api():
    return ProviderApi()


@pytest.fixture
def services(monkeypatch, clock, notifier, mercadopago_verifier, iugu_verifier,
             mercadopago_gateway, iugu_gateway, provider_api):
    """Service graph with fake verifiers/gateways and the real checkout adapters on a mock transport."""
    monkeypatch.setenv("DUNNING_ENABLED", "false")
    monkeypatch.setenv("MERCADO_PAGO_ACCESS_TOKEN", "TEST-token")
    monkeypatch.setenv("IUGU_API_TOKEN", "iugu-token")

    services = BillingServices.from_config(
        Config(),
        time_controller=clock,
        notifier=notifier,
        verifiers={Provider.MERCADO_PAGO: mercadopago_verifier, Provider.IUGU: iugu_verifier},
        gateways={Provider.MERCADO_PAGO: mercadopago_gateway, Provider.IUGU: iugu_gateway},
        transport=httpx.MockTransport(provider_api),
    )
    services.establishments.upsert_establishment(
        EstablishmentRecord(id="est-1", owner_id="owner-1", phone="+5511999990001")
    )
    yield services
    services.shutdown()


@pytest.fixture
def client(services):
    """TestClient without the lifespan, so no background worker runs."""
    return TestClient(create_app(services=services))
