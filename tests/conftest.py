"""Fixtures compartilhadas pelos testes."""

import httpx
import pytest

from spocli import Auth, Connection, SpoClient


class FakeClock:
    """Relógio controlado pelos testes; sleep apenas avança o tempo."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def auth(tmp_path, monkeypatch):
    connection = Connection(
        url="https://contoso.sharepoint.com",
        spo_url="https://contoso.sharepoint.com",
        auth_type="deviceCode",
        user_name="admin@contoso.onmicrosoft.com",
        connected=True,
    )
    auth = Auth(connection=connection, config_dir=tmp_path)
    monkeypatch.setattr(auth, "get_access_token", lambda resource: "ABC")
    return auth


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_client(auth, clock):
    """Cria SpoClient cujas requisições são respondidas por `handler`.

    Requisições a /_api/contextinfo são respondidas automaticamente. Todas
    as requisições ficam em `client.requests`.
    """

    def factory(handler):
        requests: list[httpx.Request] = []

        def dispatch(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.url.path.endswith("/_api/contextinfo"):
                return httpx.Response(
                    200, json={"FormDigestValue": "DIGEST", "FormDigestTimeoutSeconds": 1800}
                )
            return handler(request)

        client = SpoClient(
            auth,
            transport=httpx.MockTransport(dispatch),
            sleep=clock.sleep,
            clock=clock,
        )
        client.requests = requests
        return client

    return factory


@pytest.fixture
def csom_response():
    """Monta a resposta JSON de um ProcessQuery."""

    def build(*items, error=None):
        header = {
            "SchemaVersion": "15.0.0.0",
            "LibraryVersion": "16.0.7331.1206",
            "ErrorInfo": error,
            "TraceCorrelationId": "b33c489e-009b-5000-8240-a8c28e5fd8b4",
        }
        return httpx.Response(200, json=[header, *items])

    return build
