"""Tests for polling of long-running tenant operations."""

import pytest

from spocli import CommandError, OperationTimeoutError

ADMIN_URL = "https://contoso-admin.sharepoint.com"
IDENTITY = (
    "53d8499e-d0d2-5000-cb83-9ade5be42ca4|"
    "908bed80-a04a-4433-b4a0-883d9847d110:"
    "67753f63-bc14-4012-869e-f808a43fe023\nSpoOperation\nSetSite"
)


def _operation(complete, identity=IDENTITY, interval=15000):
    return {
        "_ObjectType_": "Microsoft.Online.SharePoint.TenantAdministration.SpoOperation",
        "_ObjectIdentity_": identity,
        "IsComplete": complete,
        "PollingInterval": interval,
    }


def _queries(client):
    return [r for r in client.requests if r.url.path.endswith("ProcessQuery")]


def test_complete_operation_returns_without_polling(make_client, clock):
    client = make_client(lambda request: pytest.fail("unexpected request"))

    operation = client.wait_until_finished(ADMIN_URL, _operation(True))

    assert operation["IsComplete"] is True
    assert clock.sleeps == []


def test_polls_until_complete(make_client, csom_response, clock):
    responses = iter([
        csom_response(188, _operation(False, identity=IDENTITY + "2", interval=5000)),
        csom_response(188, _operation(True, identity=IDENTITY + "3")),
    ])
    client = make_client(lambda request: next(responses))

    operation = client.wait_until_finished(ADMIN_URL, _operation(False))

    assert operation["IsComplete"] is True
    assert clock.sleeps == [15.0, 5.0]
    bodies = [r.content.decode() for r in _queries(client)]
    assert len(bodies) == 2
    assert '<Query Id="188" ObjectPathId="184">' in bodies[0]
    assert "SetSite" in bodies[0]
    assert "&#xA;SpoOperation&#xA;SetSite" in bodies[0]
    assert "\n" not in bodies[0]
    # cada rodada usa a identidade mais recente
    assert "SetSite2" in bodies[1]


def test_fixed_interval_overrides_polling_interval(make_client, csom_response, clock):
    client = make_client(lambda request: csom_response(188, _operation(True)))

    client.wait_until_finished(ADMIN_URL, _operation(False), interval=0.5)

    assert clock.sleeps == [0.5]


def test_error_during_polling_is_raised(make_client, csom_response):
    client = make_client(
        lambda request: csom_response(error={"ErrorMessage": "Site not found"})
    )

    with pytest.raises(CommandError, match="Site not found"):
        client.wait_until_finished(ADMIN_URL, _operation(False))


def test_timeout_stops_polling(make_client, csom_response, clock):
    client = make_client(lambda request: csom_response(188, _operation(False)))

    with pytest.raises(OperationTimeoutError):
        client.wait_until_finished(ADMIN_URL, _operation(False), timeout=40)

    # 15s + 15s + 15s ultrapassa 40s
    assert clock.sleeps == [15.0, 15.0, 15.0]
    assert len(_queries(client)) == 3


def test_operation_timed_out_on_server(make_client):
    client = make_client(lambda request: pytest.fail("unexpected request"))
    operation = {**_operation(False), "HasTimedout": True}

    with pytest.raises(OperationTimeoutError):
        client.wait_until_finished(ADMIN_URL, operation)
