"""Tests for SpoClient transport, error handling and CSOM."""

from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import httpx
import pytest

from spocli import CommandError, SpoClient, get_error_message
from spocli.client import parse_retry_after

ADMIN_URL = "https://contoso-admin.sharepoint.com"


def _contextinfo_calls(client):
    return [r for r in client.requests if r.url.path.endswith("/_api/contextinfo")]


# =========================================================================
# get_error_message
# =========================================================================


def test_error_message_from_odata_error():
    response = httpx.Response(
        500,
        json={"odata.error": {"code": "-1, Microsoft.SharePoint.Client.InvalidOperationException",
                              "message": {"lang": "en-US", "value": "An error has occurred"}}},
    )
    message, code = get_error_message(response)
    assert message == "An error has occurred"
    assert code == "-1, Microsoft.SharePoint.Client.InvalidOperationException"


def test_error_message_from_graph_error():
    response = httpx.Response(
        400, json={"error": {"code": "itemNotFound", "message": "Item not found"}}
    )
    assert get_error_message(response) == ("Item not found", "itemNotFound")


def test_error_message_from_plain_message():
    response = httpx.Response(400, json={"message": "Invalid request"})
    assert get_error_message(response) == ("Invalid request", None)


def test_error_message_from_oauth_error():
    response = httpx.Response(
        401, json={"error": "invalid_grant", "error_description": "AADSTS70000: expired"}
    )
    assert get_error_message(response) == ("AADSTS70000: expired", "invalid_grant")


def test_error_message_from_text_body():
    response = httpx.Response(404, text="File Not Found.")
    assert get_error_message(response) == ("File Not Found.", None)


def test_error_message_from_empty_body():
    response = httpx.Response(403)
    assert get_error_message(response) == ("403 Forbidden", None)


# =========================================================================
# HTTP
# =========================================================================


def test_request_sends_bearer_token_and_odata_headers(make_client):
    client = make_client(lambda request: httpx.Response(200, json={"Id": "1"}))

    assert client.get("https://contoso.sharepoint.com/_api/site") == {"Id": "1"}
    request = client.requests[0]
    assert request.headers["Authorization"] == "Bearer ABC"
    assert request.headers["Accept"] == "application/json;odata=nometadata"


def test_request_raises_command_error_for_odata_error(make_client):
    client = make_client(
        lambda request: httpx.Response(
            404, json={"odata.error": {"message": {"value": "List does not exist"}}}
        )
    )

    with pytest.raises(CommandError, match="List does not exist"):
        client.get("https://contoso.sharepoint.com/_api/web/lists")


def test_request_retries_on_server_error(make_client, clock):
    responses = iter([httpx.Response(503), httpx.Response(200, json={"value": []})])
    client = make_client(lambda request: next(responses))

    assert client.get("https://contoso.sharepoint.com/_api/web") == {"value": []}
    assert clock.sleeps == [1.0]


def test_request_uses_retry_after_header(make_client, clock):
    responses = iter([
        httpx.Response(429, headers={"Retry-After": "5"}),
        httpx.Response(200, json={}),
    ])
    client = make_client(lambda request: next(responses))

    client.get("https://contoso.sharepoint.com/_api/web")
    assert clock.sleeps == [5.0]


def test_request_gives_up_after_max_retries(make_client, clock):
    client = make_client(lambda request: httpx.Response(503, text="Service Unavailable"))

    with pytest.raises(CommandError, match="Service Unavailable"):
        client.get("https://contoso.sharepoint.com/_api/web")
    assert clock.sleeps == [1.0, 2.0]
    assert len(client.requests) == 3


def test_transport_error_becomes_command_error(make_client, clock):
    def handler(request):
        raise httpx.ConnectError("Connection refused", request=request)

    client = make_client(handler)

    with pytest.raises(CommandError, match="Connection refused"):
        client.get("https://contoso.sharepoint.com/_api/web")
    assert clock.sleeps == [1.0, 2.0]


def test_empty_response_returns_none(make_client):
    client = make_client(lambda request: httpx.Response(204))
    assert client.post("https://contoso.sharepoint.com/_api/web") is None


# =========================================================================
# Form digest / CSOM
# =========================================================================


def test_request_digest_is_cached(make_client):
    client = make_client(lambda request: httpx.Response(200))

    assert client.get_request_digest(ADMIN_URL) == "DIGEST"
    assert client.get_request_digest(ADMIN_URL + "/") == "DIGEST"
    assert len(_contextinfo_calls(client)) == 1


def test_request_digest_is_renewed_after_expiring(make_client, clock):
    client = make_client(lambda request: httpx.Response(200))

    client.get_request_digest(ADMIN_URL)
    clock.now += 1800
    client.get_request_digest(ADMIN_URL)
    assert len(_contextinfo_calls(client)) == 2


def test_process_query_posts_xml_with_digest(make_client, csom_response):
    client = make_client(lambda request: csom_response(7, {"IsNull": False}))

    result = client.process_query(ADMIN_URL, "<Request />")

    request = client.requests[-1]
    assert request.url == f"{ADMIN_URL}/_vti_bin/client.svc/ProcessQuery"
    assert request.headers["X-RequestDigest"] == "DIGEST"
    assert request.headers["Content-Type"] == "text/xml"
    assert request.content == b"<Request />"
    assert result[-1] == {"IsNull": False}


def test_process_query_raises_on_error_info(make_client, csom_response):
    client = make_client(
        lambda request: csom_response(
            error={
                "ErrorMessage": "Unknown Error",
                "ErrorValue": None,
                "ErrorCode": -1,
                "ErrorTypeName": "Microsoft.SharePoint.SPException",
            }
        )
    )

    with pytest.raises(CommandError, match="Unknown Error") as excinfo:
        client.process_query(ADMIN_URL, "<Request />")
    assert excinfo.value.code == "Microsoft.SharePoint.SPException"


def test_get_tenant_id_is_resolved_once(make_client, csom_response, auth):
    identity = "7046a19e-a0ec-4000-8bcb-6d5b4a1a5bc8|908bed80-a04a-4433-b4a0-883d9847d110:\ntenant"
    client = make_client(
        lambda request: csom_response(4, {"_ObjectIdentity_": identity})
    )

    assert client.get_tenant_id() == identity
    assert client.get_tenant_id() == identity
    assert auth.connection.tenant_id == identity
    queries = [r for r in client.requests if r.url.path.endswith("ProcessQuery")]
    assert len(queries) == 1


def test_request_digest_defaults_to_1800_seconds(auth, clock):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"FormDigestValue": "DIGEST"})

    client = SpoClient(auth, transport=httpx.MockTransport(handler), sleep=clock.sleep, clock=clock)

    client.get_request_digest(ADMIN_URL)
    clock.now = 1739
    client.get_request_digest(ADMIN_URL)
    assert len(requests) == 1

    clock.now = 1740
    client.get_request_digest(ADMIN_URL)
    assert len(requests) == 2


# =========================================================================
# Retry-After
# =========================================================================


def test_request_with_past_retry_after_date_retries_immediately(make_client, clock):
    responses = iter([
        httpx.Response(429, headers={"Retry-After": "Wed, 21 Oct 2015 07:28:00 GMT"}),
        httpx.Response(200, json={}),
    ])
    client = make_client(lambda request: next(responses))

    client.get("https://contoso.sharepoint.com/_api/web")
    assert clock.sleeps == [0.0]


def test_request_with_invalid_retry_after_uses_retry_delay(make_client, clock):
    responses = iter([
        httpx.Response(503, headers={"Retry-After": "soon"}),
        httpx.Response(200, json={}),
    ])
    client = make_client(lambda request: next(responses))

    client.get("https://contoso.sharepoint.com/_api/web")
    assert clock.sleeps == [1.0]


def test_parse_retry_after():
    assert parse_retry_after("120", 1.0) == 120.0
    assert parse_retry_after(None, 1.0) == 1.0
    assert parse_retry_after("", 2.0) == 2.0
    assert parse_retry_after("not a date", 3.0) == 3.0
    assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT", 1.0) == 0.0
    assert 3500 < parse_retry_after(format_datetime(_in_one_hour(), usegmt=True), 1.0) <= 3600


def _in_one_hour():
    return datetime.now(timezone.utc) + timedelta(hours=1)
