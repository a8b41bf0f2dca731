import plistlib
from dataclasses import replace
from unittest.mock import MagicMock

import pytest
import requests
from urllib3._collections import HTTPHeaderDict

from ipastore_api.services.cookie_jar import Cookie, CookieJar
from ipastore_api.services.errors import TransportError
from ipastore_api.services.http_client import HTTPClient, HTTPRequest, HTTPResult, StoreTransport


def _raw_response(status=200, body=b"", header_lines=()):
    raw_headers = HTTPHeaderDict()
    for key, value in header_lines:
        raw_headers.add(key, value)
    response = MagicMock()
    response.status_code = status
    response.content = body
    response.raw.headers = raw_headers
    return response


def test_send_keeps_every_set_cookie_line(monkeypatch):
    client = HTTPClient(timeout=5)
    response = _raw_response(
        header_lines=[
            ("Content-Type", "text/xml"),
            ("Set-Cookie", "a=1; Path=/"),
            ("Set-Cookie", "b=2; Path=/"),
        ]
    )
    request_mock = MagicMock(return_value=response)
    monkeypatch.setattr(client.session, "request", request_mock)

    result = client.send(HTTPRequest(method="POST", url="https://example.test/x", body=b"data"))

    assert result.get_all("set-cookie") == ["a=1; Path=/", "b=2; Path=/"]
    assert result.get_header("content-type") == "text/xml"
    assert request_mock.call_args.kwargs["timeout"] == 5
    assert request_mock.call_args.kwargs["data"] == b"data"


def test_send_wraps_network_failures(monkeypatch):
    client = HTTPClient()
    monkeypatch.setattr(
        client.session, "request", MagicMock(side_effect=requests.ConnectionError("boom"))
    )

    with pytest.raises(TransportError) as excinfo:
        client.send(HTTPRequest(method="GET", url="https://example.test/"))

    assert excinfo.value.cookies is None
    assert "boom" in excinfo.value.metadata["error"]


def test_session_never_stores_response_cookies():
    client = HTTPClient()
    jar = client.session.cookies

    assert jar.get_policy().is_not_allowed(".apple.com")


def test_get_header_raises_for_missing_header():
    result = HTTPResult(status_code=200, headers=[], body=b"")

    with pytest.raises(KeyError):
        result.get_header("Location")
    assert result.get_all("Set-Cookie") == []


def test_store_transport_attaches_identity_headers(fake_http, account, plist_result):
    fake_http.queue(plist_result({}))
    account = replace(account, cookies=CookieJar([Cookie("a", "1"), Cookie("b", "2")]))

    StoreTransport(fake_http).send(
        account,
        "POST",
        "/WebObjects/MZFinance.woa/wa/buyProduct",
        extra_headers={"X-Extra": "yes"},
        payload={"guid": "AABBCCDDEEFF"},
    )

    request = fake_http.requests[0]
    assert request.method == "POST"
    assert request.url == "https://p25-buy.itunes.apple.com/WebObjects/MZFinance.woa/wa/buyProduct"
    assert request.headers["Content-Type"] == "application/x-apple-plist"
    assert request.headers["iCloud-DSID"] == "987654321"
    assert request.headers["X-Dsid"] == "987654321"
    assert request.headers["X-Apple-Store-Front"] == "143441-1"
    assert request.headers["X-Token"] == "token-123"
    assert request.headers["Cookie"] == "a=1; b=2"
    assert request.headers["X-Extra"] == "yes"
    assert plistlib.loads(request.body) == {"guid": "AABBCCDDEEFF"}


def test_store_transport_without_pod_or_cookies(fake_http, account, plist_result):
    fake_http.queue(plist_result({}))

    StoreTransport(fake_http).send(
        replace(account, pod=None), "POST", "/path", query={"guid": "ABC"}
    )

    request = fake_http.requests[0]
    assert request.url == "https://buy.itunes.apple.com/path?guid=ABC"
    assert "Cookie" not in request.headers
    assert request.body is None


def test_store_transport_follows_redirects_with_rotated_cookies(fake_http, account, plist_result):
    fake_http.queue(
        HTTPResult(
            status_code=302,
            headers=[("Location", "/WebObjects/MZFinance.woa/wa/final"), ("Set-Cookie", "rot=1; Path=/")],
            body=b"",
        ),
        plist_result({"status": 0}, cookies=["s=2"]),
    )
    account = replace(account, cookies=CookieJar([Cookie("acct", "xyz")]))

    result = StoreTransport(fake_http).send(account, "POST", "/buy", payload={"guid": "ABC"})

    first, second = fake_http.requests
    assert not first.follow_redirects and not second.follow_redirects
    assert first.headers["Cookie"] == "acct=xyz"
    assert second.method == "POST"
    assert second.url == "https://p25-buy.itunes.apple.com/WebObjects/MZFinance.woa/wa/final"
    assert second.headers["Cookie"] == "acct=xyz; rot=1"
    assert second.headers["X-Token"] == "token-123"
    assert plistlib.loads(second.body) == {"guid": "ABC"}
    assert result.status_code == 200
    assert result.get_all("Set-Cookie") == ["rot=1; Path=/", "s=2"]


def test_store_transport_gives_up_after_too_many_redirects(fake_http, account):
    redirect = HTTPResult(status_code=302, headers=[("Location", "/again")], body=b"")
    fake_http.queue(*[redirect] * 10)

    with pytest.raises(TransportError, match="too many redirects"):
        StoreTransport(fake_http).send(account, "POST", "/buy")

    assert len(fake_http.requests) == 6


def test_redirect_without_location_is_returned_as_is(fake_http, account):
    fake_http.queue(HTTPResult(status_code=302, headers=[("Set-Cookie", "s=1")], body=b""))

    result = StoreTransport(fake_http).send(account, "POST", "/buy")

    assert result.status_code == 302
    assert result.get_all("Set-Cookie") == ["s=1"]
    assert len(fake_http.requests) == 1
