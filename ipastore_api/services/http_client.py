"""Thin wrapper around ``requests`` plus the account-aware store transport."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from http.cookiejar import DefaultCookiePolicy
from typing import Any, List, Mapping, MutableMapping, Optional, Tuple
from urllib.parse import urlencode, urljoin

import requests

from . import constants, plist_codec
from .cookie_jar import merge, parse_set_cookie_headers
from .errors import TransportError
from .models import Account

log = logging.getLogger(__name__)

MAX_REDIRECTS = 5
REDIRECT_STATUSES = (301, 302, 303, 307, 308)


@dataclass(slots=True)
class HTTPRequest:
    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    follow_redirects: bool = True


@dataclass(slots=True)
class HTTPResult:
    status_code: int
    headers: List[Tuple[str, str]]
    body: bytes

    def get_header(self, key: str) -> str:
        lowered = key.lower()
        for header_key, value in self.headers:
            if header_key.lower() == lowered:
                return value
        raise KeyError(key)

    def get_all(self, key: str) -> List[str]:
        lowered = key.lower()
        return [value for header_key, value in self.headers if header_key.lower() == lowered]


class HTTPClient:
    def __init__(
        self,
        verify: bool | str = True,
        timeout: float = 30.0,
        user_agent: str = constants.DEFAULT_USER_AGENT,
    ) -> None:
        self.session = requests.Session()
        self.session.headers["User-Agent"] = user_agent
        self.session.verify = verify
        # Cookies belong to accounts, never to the shared session.
        self.session.cookies.set_policy(DefaultCookiePolicy(allowed_domains=[]))
        self._timeout = timeout

    def send(self, request: HTTPRequest) -> HTTPResult:
        try:
            response = self.session.request(
                method=request.method,
                url=request.url,
                headers=dict(request.headers),
                data=request.body,
                allow_redirects=request.follow_redirects,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            log.warning("%s %s failed: %s", request.method, request.url.split("?")[0], exc)
            raise TransportError("network request failed", metadata={"error": str(exc)}) from exc

        log.debug("HTTP %s %s %s", response.status_code, request.method, request.url.split("?")[0])
        return HTTPResult(
            status_code=response.status_code,
            headers=_header_lines(response),
            body=response.content,
        )

    def get_json(self, url: str) -> Any:
        result = self.send(HTTPRequest(method="GET", url=url))
        try:
            return json.loads(result.body)
        except ValueError as exc:
            raise TransportError(
                "invalid JSON response", metadata={"status": result.status_code}
            ) from exc


def _header_lines(response: requests.Response) -> List[Tuple[str, str]]:
    # response.headers folds repeated headers into one value; the raw urllib3
    # headers keep every Set-Cookie line.
    raw_headers = getattr(response.raw, "headers", None)
    if raw_headers is not None and hasattr(raw_headers, "iteritems"):
        return [(key, value) for key, value in raw_headers.iteritems()]
    return list(response.headers.items())


class StoreTransport:
    """Issues authenticated requests to the account's private store host."""

    def __init__(self, http: HTTPClient) -> None:
        self._http = http

    @staticmethod
    def host_for(account: Account) -> str:
        if account.pod:
            return f"p{account.pod}-{constants.PRIVATE_APPSTORE_HOST}"
        return constants.PRIVATE_APPSTORE_HOST

    @staticmethod
    def identity_headers(account: Account) -> MutableMapping[str, str]:
        headers = {
            "Content-Type": constants.PLIST_CONTENT_TYPE,
            "iCloud-DSID": account.directory_services_id,
            "X-Dsid": account.directory_services_id,
            constants.HTTP_HEADER_STOREFRONT: f"{account.store_front}-1",
            "X-Token": account.password_token,
        }
        cookie_header = account.cookies.header_value()
        if cookie_header:
            headers["Cookie"] = cookie_header
        return headers

    def send(
        self,
        account: Account,
        method: str,
        path: str,
        extra_headers: Optional[Mapping[str, str]] = None,
        payload: Optional[Mapping[str, Any]] = None,
        query: Optional[Mapping[str, str]] = None,
    ) -> HTTPResult:
        """Send one store request, following redirects by hand.

        Each hop keeps the method, body and identity headers, and carries the
        cookies rotated by earlier hops. The returned result holds the
        ``Set-Cookie`` lines of every hop, earliest first.
        """
        headers = self.identity_headers(account)
        if extra_headers:
            headers.update(extra_headers)

        url = f"https://{self.host_for(account)}{path}"
        if query:
            url = f"{url}?{urlencode(query)}"

        body = plist_codec.encode(payload) if payload is not None else None
        cookies = account.cookies
        earlier_cookies: List[str] = []

        for _ in range(MAX_REDIRECTS + 1):
            result = self._http.send(
                HTTPRequest(method=method, url=url, headers=dict(headers), body=body, follow_redirects=False)
            )
            hop_cookies = result.get_all("Set-Cookie")
            location = self._redirect_location(result)
            if location is None:
                headers_seen = [("Set-Cookie", value) for value in earlier_cookies] + result.headers
                return HTTPResult(result.status_code, headers_seen, result.body)

            earlier_cookies.extend(hop_cookies)
            cookies = merge(cookies, parse_set_cookie_headers(hop_cookies))
            if cookies:
                headers["Cookie"] = cookies.header_value()
            url = urljoin(url, location)
            log.debug("store redirect %s -> %s", result.status_code, url.split("?")[0])

        raise TransportError("too many redirects", metadata={"url": url.split("?")[0]})

    @staticmethod
    def _redirect_location(result: HTTPResult) -> Optional[str]:
        if result.status_code not in REDIRECT_STATUSES:
            return None
        try:
            return result.get_header("Location")
        except KeyError:
            return None
