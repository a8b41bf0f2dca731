"""Immutable per-account cookie jar threaded through every store call."""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from email.utils import formatdate
from http.cookiejar import parse_ns_headers
from typing import Any, Dict, Iterable, Iterator, List, Optional

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Cookie:
    name: str
    value: str
    domain: Optional[str] = None
    path: Optional[str] = None
    expires: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Cookie":
        return cls(
            name=data["name"],
            value=data.get("value", ""),
            domain=data.get("domain"),
            path=data.get("path"),
            expires=data.get("expires"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class CookieJar(Mapping):
    """Read-only mapping of cookie name to :class:`Cookie`.

    The only way to change a jar is :meth:`merge`, which returns a new jar.
    """

    __slots__ = ("_cookies",)

    def __init__(self, cookies: Iterable[Cookie] = ()) -> None:
        self._cookies: Dict[str, Cookie] = {}
        for cookie in cookies:
            self._cookies[cookie.name] = cookie

    def __getitem__(self, name: str) -> Cookie:
        return self._cookies[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._cookies)

    def __len__(self) -> int:
        return len(self._cookies)

    def __repr__(self) -> str:
        return f"CookieJar({sorted(self._cookies)!r})"

    def values_by_name(self) -> Dict[str, str]:
        return {name: cookie.value for name, cookie in self._cookies.items()}

    def header_value(self) -> str:
        return "; ".join(f"{cookie.name}={cookie.value}" for cookie in self._cookies.values())

    def merge(self, incoming: Iterable[Cookie]) -> "CookieJar":
        return merge(self, incoming)

    @classmethod
    def from_list(cls, data: Optional[Iterable[Dict[str, Any]]]) -> "CookieJar":
        return cls(Cookie.from_dict(item) for item in data or ())

    def to_list(self) -> List[Dict[str, Any]]:
        return [cookie.to_dict() for cookie in self._cookies.values()]


def parse_set_cookie_headers(values: Iterable[str]) -> List[Cookie]:
    cookies: List[Cookie] = []
    for raw in values:
        cookie = _parse_set_cookie(raw)
        if cookie is None:
            log.debug("discarding unparseable Set-Cookie header")
            continue
        cookies.append(cookie)
    return cookies


def _parse_set_cookie(raw: str) -> Optional[Cookie]:
    if not raw or not raw.strip():
        return None
    # parse_ns_headers keeps unknown attributes (Partitioned, SameSite, ...)
    # as extra pairs instead of rejecting the line.
    parsed = parse_ns_headers([raw])
    if not parsed:
        return None
    (name, value), *attributes = parsed[0]
    if value is None or not name or any(ch.isspace() for ch in name):
        return None

    known = {key: attr for key, attr in attributes if key in ("domain", "path", "expires")}
    expires = known.get("expires")
    return Cookie(
        name=name,
        value=value,
        domain=known.get("domain") or None,
        path=known.get("path") or None,
        expires=formatdate(expires, usegmt=True) if expires is not None else None,
    )


def merge(existing: CookieJar, incoming: Iterable[Cookie]) -> CookieJar:
    incoming = list(incoming)
    if not incoming:
        return existing
    return CookieJar([*existing.values(), *incoming])
