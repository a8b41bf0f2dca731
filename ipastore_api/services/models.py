"""Domain models for the store protocol client."""
from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .cookie_jar import CookieJar


@dataclass(frozen=True, slots=True)
class Account:
    """Snapshot of a store account.

    Operations never mutate an account; they return a new :class:`CookieJar`
    which the caller writes back (``dataclasses.replace(account, cookies=jar)``)
    before the next call for the same account.
    """

    email: str
    password_token: str
    directory_services_id: str
    store_front: str
    device_identifier: str
    pod: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    cookies: CookieJar = field(default_factory=CookieJar)

    @property
    def account_hash(self) -> str:
        return hashlib.sha256(self.email.strip().lower().encode("utf-8")).hexdigest()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Account":
        pod = data.get("pod")
        return cls(
            email=data.get("email", ""),
            password_token=data.get("passwordToken", ""),
            directory_services_id=str(data.get("directoryServicesIdentifier", "")),
            store_front=str(data.get("store", "")),
            device_identifier=data.get("deviceIdentifier", ""),
            pod=str(pod) if pod not in (None, "") else None,
            first_name=data.get("firstName", ""),
            last_name=data.get("lastName", ""),
            cookies=CookieJar.from_list(data.get("cookies")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "email": self.email,
            "passwordToken": self.password_token,
            "directoryServicesIdentifier": self.directory_services_id,
            "store": self.store_front,
            "deviceIdentifier": self.device_identifier,
            "pod": self.pod,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "cookies": self.cookies.to_list(),
        }

    def public_dict(self) -> Dict[str, Any]:
        return {
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "store": self.store_front,
            "accountHash": self.account_hash,
        }


@dataclass(frozen=True, slots=True)
class Software:
    id: int
    bundle_id: str = ""
    name: str = ""
    artist_name: str = ""
    artwork_url: str = ""
    version: str = ""
    price: Optional[float] = None
    formatted_price: Optional[str] = None

    @property
    def is_free(self) -> bool:
        return not self.price

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Software":
        price = data.get("price")
        return cls(
            id=int(data.get("trackId") or data.get("id", 0)),
            bundle_id=data.get("bundleId", ""),
            name=data.get("trackName") or data.get("name", ""),
            artist_name=data.get("artistName", ""),
            artwork_url=data.get("artworkUrl512") or data.get("artworkUrl", ""),
            version=data.get("version", ""),
            price=float(price) if price is not None else None,
            formatted_price=data.get("formattedPrice"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "bundleId": self.bundle_id,
            "name": self.name,
            "artistName": self.artist_name,
            "artworkUrl": self.artwork_url,
            "version": self.version,
            "price": self.price,
            "formattedPrice": self.formatted_price,
        }


@dataclass(frozen=True, slots=True)
class Sinf:
    id: int
    data: bytes

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Sinf":
        return cls(id=int(data.get("id", 0)), data=data.get("sinf", b""))


@dataclass(frozen=True, slots=True)
class VersionList:
    external_version_identifiers: List[str]
    latest_external_version_id: Optional[str]
    cookies: CookieJar


@dataclass(frozen=True, slots=True)
class DownloadDescriptor:
    url: str
    sinfs: List[Sinf]
    itunes_metadata: bytes
    version: str
    cookies: CookieJar


@dataclass(frozen=True, slots=True)
class VersionMetadata:
    display_version: str
    build_number: str
    release_date: Optional[datetime]
    bundle_id: str
    artist_name: str
    item_name: str
    cookies: CookieJar

    def to_dict(self) -> Dict[str, Any]:
        return {
            "displayVersion": self.display_version,
            "buildNumber": self.build_number,
            "releaseDate": self.release_date.isoformat() if self.release_date else None,
            "bundleId": self.bundle_id,
            "artistName": self.artist_name,
            "itemName": self.item_name,
        }
