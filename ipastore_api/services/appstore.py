"""Store protocol client: purchase, version listing and download resolution."""
from __future__ import annotations

import logging
import plistlib
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import urlencode, urlparse

from . import constants, plist_codec
from .cookie_jar import CookieJar, merge, parse_set_cookie_headers
from .errors import (
    AppStoreError,
    LicenseRequiredError,
    MalformedResponseError,
    SessionExpiredError,
    StoreFailure,
    StoreFailureError,
    SubscriptionRequiredError,
    TemporarilyUnavailableError,
    TermsAcceptanceRequiredError,
    UnsupportedOperationError,
)
from .http_client import HTTPClient, HTTPResult, StoreTransport
from .models import (
    Account,
    DownloadDescriptor,
    Sinf,
    Software,
    VersionList,
    VersionMetadata,
)

log = logging.getLogger(__name__)


@dataclass(slots=True)
class AppStoreConfig:
    verify: bool | str = True
    timeout: float = 30.0
    user_agent: str = constants.DEFAULT_USER_AGENT


@dataclass(slots=True)
class StoreResponse:
    """A decoded store response together with the folded cookie jar."""

    status_code: int
    data: Dict[str, Any]
    cookies: CookieJar


class AppStoreService:
    """Stateless client; every call takes an account snapshot and returns a new jar."""

    def __init__(self, config: AppStoreConfig, http: Optional[HTTPClient] = None) -> None:
        self._http = http or HTTPClient(
            verify=config.verify, timeout=config.timeout, user_agent=config.user_agent
        )
        self._transport = StoreTransport(self._http)

    @property
    def http(self) -> HTTPClient:
        return self._http

    # ------------------------------------------------------------------
    # App discovery
    # ------------------------------------------------------------------

    def lookup(self, bundle_id: str, country: str) -> Software:
        params = {
            "entity": "software,iPadSoftware",
            "limit": "1",
            "media": "software",
            "bundleId": bundle_id,
            "country": country.upper(),
        }
        url = f"https://{constants.ITUNES_API_DOMAIN}{constants.ITUNES_API_LOOKUP_PATH}?{urlencode(params)}"
        data = self._http.get_json(url)
        results = data.get("results", []) if isinstance(data, dict) else []
        if not results:
            raise AppStoreError("app not found", metadata={"bundleId": bundle_id, "country": country})
        return Software.from_dict(results[0])

    # ------------------------------------------------------------------
    # Purchasing
    # ------------------------------------------------------------------

    def purchase(self, account: Account, software: Software) -> CookieJar:
        """Obtain a free license, falling back to the arcade bucket once on 2059."""
        if not software.is_free:
            raise UnsupportedOperationError("purchasing paid apps is not supported")

        cookies = account.cookies
        *first_buckets, last_bucket = constants.PRICING_BUCKETS
        for bucket in first_buckets:
            try:
                return self._purchase_with_params(replace(account, cookies=cookies), software, bucket)
            except TemporarilyUnavailableError as exc:
                cookies = exc.cookies
                log.info(
                    "item %s temporarily unavailable with %s, retrying with %s",
                    software.id,
                    bucket,
                    last_bucket,
                )
        return self._purchase_with_params(replace(account, cookies=cookies), software, last_bucket)

    def _purchase_with_params(self, account: Account, software: Software, pricing: str) -> CookieJar:
        payload = {
            "appExtVrsId": "0",
            "hasAskedToFulfillPreorder": "true",
            "buyWithoutAuthorization": "true",
            "hasDoneAgeCheck": "true",
            "guid": account.device_identifier,
            "needDiv": "0",
            "origPage": f"Software-{software.id}",
            "origPageLocation": "Buy",
            "price": "0",
            "pricingParameters": pricing,
            "productType": "C",
            "salableAdamId": str(software.id),
        }
        response = self._send_store_request(account, constants.PRIVATE_PURCHASE_PATH, payload)
        self._raise_for_failure(response)

        data = response.data
        doc_type = self._project(response, plist_codec.get_str, "jingleDocType")
        status = self._project(response, plist_codec.get_int, "status")
        if doc_type != constants.PURCHASE_SUCCESS_DOC_TYPE or status != 0:
            raise StoreFailureError(
                "failed to complete purchase", metadata=data, cookies=response.cookies
            )
        return response.cookies

    # ------------------------------------------------------------------
    # Versions & downloads
    # ------------------------------------------------------------------

    def list_versions(self, account: Account, software: Software) -> VersionList:
        response = self._send_download_request(account, software, None, constants.PRIVATE_VERSIONS_PATH)
        self._raise_for_failure(response)
        _, metadata = self._first_item(response)

        identifiers = self._project(response, plist_codec.get_list, "softwareVersionExternalIdentifiers", metadata)
        if identifiers is None:
            raise StoreFailureError("invalid version identifiers", metadata=metadata, cookies=response.cookies)
        latest = metadata.get("softwareVersionExternalIdentifier")
        return VersionList(
            external_version_identifiers=[str(value) for value in identifiers],
            latest_external_version_id=str(latest) if latest is not None else None,
            cookies=response.cookies,
        )

    def get_version_metadata(self, account: Account, software: Software, version_id: str) -> VersionMetadata:
        response = self._send_download_request(account, software, version_id)
        self._raise_for_failure(response)
        _, metadata = self._first_item(response)

        release_date: Optional[datetime] = None
        raw_date = metadata.get("releaseDate")
        if isinstance(raw_date, datetime):
            release_date = raw_date
        elif raw_date:
            try:
                release_date = datetime.fromisoformat(str(raw_date).replace("Z", "+00:00"))
            except ValueError:
                log.debug("unparseable release date %r for %s", raw_date, software.id)

        return VersionMetadata(
            display_version=str(metadata.get("bundleShortVersionString", "N/A")),
            build_number=str(metadata.get("bundleVersion", "N/A")),
            release_date=release_date,
            bundle_id=str(metadata.get("softwareVersionBundleId", "N/A")),
            artist_name=str(metadata.get("artistName", "N/A")),
            item_name=str(metadata.get("itemName", "N/A")),
            cookies=response.cookies,
        )

    def resolve_download(
        self,
        account: Account,
        software: Software,
        external_version_id: Optional[str] = None,
    ) -> DownloadDescriptor:
        response = self._send_download_request(account, software, external_version_id)
        self._raise_for_failure(response)
        item, metadata = self._first_item(response)

        url = self._project(response, plist_codec.get_str, "URL", item)
        if not url:
            raise StoreFailureError("download response has no URL", metadata=item, cookies=response.cookies)

        raw_sinfs = self._project(response, plist_codec.get_list, "sinfs", item) or []
        sinfs = [Sinf.from_dict(entry) for entry in raw_sinfs if isinstance(entry, dict)]

        itunes_metadata = dict(metadata)
        itunes_metadata["apple-id"] = account.email
        itunes_metadata["userName"] = account.email

        return DownloadDescriptor(
            url=url,
            sinfs=sinfs,
            itunes_metadata=plistlib.dumps(itunes_metadata, fmt=plistlib.FMT_BINARY),
            version=str(metadata.get("bundleShortVersionString", "")),
            cookies=response.cookies,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _send_download_request(
        self,
        account: Account,
        software: Software,
        external_version_id: Optional[str],
        path: str = constants.PRIVATE_DOWNLOAD_PATH,
    ) -> StoreResponse:
        guid = account.device_identifier
        payload: Dict[str, Any] = {
            "creditDisplay": "",
            "guid": guid,
            "salableAdamId": str(software.id),
        }
        if external_version_id:
            payload["externalVersionId"] = external_version_id
        return self._send_store_request(account, path, payload, query={"guid": guid})

    def _send_store_request(
        self,
        account: Account,
        path: str,
        payload: Mapping[str, Any],
        query: Optional[Mapping[str, str]] = None,
    ) -> StoreResponse:
        result = self._transport.send(account, "POST", path, payload=payload, query=query)
        decoded = plist_codec.decode(result.body)
        cookies = self._fold_cookies(account.cookies, result)
        try:
            data = plist_codec.expect_dict(decoded)
        except MalformedResponseError as exc:
            exc.cookies = cookies
            raise
        return StoreResponse(status_code=result.status_code, data=data, cookies=cookies)

    @staticmethod
    def _fold_cookies(cookies: CookieJar, result: HTTPResult) -> CookieJar:
        return merge(cookies, parse_set_cookie_headers(result.get_all("Set-Cookie")))

    @staticmethod
    def _project(response: StoreResponse, getter, key: str, source: Optional[Mapping[str, Any]] = None):
        try:
            return getter(response.data if source is None else source, key)
        except MalformedResponseError as exc:
            exc.cookies = response.cookies
            raise

    def _first_item(self, response: StoreResponse) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        items = self._project(response, plist_codec.get_list, "songList")
        if not items or not isinstance(items[0], dict):
            raise StoreFailureError("invalid response payload", metadata=response.data, cookies=response.cookies)
        item = items[0]
        metadata = self._project(response, plist_codec.get_dict, "metadata", item) or {}
        return item, metadata

    def _raise_for_failure(self, response: StoreResponse) -> None:
        data = response.data
        code = self._project(response, plist_codec.get_code, "failureType")
        customer_message = self._project(response, plist_codec.get_str, "customerMessage")

        if code is None:
            if customer_message and constants.CUSTOMER_MESSAGE_TEMPORARILY_UNAVAILABLE in customer_message.lower():
                log.warning("temporarily unavailable message without failure code: %r", customer_message)
            return

        action_url = self._action_url(data)
        failure = StoreFailure(code=code, customer_message=customer_message, action_url=action_url)
        kwargs = {"metadata": data, "cookies": response.cookies, "failure": failure}

        if code == constants.FAILURE_TEMPORARILY_UNAVAILABLE:
            raise TemporarilyUnavailableError("item is temporarily unavailable", **kwargs)
        if code in (constants.FAILURE_PASSWORD_TOKEN_EXPIRED, constants.FAILURE_SESSION_EXPIRED):
            raise SessionExpiredError("password token is expired", **kwargs)
        if code == constants.FAILURE_LICENSE_NOT_FOUND:
            raise LicenseRequiredError("license required", **kwargs)
        if customer_message == constants.CUSTOMER_MESSAGE_PASSWORD_CHANGED:
            raise SessionExpiredError("password token is expired", **kwargs)
        if customer_message == constants.CUSTOMER_MESSAGE_SUBSCRIPTION_REQUIRED:
            raise SubscriptionRequiredError("subscription required", **kwargs)
        if action_url and urlparse(action_url).path.endswith(constants.TERMS_PAGE_MARKER):
            raise TermsAcceptanceRequiredError(
                f"you must accept the terms and conditions: {action_url}", **kwargs
            )
        raise StoreFailureError(customer_message or f"store request failed ({code})", **kwargs)

    @staticmethod
    def _action_url(data: Mapping[str, Any]) -> Optional[str]:
        action = data.get("action")
        if not isinstance(action, dict):
            return None
        url = action.get("url") or action.get("URL")
        return url if isinstance(url, str) else None


def storefront_to_country(store_front: str) -> Optional[str]:
    prefix = store_front.split("-")[0].split(",")[0]
    for code, value in constants.STORE_FRONTS.items():
        if value == prefix:
            return code
    return None
