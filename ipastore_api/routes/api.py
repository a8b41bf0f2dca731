"""REST API routes for the Flask application."""
from __future__ import annotations

import base64
from datetime import datetime
from http import HTTPStatus
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, TypeVar

from flask import Blueprint, current_app, jsonify, request

from ..services.account_store import FileAccountStore
from ..services.appstore import AppStoreService, storefront_to_country
from ..services.cookie_jar import CookieJar
from ..services.errors import (
    AppStoreError,
    LicenseRequiredError,
    MalformedResponseError,
    SessionExpiredError,
    SubscriptionRequiredError,
    TermsAcceptanceRequiredError,
    TransportError,
)
from ..services.models import Account, Software
from ..services.registry import DownloadRegistry

api_bp = Blueprint("api", __name__, url_prefix="/api")

T = TypeVar("T")


class AccountNotFoundError(AppStoreError):
    pass


def _service() -> AppStoreService:
    return current_app.config["APPSTORE_SERVICE"]


def _accounts() -> FileAccountStore:
    return current_app.config["ACCOUNT_STORE"]


def _registry() -> Optional[DownloadRegistry]:
    return current_app.config.get("DOWNLOAD_REGISTRY")


def _jsonable(value: Any) -> Any:
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


@api_bp.errorhandler(AppStoreError)
def _handle_appstore_error(exc: AppStoreError):
    payload: Dict[str, Any] = {"error": str(exc)}
    if exc.code is not None:
        payload["code"] = exc.code
    if exc.metadata is not None:
        payload["metadata"] = _jsonable(exc.metadata)

    status = HTTPStatus.BAD_REQUEST
    if isinstance(exc, AccountNotFoundError):
        status = HTTPStatus.NOT_FOUND
    elif isinstance(exc, SessionExpiredError):
        payload["reauthenticate"] = True
        status = HTTPStatus.UNAUTHORIZED
    elif isinstance(exc, (TransportError, MalformedResponseError)):
        status = HTTPStatus.BAD_GATEWAY
    elif isinstance(exc, LicenseRequiredError):
        payload["licenseRequired"] = True
    elif isinstance(exc, SubscriptionRequiredError):
        payload["subscriptionRequired"] = True
    elif isinstance(exc, TermsAcceptanceRequiredError):
        payload["termsUrl"] = exc.url

    return jsonify(payload), status


def _run(email: Optional[str], operation: Callable[[Account], Tuple[T, CookieJar]]) -> Tuple[Account, T]:
    """Run one store operation for an account and write back its cookie jar.

    Operations on the same account are serialised so that no rotated cookie
    is lost between two overlapping calls.
    """
    if not email:
        raise AppStoreError("email is required")
    store = _accounts()
    with store.locked(email):
        account = _load_account(email)
        try:
            result, cookies = operation(account)
        except AppStoreError as exc:
            if exc.cookies is not None:
                store.update_cookies(account, exc.cookies)
            raise
        account = store.update_cookies(account, cookies)
    return account, result


def _load_account(email: str) -> Account:
    try:
        return _accounts().get(email)
    except KeyError as exc:
        raise AccountNotFoundError(f"unknown account: {email}") from exc


@api_bp.get("/accounts")
def list_accounts():
    return jsonify({"accounts": [account.public_dict() for account in _accounts().list()]})


@api_bp.get("/lookup")
def lookup():
    params = request.args or {}
    bundle_id = params.get("bundleId")
    if not bundle_id:
        return jsonify({"error": "bundleId is required"}), HTTPStatus.BAD_REQUEST
    software = _service().lookup(bundle_id, params.get("country") or "US")
    return jsonify({"software": software.to_dict()})


@api_bp.post("/purchase")
def purchase():
    payload = request.get_json(force=True) or {}

    def operation(account: Account):
        software = _resolve_software(payload, account)
        return software, _service().purchase(account, software)

    _, software = _run(payload.get("email"), operation)
    return jsonify({"status": "purchased", "software": software.to_dict()})


@api_bp.get("/versions")
def list_versions():
    params = request.args or {}

    def operation(account: Account):
        output = _service().list_versions(account, _resolve_software(params, account))
        return output, output.cookies

    _, output = _run(params.get("email"), operation)
    return jsonify(
        {
            "versions": output.external_version_identifiers,
            "latestExternalVersionId": output.latest_external_version_id,
        }
    )


@api_bp.get("/version-metadata")
def version_metadata():
    params = request.args or {}
    version_id = params.get("versionId")
    if not version_id:
        return jsonify({"error": "versionId is required"}), HTTPStatus.BAD_REQUEST

    def operation(account: Account):
        metadata = _service().get_version_metadata(account, _resolve_software(params, account), version_id)
        return metadata, metadata.cookies

    _, metadata = _run(params.get("email"), operation)
    return jsonify(metadata.to_dict())


@api_bp.post("/download")
def download():
    payload = request.get_json(force=True) or {}
    external_version_id = payload.get("externalVersionId") or None

    def operation(account: Account):
        software = _resolve_software(payload, account)
        descriptor = _service().resolve_download(account, software, external_version_id)
        return (software, descriptor), descriptor.cookies

    account, (software, descriptor) = _run(payload.get("email"), operation)

    registry = _registry()
    registration = None
    if registry is not None:
        registration = registry.register(account, software, descriptor)

    return jsonify(
        {
            "downloadURL": descriptor.url,
            "version": descriptor.version,
            "sinfCount": len(descriptor.sinfs),
            "registered": registry is not None,
            "registration": _jsonable(registration),
        }
    )


def _resolve_software(payload: Mapping[str, Any], account: Account) -> Software:
    bundle_id = payload.get("bundleId")
    app_id = payload.get("appId")

    if bundle_id:
        country = payload.get("country") or storefront_to_country(account.store_front) or "US"
        return _service().lookup(bundle_id, country)

    if app_id:
        return Software(id=int(app_id))

    raise AppStoreError("either appId or bundleId must be supplied")
