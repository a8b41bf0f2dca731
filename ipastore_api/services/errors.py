"""Exception hierarchy for the App Store service layer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from .cookie_jar import CookieJar


@dataclass(frozen=True, slots=True)
class StoreFailure:
    """Failure decoded from a store response carrying ``failureType``."""

    code: str
    customer_message: Optional[str] = None
    action_url: Optional[str] = None


class AppStoreError(RuntimeError):
    """Base error that carries optional metadata from upstream responses.

    ``cookies`` is the account's cookie jar with every ``Set-Cookie`` of the
    failing response folded in. It is only set once a response body has been
    decoded; callers must persist it even though the operation failed.
    """

    def __init__(
        self,
        message: str,
        *,
        metadata: Optional[Any] = None,
        cookies: Optional["CookieJar"] = None,
        failure: Optional[StoreFailure] = None,
    ) -> None:
        super().__init__(message)
        self.metadata = metadata
        self.cookies = cookies
        self.failure = failure

    @property
    def code(self) -> Optional[str]:
        return self.failure.code if self.failure else None


class UnsupportedOperationError(AppStoreError):
    pass


class TransportError(AppStoreError):
    pass


class MalformedResponseError(AppStoreError):
    pass


class TemporarilyUnavailableError(AppStoreError):
    pass


class SessionExpiredError(AppStoreError):
    pass


class SubscriptionRequiredError(AppStoreError):
    pass


class TermsAcceptanceRequiredError(AppStoreError):
    @property
    def url(self) -> Optional[str]:
        return self.failure.action_url if self.failure else None


class LicenseRequiredError(AppStoreError):
    pass


class StoreFailureError(AppStoreError):
    """Terminal failure without a more specific classification."""
