"""Service-layer exports."""
from .account_store import FileAccountStore
from .appstore import AppStoreConfig, AppStoreService
from .cookie_jar import Cookie, CookieJar
from .registry import DownloadRegistry

__all__ = [
    "AppStoreConfig",
    "AppStoreService",
    "Cookie",
    "CookieJar",
    "DownloadRegistry",
    "FileAccountStore",
]
