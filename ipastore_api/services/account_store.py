"""JSON-file account storage keyed by email."""
from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterator, List

from .cookie_jar import CookieJar
from .models import Account

log = logging.getLogger(__name__)


class FileAccountStore:
    """Stores account snapshots on disk and serialises work per account."""

    def __init__(self, path: str) -> None:
        self._path = Path(path)
        self._lock = threading.RLock()
        self._account_locks: Dict[str, threading.Lock] = {}
        self._data: Dict[str, dict] = {}
        self._load()

    def _load(self) -> None:
        if not self._path.exists():
            return
        raw = self._path.read_text(encoding="utf-8")
        if not raw.strip():
            return
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            log.warning("ignoring unreadable account file %s", self._path)
            return
        if isinstance(payload, dict):
            self._data = {str(k).lower(): v for k, v in payload.items() if isinstance(v, dict)}

    def _persist(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(self._data, indent=2, sort_keys=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(payload, encoding="utf-8")
        tmp.replace(self._path)

    def get(self, email: str) -> Account:
        with self._lock:
            data = self._data.get(email.lower())
            if data is None:
                raise KeyError(email)
            return Account.from_dict(data)

    def list(self) -> List[Account]:
        with self._lock:
            return [Account.from_dict(data) for data in self._data.values()]

    def update(self, account: Account) -> None:
        with self._lock:
            self._data[account.email.lower()] = account.to_dict()
            self._persist()

    def update_cookies(self, account: Account, cookies: CookieJar) -> Account:
        """Write back a jar returned by the client; unchanged jars are not persisted."""
        if cookies is account.cookies:
            return account
        updated = replace(account, cookies=cookies)
        self.update(updated)
        return updated

    def remove(self, email: str) -> None:
        with self._lock:
            if self._data.pop(email.lower(), None) is not None:
                self._persist()

    @contextmanager
    def locked(self, email: str) -> Iterator[None]:
        with self._lock:
            account_lock = self._account_locks.setdefault(email.lower(), threading.Lock())
        with account_lock:
            yield
