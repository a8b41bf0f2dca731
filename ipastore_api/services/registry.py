"""Client for the backend endpoint that records resolved downloads."""
from __future__ import annotations

import base64
import json
import logging
from typing import Any, Dict

from .errors import AppStoreError
from .http_client import HTTPClient, HTTPRequest
from .models import Account, DownloadDescriptor, Software

log = logging.getLogger(__name__)


class DownloadRegistry:
    def __init__(self, http: HTTPClient, url: str) -> None:
        self._http = http
        self._url = url

    @staticmethod
    def build_payload(account: Account, software: Software, descriptor: DownloadDescriptor) -> Dict[str, Any]:
        return {
            "software": software.to_dict(),
            "accountHash": account.account_hash,
            "downloadURL": descriptor.url,
            "sinfs": [
                {"id": sinf.id, "sinf": base64.b64encode(sinf.data).decode("ascii")}
                for sinf in descriptor.sinfs
            ],
            "iTunesMetadata": base64.b64encode(descriptor.itunes_metadata).decode("ascii"),
        }

    def register(self, account: Account, software: Software, descriptor: DownloadDescriptor) -> Any:
        payload = self.build_payload(account, software, descriptor)
        result = self._http.send(
            HTTPRequest(
                method="POST",
                url=self._url,
                headers={"Content-Type": "application/json"},
                body=json.dumps(payload).encode("utf-8"),
            )
        )
        if not 200 <= result.status_code < 300:
            raise AppStoreError(
                "download registration failed",
                metadata={"status": result.status_code, "body": result.body[:512].decode("utf-8", "replace")},
            )
        log.info("registered download of %s for account %s", software.id, account.account_hash[:12])
        try:
            return json.loads(result.body) if result.body else {}
        except ValueError:
            return {}
