"""Environment-driven settings for the API process."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .services import constants


@dataclass(slots=True)
class Settings:
    data_dir: Path
    verify: bool | str = True
    timeout: float = 30.0
    registry_url: Optional[str] = None
    user_agent: str = constants.DEFAULT_USER_AGENT
    log_level: str = "INFO"

    @property
    def accounts_path(self) -> Path:
        return self.data_dir / "accounts.json"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        data_dir = Path(env.get("IPASTORE_DATA_DIR") or Path.home() / ".ipastore").expanduser()

        verify: bool | str = True
        if env.get("IPASTORE_SSL_NO_VERIFY") == "1":
            verify = False
        else:
            ca_bundle_env = env.get("IPASTORE_CA_BUNDLE")
            if ca_bundle_env:
                verify = ca_bundle_env
            else:
                default_bundle = data_dir / "ca-bundle.pem"
                if default_bundle.exists():
                    verify = str(default_bundle)

        return cls(
            data_dir=data_dir,
            verify=verify,
            timeout=float(env.get("IPASTORE_TIMEOUT", "30")),
            registry_url=env.get("IPASTORE_REGISTRY_URL") or None,
            user_agent=env.get("IPASTORE_USER_AGENT") or constants.DEFAULT_USER_AGENT,
            log_level=env.get("IPASTORE_LOG_LEVEL", "INFO").upper(),
        )
