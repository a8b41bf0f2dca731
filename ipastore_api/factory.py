"""Flask application factory."""
from __future__ import annotations

import logging
from typing import Optional

from flask import Flask

from .config import Settings
from .routes.api import api_bp
from .services import AppStoreConfig, AppStoreService, DownloadRegistry, FileAccountStore


def create_app(settings: Optional[Settings] = None) -> Flask:
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = Flask(__name__)

    settings.data_dir.mkdir(parents=True, exist_ok=True)
    accounts = FileAccountStore(str(settings.accounts_path))

    appstore = AppStoreService(
        AppStoreConfig(
            verify=settings.verify,
            timeout=settings.timeout,
            user_agent=settings.user_agent,
        )
    )

    registry = None
    if settings.registry_url:
        registry = DownloadRegistry(appstore.http, settings.registry_url)

    app.config["APPSTORE_SERVICE"] = appstore
    app.config["ACCOUNT_STORE"] = accounts
    app.config["DOWNLOAD_REGISTRY"] = registry

    app.register_blueprint(api_bp)

    return app
