from pathlib import Path

from ipastore_api.config import Settings
from ipastore_api.services import constants


def test_defaults(tmp_path):
    settings = Settings.from_env({"IPASTORE_DATA_DIR": str(tmp_path)})

    assert settings.data_dir == tmp_path
    assert settings.accounts_path == tmp_path / "accounts.json"
    assert settings.verify is True
    assert settings.timeout == 30.0
    assert settings.registry_url is None
    assert settings.user_agent == constants.DEFAULT_USER_AGENT
    assert settings.log_level == "INFO"


def test_ssl_no_verify_wins_over_ca_bundle(tmp_path):
    settings = Settings.from_env(
        {
            "IPASTORE_DATA_DIR": str(tmp_path),
            "IPASTORE_SSL_NO_VERIFY": "1",
            "IPASTORE_CA_BUNDLE": "/etc/ssl/bundle.pem",
        }
    )

    assert settings.verify is False


def test_default_ca_bundle_in_data_dir(tmp_path):
    bundle = tmp_path / "ca-bundle.pem"
    bundle.write_text("---")

    settings = Settings.from_env({"IPASTORE_DATA_DIR": str(tmp_path)})

    assert settings.verify == str(bundle)


def test_overrides(tmp_path):
    settings = Settings.from_env(
        {
            "IPASTORE_DATA_DIR": str(tmp_path),
            "IPASTORE_CA_BUNDLE": "/etc/ssl/bundle.pem",
            "IPASTORE_TIMEOUT": "12.5",
            "IPASTORE_REGISTRY_URL": "https://backend.test/api/downloads",
            "IPASTORE_LOG_LEVEL": "debug",
        }
    )

    assert settings.verify == "/etc/ssl/bundle.pem"
    assert settings.timeout == 12.5
    assert settings.registry_url == "https://backend.test/api/downloads"
    assert settings.log_level == "DEBUG"


def test_home_default(monkeypatch, tmp_path):
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

    assert Settings.from_env({}).data_dir == tmp_path / ".ipastore"
