import plistlib

import pytest

from ipastore_api.services.appstore import AppStoreConfig, AppStoreService
from ipastore_api.services.http_client import HTTPResult
from ipastore_api.services.models import Account


class FakeHTTPClient:
    """Stands in for HTTPClient; replays queued results and records requests."""

    def __init__(self):
        self.responses = []
        self.requests = []
        self.json_responses = []
        self.json_urls = []

    def queue(self, *results):
        self.responses.extend(results)

    def send(self, request):
        self.requests.append(request)
        if not self.responses:
            raise AssertionError(f"unexpected request to {request.url}")
        result = self.responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def get_json(self, url):
        self.json_urls.append(url)
        return self.json_responses.pop(0)

    def payloads(self):
        return [plistlib.loads(request.body) for request in self.requests]


def make_plist_result(data, cookies=(), status=200):
    headers = [("Content-Type", "text/xml; charset=UTF-8")]
    headers.extend(("Set-Cookie", cookie) for cookie in cookies)
    return HTTPResult(status_code=status, headers=headers, body=plistlib.dumps(data))


@pytest.fixture
def plist_result():
    return make_plist_result


@pytest.fixture
def fake_http():
    return FakeHTTPClient()


@pytest.fixture
def service(fake_http):
    return AppStoreService(AppStoreConfig(), http=fake_http)


@pytest.fixture
def account():
    return Account(
        email="user@example.com",
        password_token="token-123",
        directory_services_id="987654321",
        store_front="143441",
        device_identifier="AABBCCDDEEFF",
        pod="25",
        first_name="Test",
        last_name="User",
    )
