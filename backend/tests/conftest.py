"""
Shared fixtures: an in-memory Drive served over httpx.MockTransport and a
resilient client whose backoff sleeps are recorded instead of awaited.
"""
import os
import gzip
import re
import sys

import httpx
import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import FOLDER_MIME
from services.cache import Cache, MemoryBackend
from services.http_client import ResilientClient
from services.lister import PaginationLister
from services.catalog import SeriesBuilder


class FakePool:
    """Stands in for CredentialPool; hands out numbered tokens."""

    def __init__(self):
        self.issued = 0

    async def acquire_one(self):
        self.issued += 1
        return f"token-{self.issued}"


class FakeDrive:
    """Folders and files keyed by id, answering files.get / files.list / alt=media."""

    def __init__(self):
        self.items = {}
        self.requests = []
        self.failing = set()  # listing is rate limited, files.get answers 503
        self.gzipped = set()  # file ids whose media is served gzip-encoded

    def folder(self, folder_id, name, parent=None, extra_parents=()):
        parents = ([parent] if parent else []) + list(extra_parents)
        self.items[folder_id] = {"id": folder_id, "name": name, "mimeType": FOLDER_MIME, "parents": parents}

    def video(self, file_id, name, parent, mime_type="video/x-matroska", created="2024-01-01T00:00:00Z"):
        self.items[file_id] = {
            "id": file_id,
            "name": name,
            "mimeType": mime_type,
            "parents": [parent],
            "size": "1500000000",
            "createdTime": created,
            "thumbnailLink": f"https://thumbs.example/{file_id}",
        }

    def list_requests(self):
        return [r for r in self.requests if r.url.path.endswith("/drive/v3/files")]

    def handler(self, request):
        self.requests.append(request)
        path = request.url.path
        params = request.url.params

        if path.endswith("/drive/v3/files"):
            q = params.get("q", "")
            parent = re.match(r"'(.+?)' in parents", q)
            name = re.match(r"name contains '(.+?)'", q)
            if parent:
                if parent.group(1) in self.failing:
                    return httpx.Response(429)
                files = [i for i in self.items.values() if parent.group(1) in i["parents"]]
            elif name:
                files = [i for i in self.items.values() if name.group(1) in i["name"]]
            else:
                files = [i for i in self.items.values() if i["mimeType"].startswith("video/")]
            return httpx.Response(200, json={"files": files})

        item_id = path.rsplit("/", 1)[-1]
        if item_id in self.failing:
            return httpx.Response(503, json={"error": {"code": 503, "message": "Backend Error"}})
        if item_id not in self.items:
            return httpx.Response(404, json={"error": {"code": 404, "message": "File not found"}})
        if params.get("alt") == "media":
            headers = {"Content-Type": "video/x-matroska", "Accept-Ranges": "bytes"}
            if item_id in self.gzipped:
                headers["Content-Encoding"] = "gzip"
                return httpx.Response(200, content=gzip.compress(b"\x1a\x45\xdf\xa3" * 8), headers=headers)
            if request.headers.get("range"):
                headers["Content-Range"] = "bytes 0-3/1500000000"
                return httpx.Response(206, content=b"\x1a\x45\xdf\xa3", headers=headers)
            return httpx.Response(200, content=b"\x1a\x45\xdf\xa3", headers=headers)
        return httpx.Response(200, json=self.items[item_id])


@pytest.fixture
def sleeps():
    """Every backoff delay requested by a client built with make_client."""
    return []


@pytest.fixture
def make_client(sleeps):
    def factory(handler, max_attempts=4, timeout_ms=1000, pool=None):
        async def fake_sleep(seconds):
            sleeps.append(seconds)

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return ResilientClient(
            http,
            pool or FakePool(),
            max_attempts=max_attempts,
            timeout_ms=timeout_ms,
            retry_base_ms=500,
            sleep=fake_sleep,
        )

    return factory


@pytest.fixture
def drive():
    return FakeDrive()


@pytest.fixture
def lister(drive, make_client):
    return PaginationLister(make_client(drive.handler), Cache(MemoryBackend()))


@pytest.fixture
def builder(lister):
    return SeriesBuilder(lister)
