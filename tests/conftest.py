import io
import zipfile
from typing import Dict, List, Optional, Union

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from proofroom.projects import Workspace
from proofroom.settings import Settings


class FakeClock:
    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeResponse:
    def __init__(
        self,
        body: Union[str, bytes] = b"",
        status: int = 200,
        headers: Optional[Dict[str, str]] = None,
        url: str = "",
    ):
        self.content = body.encode("utf-8") if isinstance(body, str) else body
        self.status_code = status
        self.headers = CaseInsensitiveDict(headers or {})
        self.url = url
        self.closed = False

    def iter_content(self, chunk_size: int = 1):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i : i + chunk_size]

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Serves canned responses keyed by absolute URL; unknown URLs answer 404."""

    def __init__(self, routes: Dict[str, object], clock: Optional[FakeClock] = None, latency: float = 0.0):
        self.routes = routes
        self.clock = clock
        self.latency = latency
        self.calls: List[str] = []

    def get(self, url, timeout=None, stream=False, allow_redirects=True):
        self.calls.append(url)
        if self.clock is not None:
            self.clock.advance(self.latency)
        route = self.routes.get(url)
        if route is None:
            return FakeResponse(b"not found", status=404, url=url)
        if isinstance(route, Exception):
            raise route
        if not route.url:
            route.url = url
        return route


def html_response(body: str, url: str = "", status: int = 200) -> FakeResponse:
    return FakeResponse(body, status=status, headers={"Content-Type": "text/html; charset=utf-8"}, url=url)


def asset_response(body: Union[str, bytes], content_type: str, **headers) -> FakeResponse:
    h = {"Content-Type": content_type}
    h.update(headers)
    return FakeResponse(body, headers=h)


def make_zip(entries: Dict[str, Union[str, bytes]]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return buf.getvalue()


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def ws(settings):
    return Workspace.in_memory(settings)


@pytest.fixture
def file_ws(tmp_path):
    return Workspace.open(Settings(data_dir=str(tmp_path / "data")))


@pytest.fixture
def clock():
    return FakeClock()
