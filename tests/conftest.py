"""
Pytest fixtures for strudel_samples tests.
"""
import json
import pytest
import sys
from pathlib import Path
import tempfile
import shutil

import requests

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from strudel_samples.server.config import LoaderConfig


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, url, body=b"", status_code=200):
        self.url = url
        self.status_code = status_code
        if isinstance(body, (dict, list)):
            body = json.dumps(body).encode("utf-8")
        elif isinstance(body, str):
            body = body.encode("utf-8")
        self.content = body

    @property
    def text(self):
        return self.content.decode("utf-8")

    def json(self):
        return json.loads(self.text)

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} for {self.url}")

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i:i + chunk_size]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeSession:
    """
    Serves canned responses by URL.

    Unknown URLs answer 404. A route may be bytes/str/dict/list (body),
    an int (status code) or an exception instance (raised).
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def get(self, url, stream=False, timeout=None, **kwargs):
        self.calls.append(url)
        route = self.routes.get(url)
        if route is None:
            return FakeResponse(url, status_code=404)
        if isinstance(route, Exception):
            raise route
        if isinstance(route, int):
            return FakeResponse(url, status_code=route)
        return FakeResponse(url, route)

    def calls_to(self, fragment):
        return [url for url in self.calls if fragment in url]


class FakeTranscoder:
    """Pretends to convert by copying bytes behind a WAV marker."""

    executable = "ffmpeg"
    version = "ffmpeg version fake"

    def __init__(self, available=True, fail=False):
        self.is_available = available
        self.fail = fail
        self.calls = []

    def convert(self, input_path, output_path):
        from strudel_samples.transcoder import TranscoderError

        self.calls.append((str(input_path), str(output_path)))
        if self.fail:
            raise TranscoderError("conversion failed")
        data = Path(input_path).read_bytes()
        Path(output_path).write_bytes(b"RIFF" + data)


@pytest.fixture
def temp_dir():
    """Create temporary directory for test outputs."""
    tmp = tempfile.mkdtemp()
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def loader_config(temp_dir):
    """Loader configuration with the cache in a temporary directory."""
    return LoaderConfig(
        cache_dir=str(Path(temp_dir) / "cache"),
        cdn_base="https://cdn.test",
        soundfont_url="https://fonts.test/sound",
        http_timeout=1.0,
        max_workers=2,
    )


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def fake_transcoder():
    return FakeTranscoder()


@pytest.fixture
def project_config_dir():
    """Get the packaged catalog directory."""
    return PROJECT_ROOT / 'strudel_samples' / 'configs'
