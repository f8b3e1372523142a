"""Pytest configuration and fixtures for zmote_ir tests."""

import json
import os
from pathlib import Path
from typing import Any

import pytest

from zmote_ir.util import encode_tags

TEST_UUID = "5ccf7f0fdeadbeef"
TEST_URL = "http://192.168.1.20"

POWER_CODE = "38000,1,1,342,171,21,64,21,21,21,3700"
POWER_TOGGLE_CODE = "38000,1,1,342,171,21,21,21,64,21,3700"
MUTE_CODE = "38000,1,1,342,171,21,64,21,64,21,3700"


def make_announcement(
    uuid: str | None = TEST_UUID,
    url: str | None = TEST_URL,
    make: str | None = "zmote.io",
    type: str | None = "ZMT2",
    model: str | None = "ZV-2",
    revision: str | None = "2.1.4",
) -> bytes:
    """Build a raw announcement datagram as sent by a ZMote. Tags that are None are omitted."""
    tags = {
        "UUID": uuid,
        "SDKClass": "Utility",
        "Make": make,
        "Model": model,
        "Revision": revision,
        "Config-Name": "ZMOTE",
        "Config-URL": url,
        "Type": type,
    }
    return encode_tags(
        {name: value for name, value in tags.items() if value is not None},
        prefix="AMXB",
    ).encode("utf-8")


def rewrite_file(path: Path, text: str) -> Path:
    """Write a file.

    If the file already exists, its modification time is moved forward by at least a
    second so that the rewrite is detected on filesystems with coarse timestamps.
    """
    old_mtime_ns = path.stat().st_mtime_ns if path.exists() else None
    path.write_text(text, encoding="utf-8")
    if old_mtime_ns is not None:
        st = path.stat()
        new_mtime_ns = max(st.st_mtime_ns, old_mtime_ns + 1_000_000_000)
        os.utime(path, ns=(st.st_atime_ns, new_mtime_ns))
    return path


def write_remote_file(path: Path, keys: list[Any] | None, **fields: Any) -> Path:
    """Write a remote configuration file. See rewrite_file()."""
    document: dict[str, Any] = {"brand": "Acme", "model": "TV-1000", "name": "Living room TV"}
    document.update(fields)
    if keys is not None:
        document["keys"] = keys
    return rewrite_file(path, json.dumps(document))


class FakeClock:
    """A manually advanced clock for presence expiry tests."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    """Fixture providing a manually advanced clock."""
    return FakeClock()


@pytest.fixture
def sample_keys() -> list[dict[str, Any]]:
    """Fixture providing the button list of a typical remote."""
    return [
        {"key": "power", "name": "Power", "code": POWER_CODE, "tcode": POWER_TOGGLE_CODE},
        {"key": " Mute ", "name": "Mute", "code": MUTE_CODE},
    ]


@pytest.fixture
def remote_file(tmp_path: Path, sample_keys: list[dict[str, Any]]) -> Path:
    """Fixture providing a valid remote configuration file."""
    return write_remote_file(tmp_path / "tv.json", sample_keys)
