"""Tests for CodeCache."""

from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from zmote_ir.code_cache import CodeCache, normalize_button_key
from zmote_ir.exceptions import ConfigurationError
from zmote_ir.remote_config import RemoteConfigFile

from .conftest import (
    MUTE_CODE,
    POWER_CODE,
    POWER_TOGGLE_CODE,
    rewrite_file,
    write_remote_file,
)


def _cache(path: Path) -> CodeCache:
    return CodeCache(RemoteConfigFile(str(path)))


class TestNormalizeButtonKey:
    """Tests for button key normalization."""

    def test_normalize_button_key(self) -> None:
        """Test trimming, lower-casing and blank handling."""
        assert normalize_button_key("  Power ") == "power"
        assert normalize_button_key("") is None
        assert normalize_button_key(None) is None


class TestCodeCache:
    """Tests for resolving buttons to IR codes."""

    def test_lookup_is_case_and_whitespace_insensitive(self, remote_file: Path) -> None:
        """Test that keys match regardless of case and surrounding whitespace."""
        cache = _cache(remote_file)
        code = cache.get_code(" POWER ")
        assert code is not None
        assert code.next_code() == POWER_CODE
        mute = cache.get_code("mute")
        assert mute is not None
        assert mute.next_code() == MUTE_CODE

    def test_unknown_and_blank_buttons_return_none(self, remote_file: Path) -> None:
        """Test that unknown or blank buttons are not found."""
        cache = _cache(remote_file)
        assert cache.get_code("volume_up") is None
        assert cache.get_code("   ") is None
        assert cache.get_code(None) is None

    def test_toggle_state_persists_across_lookups(self, remote_file: Path) -> None:
        """Test that the same IRCode is returned so toggling continues across presses."""
        cache = _cache(remote_file)
        first = cache.get_code("power")
        second = cache.get_code("Power")
        assert first is second
        assert first is not None
        assert first.next_code() == POWER_CODE
        assert second is not None
        assert second.next_code() == POWER_TOGGLE_CODE
        assert first.next_code() == POWER_CODE

    def test_unmodified_file_is_not_reparsed(self, remote_file: Path) -> None:
        """Test that lookups on an unchanged file never re-read it."""
        watcher = RemoteConfigFile(str(remote_file))
        cache = CodeCache(watcher)
        with patch.object(watcher, "read", wraps=watcher.read) as read_spy:
            for _ in range(5):
                assert cache.get_code("power") is not None
            read_spy.assert_not_called()

    def test_modified_file_replaces_mapping(self, remote_file: Path) -> None:
        """Test that a rewrite fully replaces the mapping rather than merging."""
        cache = _cache(remote_file)
        assert cache.get_code("mute") is not None
        write_remote_file(remote_file, [{"key": "input", "code": "X"}])
        assert cache.get_code("mute") is None
        code = cache.get_code("input")
        assert code is not None
        assert code.next_code() == "X"
        assert set(cache.codes) == {"input"}

    def test_invalid_buttons_are_dropped(self, tmp_path: Path) -> None:
        """Test that entries without a key or code are skipped."""
        path = write_remote_file(
            tmp_path / "remote.json",
            [
                {"key": "power", "code": "A"},
                {"key": "", "code": "B"},
                {"key": "mute", "code": "  "},
                {"name": "no key", "code": "C"},
                "not an object",
            ],
        )
        cache = _cache(path)
        assert set(cache.codes) == {"power"}
        assert len(cache) == 1

    def test_empty_remote_is_allowed(self, tmp_path: Path) -> None:
        """Test that a remote without valid buttons loads with an empty mapping."""
        cache = _cache(write_remote_file(tmp_path / "remote.json", []))
        assert len(cache) == 0
        assert cache.get_code("power") is None

    def test_broken_file_fails_at_construction(self, tmp_path: Path) -> None:
        """Test that the eager load surfaces a broken file immediately."""
        path = tmp_path / "remote.json"
        path.write_text("[not, json", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            _cache(path)

    def test_parse_failure_raises_until_fixed(
        self, remote_file: Path, sample_keys: list[dict[str, Any]]
    ) -> None:
        """Test that a corrupted file raises on every lookup and is picked up once fixed."""
        watcher = RemoteConfigFile(str(remote_file))
        cache = CodeCache(watcher)
        rewrite_file(remote_file, "{broken")
        with pytest.raises(ConfigurationError):
            cache.get_code("power")
        with pytest.raises(ConfigurationError):
            cache.get_code("power")
        # Previous mapping is still held in memory
        assert set(cache.codes) == {"power", "mute"}
        write_remote_file(remote_file, sample_keys[1:])
        assert cache.get_code("power") is None
        assert cache.get_code("mute") is not None

    def test_reload_forces_reread(self, remote_file: Path) -> None:
        """Test that reload re-reads even an unmodified file and resets toggle state."""
        cache = _cache(remote_file)
        before = cache.get_code("power")
        cache.reload()
        after = cache.get_code("power")
        assert before is not after
        assert after is not None
        assert after.next_code() == POWER_CODE
