"""Tests for the zmote command-line tool."""

import json
from pathlib import Path

import pytest
from pytest_httpx import HTTPXMock

from zmote_ir import __version__
from zmote_ir.__main__ import arun

from .conftest import MUTE_CODE, POWER_CODE, TEST_URL, TEST_UUID

SENDIR_URL = f"{TEST_URL}/v2/{TEST_UUID}"
UUID_URL = f"{TEST_URL}/uuid"


class TestCommandLine:
    """Tests for the command handlers, driven through arun()."""

    @pytest.mark.asyncio
    async def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test that the version command prints the package version."""
        assert await arun(["version"]) == 0
        assert capsys.readouterr().out.strip() == __version__

    @pytest.mark.asyncio
    async def test_bare_command_fails(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test that running without a command is an error."""
        assert await arun([]) == 1
        assert "A command is required" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_bad_arguments(self) -> None:
        """Test that argument errors return the argparse exit code."""
        assert await arun(["send-code", "--repeat", "many", "1,2,3"]) == 2

    @pytest.mark.asyncio
    async def test_check_online(self, httpx_mock: HTTPXMock, capsys: pytest.CaptureFixture[str]) -> None:
        """Test that check reports a device that answers its uuid query."""
        httpx_mock.add_response(url=UUID_URL, method="GET", text=f"uuid,{TEST_UUID}")
        assert await arun(["check", "--uuid", TEST_UUID, "--url", TEST_URL]) == 0
        assert capsys.readouterr().out.strip() == "online"

    @pytest.mark.asyncio
    async def test_check_offline(self, httpx_mock: HTTPXMock, capsys: pytest.CaptureFixture[str]) -> None:
        """Test that check exits with 1 for a device that gives the wrong answer."""
        httpx_mock.add_response(url=UUID_URL, method="GET", text="uuid,0000000000000000")
        assert await arun(["check", "--uuid", TEST_UUID, "--url", TEST_URL]) == 1
        assert capsys.readouterr().out.strip() == "offline"

    @pytest.mark.asyncio
    async def test_missing_uuid(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test that a device command without a uuid reports an error."""
        assert await arun(["check", "--url", TEST_URL]) == 1
        assert "zmote: error:" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_send_code(self, httpx_mock: HTTPXMock) -> None:
        """Test that send-code posts the code."""
        httpx_mock.add_response(url=SENDIR_URL, method="POST", text="completeir,1:1,0")
        assert await arun(["send-code", "--uuid", TEST_UUID, "--url", TEST_URL, POWER_CODE]) == 0
        request = httpx_mock.get_request()
        assert request is not None
        assert request.content == f"sendir,1:1,0,{POWER_CODE}".encode()

    @pytest.mark.asyncio
    async def test_send_code_failure(self, httpx_mock: HTTPXMock, capsys: pytest.CaptureFixture[str]) -> None:
        """Test that a device error fails the command."""
        httpx_mock.add_response(url=SENDIR_URL, method="POST", text="error,1:1,3")
        assert await arun(["send-code", "--uuid", TEST_UUID, "--url", TEST_URL, "--retry", "0", POWER_CODE]) == 1
        assert TEST_UUID in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_send_key(self, httpx_mock: HTTPXMock, remote_file: Path) -> None:
        """Test that send-key resolves a button from the remote configuration file."""
        httpx_mock.add_response(url=SENDIR_URL, method="POST", text="completeir,1:1,0")
        argv = ["send-key", "--uuid", TEST_UUID, "--url", TEST_URL, "-f", str(remote_file), "MUTE"]
        assert await arun(argv) == 0
        request = httpx_mock.get_request()
        assert request is not None
        assert request.content == f"sendir,1:1,0,{MUTE_CODE}".encode()

    @pytest.mark.asyncio
    async def test_send_key_unknown_button(self, remote_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
        """Test that an undefined button fails without contacting the device."""
        argv = ["send-key", "--uuid", TEST_UUID, "--url", TEST_URL, "-f", str(remote_file), "eject"]
        assert await arun(argv) == 1
        assert "eject" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_device_config_file(self, httpx_mock: HTTPXMock, remote_file: Path, tmp_path: Path) -> None:
        """Test that --config supplies device settings and explicit options override them."""
        config_path = tmp_path / "device.json"
        config_path.write_text(
            json.dumps({"uuid": TEST_UUID, "url": "http://192.168.1.99", "configFile": str(remote_file)}),
            encoding="utf-8",
        )
        httpx_mock.add_response(url=SENDIR_URL, method="POST", text="completeir,1:1,0")
        assert await arun(["send-key", "-c", str(config_path), "--url", TEST_URL, "power"]) == 0
