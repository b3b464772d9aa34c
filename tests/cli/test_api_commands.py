"""Tests for the serve-api CLI command."""
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from cli.commands.api import serve_api


@pytest.mark.unit
class TestServeApiCommand:
    @patch("cli.commands.api.uvicorn")
    def test_uses_settings_defaults(self, mock_uvicorn):
        with patch("cli.commands.api.settings") as mock_settings:
            mock_settings.API_HOST = "127.0.0.1"
            mock_settings.API_PORT = 9000
            mock_settings.LOG_LEVEL = "DEBUG"

            result = CliRunner().invoke(serve_api, [])

        assert result.exit_code == 0
        mock_uvicorn.run.assert_called_once_with(
            "src.api.app:app", host="127.0.0.1", port=9000, log_level="debug"
        )

    @patch("cli.commands.api.uvicorn")
    def test_options_override_settings(self, mock_uvicorn):
        result = CliRunner().invoke(serve_api, ["--host", "localhost", "--port", "8123"])

        assert result.exit_code == 0
        _, kwargs = mock_uvicorn.run.call_args
        assert kwargs["host"] == "localhost"
        assert kwargs["port"] == 8123
