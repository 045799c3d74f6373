"""Tests for pointer_store module."""

import json
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from amipromote.pointer_store import ImagePointerStore, PointerStoreError


@pytest.fixture
def store():
    return ImagePointerStore("golden-images/", "us-east-1")


class TestImagePointerStore:
    def test_parameter_name(self, store):
        assert store.parameter_name("staging") == "/golden-images/staging/current-image-id"

    @patch("amipromote.aws_cli_executor.subprocess.run")
    def test_get_current(self, mock_run, store):
        mock_run.return_value = MagicMock(
            returncode=0,
            stdout=json.dumps({"Parameter": {"Value": "ami-2"}}),
            stderr="",
        )

        assert store.get_current("staging") == "ami-2"

    @patch("amipromote.aws_cli_executor.subprocess.run")
    def test_missing_parameter_returns_none(self, mock_run, store):
        mock_run.side_effect = subprocess.CalledProcessError(
            254,
            "aws",
            stderr="An error occurred (ParameterNotFound) when calling the GetParameter operation",
        )

        assert store.get_current("staging") is None
        assert mock_run.call_count == 1

    @patch("amipromote.aws_cli_executor.subprocess.run")
    def test_read_failure(self, mock_run, store):
        mock_run.side_effect = subprocess.CalledProcessError(
            254, "aws", stderr="An error occurred (AccessDeniedException) when calling"
        )

        with pytest.raises(PointerStoreError, match="Failed to read"):
            store.get_current("staging")

    @patch("amipromote.aws_cli_executor.subprocess.run")
    def test_set_current_overwrites(self, mock_run, store):
        mock_run.return_value = MagicMock(returncode=0, stdout='{"Version": 3}', stderr="")

        store.set_current("production", "ami-7")

        cmd = mock_run.call_args[0][0]
        assert cmd[:3] == ["aws", "ssm", "put-parameter"]
        assert cmd[cmd.index("--name") + 1] == "/golden-images/production/current-image-id"
        assert cmd[cmd.index("--value") + 1] == "ami-7"
        assert "--overwrite" in cmd

    @patch("amipromote.aws_cli_executor.subprocess.run")
    def test_write_failure(self, mock_run, store):
        mock_run.side_effect = subprocess.TimeoutExpired("aws", 30)

        with pytest.raises(PointerStoreError, match="Failed to write"):
            store.set_current("production", "ami-7")
