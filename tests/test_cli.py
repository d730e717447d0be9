"""Tests for the action-encode command line."""

import json
from unittest.mock import AsyncMock, patch

import pytest

from action_encode import cli
from action_encode.modules.transcoding.exceptions import EncodeError
from action_encode.modules.transcoding.models import Job


JOB = {
    "uid": "job-3",
    "workpath": "/work/job-3",
    "assets": [{"type": "video", "dest": "clip.mov", "layerName": "clip"}],
}


async def _encode(job: Job, debug: bool = False) -> Job:
    job.assets[0].dest = "clip-encoded.mp4"
    return job


@pytest.fixture(autouse=True)
def quiet_logging():
    with patch.object(cli, "setup_logging"):
        yield


class TestCli:
    """Tests for loading, running and writing jobs."""

    def test_writes_updated_job(self, tmp_path) -> None:
        job_file = tmp_path / "job.json"
        job_file.write_text(json.dumps(JOB))
        output = tmp_path / "done.json"

        with patch.object(cli, "run_job", new=AsyncMock(side_effect=_encode)):
            code = cli.main([str(job_file), "--output", str(output)])

        assert code == 0
        result = json.loads(output.read_text())
        assert result["assets"][0]["dest"] == "clip-encoded.mp4"
        assert result["assets"][0]["layerName"] == "clip"

    def test_workpath_override(self, tmp_path) -> None:
        job_file = tmp_path / "job.json"
        job_file.write_text(json.dumps(JOB))

        job = cli.load_job(job_file, workpath="/elsewhere")

        assert job.workpath == "/elsewhere"

    def test_encode_failure_exits_with_error(self, tmp_path) -> None:
        job_file = tmp_path / "job.json"
        job_file.write_text(json.dumps(JOB))

        with patch.object(cli, "run_job", new=AsyncMock(side_effect=EncodeError(1))):
            code = cli.main([str(job_file)])

        assert code == 1

    def test_invalid_job_exits_with_error(self, tmp_path) -> None:
        job_file = tmp_path / "job.json"
        job_file.write_text(json.dumps({"uid": "job-3"}))

        assert cli.main([str(job_file)]) == 1
