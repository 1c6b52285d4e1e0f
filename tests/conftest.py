"""
Shared fixtures: a fake ffmpeg executable and runner.
"""

import os
import stat
import subprocess
from pathlib import Path

import pytest

from engine.transcode import TranscodeEngine


class FakeFFmpeg:
    """Stands in for subprocess.run; writes a fake MP4 where ffmpeg would."""

    def __init__(self):
        self.calls: list[list[str]] = []
        self.workdir_snapshots: list[list[str]] = []
        self.returncode = 0
        self.write_output = True
        self.output_bytes = None
        self.version_returncode = 0

    def __call__(self, cmd, **kwargs):
        if cmd[-1] == "-version":
            return subprocess.CompletedProcess(
                cmd,
                self.version_returncode,
                stdout="ffmpeg version 6.1-test Copyright (c) 2000-2023\nbuilt with gcc\n",
                stderr="" if self.version_returncode == 0 else "broken build",
            )

        self.calls.append(list(cmd))
        output_path = Path(cmd[-1])
        self.workdir_snapshots.append(sorted(p.name for p in output_path.parent.iterdir()))

        if self.returncode != 0:
            return subprocess.CompletedProcess(cmd, self.returncode, stdout="", stderr="Invalid argument")

        if self.write_output:
            crop = cmd[cmd.index("-filter:v") + 1]
            payload = self.output_bytes if self.output_bytes is not None else f"mp4:{crop}".encode()
            output_path.write_bytes(payload)
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    def arg(self, call_index: int, flag: str) -> str:
        """Value following a flag in a recorded call."""
        cmd = self.calls[call_index]
        return cmd[cmd.index(flag) + 1]


@pytest.fixture
def fake_ffmpeg():
    return FakeFFmpeg()


@pytest.fixture
def ffmpeg_binary(tmp_path):
    """An executable file that shutil.which accepts as ffmpeg."""
    path = tmp_path / "bin" / "ffmpeg"
    path.parent.mkdir()
    path.write_text("#!/bin/sh\nexit 0\n")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return os.fspath(path)


@pytest.fixture
def engine(tmp_path, ffmpeg_binary, fake_ffmpeg):
    """A TranscodeEngine wired to the fake runner."""
    work_root = tmp_path / "work"
    work_root.mkdir()
    eng = TranscodeEngine(ffmpeg_binary=ffmpeg_binary, runner=fake_ffmpeg, work_root=str(work_root))
    yield eng
    eng.shutdown()
