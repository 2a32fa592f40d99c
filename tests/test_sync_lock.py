"""Tests for the run-level lock."""

from __future__ import annotations

import os
import time
from pathlib import Path
from unittest.mock import patch

import pytest

from raindrop_notebooklm_sync.errors import SyncInProgressError
from raindrop_notebooklm_sync.sync.lock import UNOWNED_LOCK_GRACE, RunLock


class TestRunLock:
    def test_lock_file_holds_pid_and_is_removed(self, tmp_path: Path):
        path = tmp_path / "sync.lock"

        with RunLock(path):
            assert path.read_text(encoding="utf-8") == str(os.getpid())

        assert not path.exists()

    def test_overlapping_run_rejected(self, tmp_path: Path):
        path = tmp_path / "sync.lock"

        with RunLock(path):
            with pytest.raises(SyncInProgressError):
                RunLock(path).acquire()

    def test_lock_reusable_after_release(self, tmp_path: Path):
        path = tmp_path / "sync.lock"
        with RunLock(path):
            pass
        with RunLock(path):
            assert path.exists()

    def test_other_process_lock_rejected(self, tmp_path: Path):
        path = tmp_path / "sync.lock"
        path.write_text("12345", encoding="utf-8")

        with patch(
            "raindrop_notebooklm_sync.sync.lock._pid_alive", return_value=True
        ):
            with pytest.raises(SyncInProgressError):
                RunLock(path).acquire()
        assert path.exists()

    def test_stale_lock_removed(self, tmp_path: Path):
        path = tmp_path / "sync.lock"
        path.write_text("12345", encoding="utf-8")

        with patch(
            "raindrop_notebooklm_sync.sync.lock._pid_alive", return_value=False
        ):
            with RunLock(path):
                assert path.read_text(encoding="utf-8") == str(os.getpid())

    def test_timeout_waits_then_fails(self, tmp_path: Path):
        path = tmp_path / "sync.lock"
        path.write_text("12345", encoding="utf-8")

        with patch(
            "raindrop_notebooklm_sync.sync.lock._pid_alive", return_value=True
        ):
            with pytest.raises(SyncInProgressError):
                RunLock(path, timeout=0.05, poll_interval=0.01).acquire()

    def test_fresh_lock_without_pid_blocks(self, tmp_path: Path):
        path = tmp_path / "sync.lock"
        path.write_text("", encoding="utf-8")

        with pytest.raises(SyncInProgressError):
            RunLock(path).acquire()
        assert path.exists()

    def test_old_lock_without_pid_is_stale(self, tmp_path: Path):
        path = tmp_path / "sync.lock"
        path.write_text("", encoding="utf-8")
        old = time.time() - UNOWNED_LOCK_GRACE - 60
        os.utime(path, (old, old))

        with RunLock(path):
            assert path.read_text(encoding="utf-8") == str(os.getpid())
