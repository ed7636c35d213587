"""Tests for logging, atomic writes and file locking."""

import json
import os
import threading
import time

import pytest

import team_sync.utils.logging as logging_module
from team_sync.locking import LockTimeout, file_lock, lock_path_for
from team_sync.utils.atomic_write import atomic_write_json, dumps_deterministic
from team_sync.utils.logging import Logger, get_logger, init_logger


class TestLogger:
    """Tests for Logger class."""

    def test_error_with_suggestion(self, capsys):
        """Test error logging with suggestion."""
        logger = Logger(use_colors=False)
        logger.error("Store is busy", suggestion="Try again")

        captured = capsys.readouterr()
        assert "Error: Store is busy" in captured.err
        assert "Try again" in captured.err
        assert captured.out == ""

    def test_warning_message(self, capsys):
        """Test warning logging."""
        Logger(use_colors=False).warning("Write conflict")
        assert "Warning: Write conflict" in capsys.readouterr().err

    def test_info_suppressed_when_quiet(self, capsys):
        """Test quiet mode drops info but keeps warnings."""
        logger = Logger(quiet=True, use_colors=False)
        logger.info("Progress")
        logger.warning("Problem")

        err = capsys.readouterr().err
        assert "Progress" not in err
        assert "Problem" in err

    def test_debug_only_when_verbose(self, capsys):
        """Test debug output depends on verbose."""
        Logger(verbose=False, use_colors=False).debug("hidden")
        Logger(verbose=True, use_colors=False).debug("Loaded", file="notes.md")

        err = capsys.readouterr().err
        assert "hidden" not in err
        assert "DEBUG: Loaded (file='notes.md')" in err

    def test_exception_traceback_in_verbose(self, capsys):
        """Test exception logging with traceback in verbose mode."""
        logger = Logger(verbose=True, use_colors=False)
        try:
            raise ValueError("Test error")
        except ValueError as e:
            logger.exception("Caught exception", e)

        err = capsys.readouterr().err
        assert "Error: Caught exception: Test error" in err
        assert "Traceback" in err

    def test_colorize(self):
        """Test ANSI color codes when colors enabled."""
        logger = Logger(use_colors=False)
        assert logger._colorize("text", "31") == "text"
        logger.use_colors = True  # Override TTY check
        assert logger._colorize("text", "31") == "\033[31mtext\033[0m"


class TestGlobalLogger:
    """Tests for global logger initialization."""

    def test_init_logger(self, monkeypatch):
        """Test global logger initialization."""
        monkeypatch.setattr(logging_module, "_logger", None)
        logger = init_logger(verbose=True, use_colors=False)
        assert get_logger() is logger
        assert logger.verbose is True

    def test_get_logger_default_is_quiet(self, monkeypatch):
        """Test get_logger creates a quiet logger when none is configured."""
        monkeypatch.setattr(logging_module, "_logger", None)

        logger = get_logger()
        assert logger.quiet is True
        assert logger.verbose is False


class TestAtomicWrite:
    """Tests for atomic JSON writes."""

    def test_deterministic_output(self):
        """Keys are sorted, indented and newline-terminated."""
        assert dumps_deterministic({"b": 1, "a": [1]}) == '{\n  "a": [\n    1\n  ],\n  "b": 1\n}\n'

    def test_replaces_existing_file(self, tmp_path):
        """Writing over an existing file replaces its content."""
        target = tmp_path / "nested" / "data.json"
        atomic_write_json({"old": True}, target)
        atomic_write_json({"new": True}, target)

        assert json.loads(target.read_text(encoding="utf-8")) == {"new": True}
        assert os.stat(target).st_mode & 0o777 == 0o644

    def test_failure_leaves_target_and_no_temp_files(self, tmp_path):
        """Unserializable data leaves the old file and no temp files behind."""
        target = tmp_path / "data.json"
        atomic_write_json({"original": 1}, target)

        with pytest.raises(TypeError):
            atomic_write_json({"bad": object()}, target)

        assert json.loads(target.read_text(encoding="utf-8")) == {"original": 1}
        assert list(tmp_path.glob(".tmp_*")) == []


class TestFileLock:
    """Tests for file_lock."""

    def test_lock_file_beside_target(self, tmp_path):
        """The lock lives next to the protected file and is created on demand."""
        target = tmp_path / "deep" / "doc.json"
        with file_lock(target):
            assert lock_path_for(target).exists()
        assert lock_path_for(target).name == "doc.json.lock"

    def test_second_holder_times_out(self, tmp_path):
        """A competing lock attempt fails after the timeout."""
        target = tmp_path / "doc.json"
        with file_lock(target):
            start = time.monotonic()
            with pytest.raises(LockTimeout):
                with file_lock(target, timeout=0.2):
                    pass
            assert time.monotonic() - start >= 0.2

    def test_lock_released_after_block(self, tmp_path):
        """A waiting thread gets the lock once the holder exits."""
        target = tmp_path / "doc.json"
        acquired = threading.Event()

        def wait_for_lock():
            with file_lock(target, timeout=5.0):
                acquired.set()

        with file_lock(target):
            thread = threading.Thread(target=wait_for_lock)
            thread.start()
            time.sleep(0.1)
            assert not acquired.is_set()

        thread.join(timeout=5)
        assert acquired.is_set()
