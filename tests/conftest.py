"""Shared fixtures for the script tests."""

import logging

import pytest


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    """Run inside tmp_path and drop the log handlers a script's main() installs."""
    monkeypatch.chdir(tmp_path)
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield tmp_path
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
