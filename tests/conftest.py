"""
Pytest configuration and fixtures for Deploy Agent tests.
"""

import io
import zipfile

import pytest

from deploy_agent.core.config import Settings


@pytest.fixture(autouse=True)
def isolate_agent_env(monkeypatch):
    """Keep host-level agent settings from leaking into tests."""
    for name in ("PERSISTENT_FOLDERS", "BEARER_KEYS", "DATA_DIR", "RETAIN_DEPLOYMENTS", "DEFAULT_COMMAND"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings(tmp_path):
    """Settings rooted in a temporary data directory."""
    settings = Settings(
        data_dir=str(tmp_path / "data"),
        default_command="true",
        graceful_stop_timeout_sec=2.0,
        force_kill_timeout_sec=2.0,
        watchdog_interval_sec=0,
        log_format="console",
    )
    settings.ensure_directories()
    return settings


def build_zip(files: dict) -> bytes:
    """Build an in-memory zip; keys ending in '/' become directory entries."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, content in files.items():
            if isinstance(content, str):
                content = content.encode("utf-8")
            zf.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture
def make_zip(tmp_path):
    """Write a zip archive to disk and return its path."""
    counter = {"n": 0}

    def _make(files: dict, name: str = None):
        counter["n"] += 1
        path = tmp_path / (name or f"bundle-{counter['n']}.zip")
        path.write_bytes(build_zip(files))
        return path

    return _make
