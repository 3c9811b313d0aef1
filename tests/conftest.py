"""
Pytest Configuration and Fixtures
"""

import json
import os
import sys

import pytest
import structlog

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(__file__)), 'src'))


def _liboqs_available() -> bool:
    try:
        import oqs
        return "ML-DSA-65" in oqs.get_enabled_sig_mechanisms()
    except (ImportError, RuntimeError, OSError, SystemExit):
        # liboqs-python calls sys.exit when its shared library cannot be loaded
        return False


LIBOQS_AVAILABLE = _liboqs_available()

requires_liboqs = pytest.mark.skipif(not LIBOQS_AVAILABLE, reason="liboqs not installed")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep PKGSEAL_* settings from the outer environment out of tests."""
    for name in list(os.environ):
        if name.startswith("PKGSEAL_"):
            monkeypatch.delenv(name, raising=False)
    yield
    structlog.reset_defaults()


def write_manifest(directory, algorithm="classical", key_id="test-key", artifacts=None, **extra):
    """Write manifest.json into directory and return its path."""
    if artifacts is None:
        artifacts = {"a": {"path": "a.bin"}}
    data = {
        "package": {"id": "com.example.widget", "name": "Widget"},
        "signature": {"type": algorithm, "keyId": key_id},
        "artifacts": artifacts,
    }
    data.update(extra)
    path = directory / "manifest.json"
    path.write_text(json.dumps(data, indent=2))
    return path


@pytest.fixture
def package_dir(tmp_path):
    """A package directory with one artifact, a.bin containing "hello"."""
    (tmp_path / "a.bin").write_bytes(b"hello")
    return tmp_path


@pytest.fixture
def classical_manifest(package_dir):
    return write_manifest(package_dir, algorithm="classical")


@pytest.fixture
def multi_artifact_dir(tmp_path):
    """A package with several artifacts, one of them nested."""
    (tmp_path / "lib").mkdir()
    (tmp_path / "a.bin").write_bytes(b"hello")
    (tmp_path / "b.txt").write_text("second artifact\n")
    (tmp_path / "lib" / "core.so").write_bytes(bytes(range(256)) * 16)
    write_manifest(tmp_path, artifacts={
        "core": {"path": "lib/core.so"},
        "a": {"path": "a.bin"},
        "readme": {"path": "b.txt"},
    })
    return tmp_path
