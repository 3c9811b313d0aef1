"""
Key Material Files

Keys and signatures are stored as base64 text. Key files are named after
the manifest's declared key id: <key_id>.priv and <key_id>.pub.
"""

import base64
import binascii
import os
import tempfile
from pathlib import Path
from typing import Optional, Tuple, Type

import structlog

from ..errors import ArtifactIOError, CryptoInputError, KeyFormatError
from .signer import KeyPair

logger = structlog.get_logger()

SECRET_KEY_SUFFIX = ".priv"
PUBLIC_KEY_SUFFIX = ".pub"


def to_b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def from_b64(text: str, error_cls: Type[CryptoInputError] = KeyFormatError, what: str = "key") -> bytes:
    """Strict base64 decode; whitespace around the text is ignored."""
    try:
        return base64.b64decode(text.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise error_cls(f"Invalid base64 {what}: {e}") from e


def read_text(path) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ArtifactIOError(path, e.strerror or str(e)) from e


def write_text_atomic(path, text: str, mode: int = 0o644, overwrite: bool = True) -> Path:
    """
    Write text via a temp file in the target directory and os.replace.

    A crash mid-write leaves either the old file or no file, never a
    truncated one.
    """
    path = Path(path)
    if not overwrite and path.exists():
        raise ArtifactIOError(path, "file exists (use --force to overwrite)")

    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
        tmp_name = None
    except OSError as e:
        raise ArtifactIOError(path, e.strerror or str(e)) from e
    finally:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)
    return path


def key_paths(directory, key_id: str) -> Tuple[Path, Path]:
    """(secret, public) key file paths for a key id."""
    directory = Path(directory)
    return (
        directory / f"{key_id}{SECRET_KEY_SUFFIX}",
        directory / f"{key_id}{PUBLIC_KEY_SUFFIX}",
    )


def write_keypair(
    directory,
    key_id: str,
    keypair: KeyPair,
    overwrite: bool = False,
) -> Tuple[Path, Path]:
    """Persist both halves of a keypair; the secret half is owner-only."""
    secret_path, public_path = key_paths(directory, key_id)
    if not overwrite:
        for path in (secret_path, public_path):
            if path.exists():
                raise ArtifactIOError(path, "file exists (use --force to overwrite)")

    write_text_atomic(secret_path, to_b64(keypair.secret_key) + "\n", mode=0o600)
    write_text_atomic(public_path, to_b64(keypair.public_key) + "\n", mode=0o644)

    logger.info(
        "keypair_written",
        key_id=key_id,
        secret_key=str(secret_path),
        public_key=str(public_path),
    )
    return secret_path, public_path


def read_key(path, what: Optional[str] = None) -> bytes:
    """Read a base64 key file into raw key bytes."""
    data = from_b64(read_text(path), KeyFormatError, what or f"key in {path}")
    if not data:
        raise KeyFormatError(f"Empty key file: {path}")
    return data
