"""
Package Manifest Model

{
    "package":   {"id": "...", "name": "..."},
    "signature": {"type": "ed25519", "keyId": "...", "value": "<base64, optional>"},
    "artifacts": {"<name>": {"path": "relative/path", "hash": "<hex, optional>"}}
}

Unknown fields are kept on load and written back on save. They are also
part of the signed payload; only signature.value is excluded.
"""

import json
import posixpath
from pathlib import Path, PureWindowsPath
from typing import Any, Dict, List, Optional, Tuple

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..crypto.canonical import canonical_bytes
from ..crypto.keys import read_text, write_text_atomic
from ..errors import ManifestFormatError

logger = structlog.get_logger()

HEX_DIGEST_PATTERN = r"^[0-9a-f]+$"


class PackageInfo(BaseModel):
    """Package identity; opaque to signing."""
    model_config = ConfigDict(extra="allow")

    id: str
    name: str


class SignatureMetadata(BaseModel):
    """Declared algorithm, key identity and (embedded mode) the signature."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: str
    key_id: str = Field(..., alias="keyId")
    value: Optional[str] = None

    @field_validator("key_id")
    @classmethod
    def _key_id_is_file_name(cls, v: str) -> str:
        if not v or v in (".", "..") or "/" in v or "\\" in v or "\x00" in v:
            raise ValueError(f"keyId must be a plain file name, got {v!r}")
        return v


class ArtifactEntry(BaseModel):
    """A file covered by the manifest."""
    model_config = ConfigDict(extra="allow")

    path: str
    hash: Optional[str] = Field(None, pattern=HEX_DIGEST_PATTERN)

    @field_validator("path")
    @classmethod
    def _path_stays_inside(cls, v: str) -> str:
        if not v:
            raise ValueError("artifact path is empty")
        if posixpath.isabs(v) or PureWindowsPath(v).is_absolute() or PureWindowsPath(v).drive:
            raise ValueError(f"artifact path must be relative, got {v!r}")
        normalized = posixpath.normpath(v.replace("\\", "/"))
        if normalized == ".." or normalized.startswith("../"):
            raise ValueError(f"artifact path escapes the manifest directory: {v!r}")
        return v


class Manifest(BaseModel):
    """In-memory manifest, one per invocation."""
    model_config = ConfigDict(extra="allow")

    package: PackageInfo
    signature: SignatureMetadata
    artifacts: Dict[str, ArtifactEntry]

    # ------------------------------------------------------------------
    # Parsing / serialization
    # ------------------------------------------------------------------

    @classmethod
    def from_json(cls, text: str, source: str = "<manifest>") -> "Manifest":
        try:
            data = json.loads(text, object_pairs_hook=_reject_duplicate_keys)
        except json.JSONDecodeError as e:
            raise ManifestFormatError(f"{source}: invalid JSON: {e}") from e
        except _DuplicateKey as e:
            raise ManifestFormatError(f"{source}: duplicate key {e.key!r}") from None
        return cls.from_dict(data, source)

    @classmethod
    def from_dict(cls, data: Any, source: str = "<manifest>") -> "Manifest":
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or '$'}: {err['msg']}"
                for err in e.errors()
            )
            raise ManifestFormatError(f"{source}: {problems}") from e

    @classmethod
    def load(cls, path) -> "Manifest":
        manifest = cls.from_json(read_text(path), source=str(path))
        logger.debug(
            "manifest_loaded",
            path=str(path),
            package_id=manifest.package.id,
            artifacts=len(manifest.artifacts),
        )
        return manifest

    def to_dict(self) -> Dict[str, Any]:
        data = self.model_dump(by_alias=True)
        # only the model's own optional fields are omitted when unset;
        # unknown fields keep explicit nulls
        if data["signature"].get("value") is None:
            data["signature"].pop("value", None)
        for entry in data["artifacts"].values():
            if entry.get("hash") is None:
                entry.pop("hash", None)
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False) + "\n"

    def save(self, path) -> Path:
        return write_text_atomic(path, self.to_json())

    # ------------------------------------------------------------------
    # Signing views
    # ------------------------------------------------------------------

    def signable_dict(self) -> Dict[str, Any]:
        """The manifest minus signature.value."""
        data = self.to_dict()
        data["signature"].pop("value", None)
        return data

    def signable_payload(self) -> bytes:
        """Canonical bytes that get hashed and signed."""
        return canonical_bytes(self.signable_dict())

    def artifact_files(self, base_dir) -> List[Tuple[str, Path]]:
        """(name, resolved path) pairs in sorted name order."""
        base = Path(base_dir)
        return [(name, base / self.artifacts[name].path) for name in sorted(self.artifacts)]

    def with_artifact_hashes(self, hashes: Dict[str, str]) -> "Manifest":
        updated = self.model_copy(deep=True)
        for name, digest in hashes.items():
            updated.artifacts[name].hash = digest
        return updated

    def with_signature_value(self, value: Optional[str]) -> "Manifest":
        updated = self.model_copy(deep=True)
        updated.signature.value = value
        return updated


class _DuplicateKey(Exception):
    def __init__(self, key: str):
        self.key = key


def _reject_duplicate_keys(pairs):
    result = {}
    for key, value in pairs:
        if key in result:
            raise _DuplicateKey(key)
        result[key] = value
    return result
