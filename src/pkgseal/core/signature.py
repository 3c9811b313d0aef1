"""
Detached signature artifact.

Self-describing JSON so a verifier can pick the signer without reading the
manifest's own signature block:

    {"type": "ed25519", "keyId": "release-2026", "value": "<base64>"}
"""

import json
from pathlib import Path

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..crypto.keys import from_b64, read_text, to_b64, write_text_atomic
from ..errors import ManifestFormatError, SignatureFormatError

logger = structlog.get_logger()

DEFAULT_SIGNATURE_NAME = "package.sig"


class DetachedSignature(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str
    key_id: str = Field(..., alias="keyId")
    value: str

    @classmethod
    def create(cls, algorithm_type: str, key_id: str, signature: bytes) -> "DetachedSignature":
        return cls(type=algorithm_type, key_id=key_id, value=to_b64(signature))

    @classmethod
    def load(cls, path) -> "DetachedSignature":
        text = read_text(path)
        try:
            return cls.model_validate(json.loads(text))
        except (json.JSONDecodeError, ValidationError) as e:
            raise ManifestFormatError(f"{path}: invalid signature file: {e}") from e

    def save(self, path) -> Path:
        written = write_text_atomic(path, self.model_dump_json(by_alias=True, indent=2) + "\n")
        logger.info("detached_signature_written", path=str(written), key_id=self.key_id)
        return written

    def signature_bytes(self) -> bytes:
        return from_b64(self.value, SignatureFormatError, "signature")
