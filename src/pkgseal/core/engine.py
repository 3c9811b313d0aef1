"""
Manifest Engine

Three independent operations, each parsing the manifest afresh:

- keygen: manifest -> signer -> keypair files named after keyId
- sign:   manifest -> signer -> artifact hashes -> canonical payload -> signature
- verify: phase 1 checks the signature over the canonical payload; only if it
          holds, phase 2 recomputes every artifact hash

The signed payload is always the canonical JSON of the manifest without
signature.value, so artifact hashes are bound into the signature.
"""

import hmac
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog

from ..config import SIGNATURE_MODES, Settings
from ..crypto.keys import from_b64, read_key, to_b64, write_keypair
from ..crypto.signer import CryptoSigner, SignatureAlgorithm, get_signer, select_signer
from ..errors import ConfigurationError, SignatureFormatError
from .manifest import Manifest
from .signature import DEFAULT_SIGNATURE_NAME, DetachedSignature

logger = structlog.get_logger()


@dataclass
class ArtifactMismatch:
    """An artifact whose current content no longer matches its recorded hash."""
    name: str
    path: str
    expected: Optional[str]
    actual: str


@dataclass
class VerificationReport:
    """
    Outcome of a verification.

    valid is True only when the signature holds AND every artifact matches.
    artifacts_checked stays False when phase 1 already failed.
    """
    valid: bool
    algorithm: Optional[str]
    key_id: str
    signature_valid: Optional[bool] = None
    artifacts_checked: bool = False
    artifact_failures: List[ArtifactMismatch] = field(default_factory=list)
    reason: Optional[str] = None
    key_fingerprint: Optional[str] = None

    @property
    def failed_phase(self) -> Optional[str]:
        if self.valid:
            return None
        if self.artifacts_checked:
            return "artifacts"
        return "signature"

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result["failed_phase"] = self.failed_phase
        return result


@dataclass
class SignOutcome:
    """Where a sign operation left its results."""
    manifest_path: Path
    mode: str
    algorithm: str
    key_id: str
    artifact_hashes: Dict[str, str]
    signature_path: Optional[Path] = None


class ManifestEngine:
    """Orchestrates keygen / sign / verify over manifest files."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def hash_artifacts(self, manifest: Manifest, base_dir, signer: CryptoSigner) -> Manifest:
        """Return a copy of the manifest with current artifact hashes recorded."""
        digests = self._digest_artifacts(manifest.artifact_files(base_dir), signer)
        return manifest.with_artifact_hashes(digests)

    def check_artifacts(
        self,
        manifest: Manifest,
        base_dir,
        signer: CryptoSigner,
    ) -> List[ArtifactMismatch]:
        """Recompute every artifact hash and list the ones that differ."""
        files = manifest.artifact_files(base_dir)
        current = self._digest_artifacts(files, signer)

        failures = []
        for name, path in files:
            expected = manifest.artifacts[name].hash
            actual = current[name]
            if expected is None or not hmac.compare_digest(expected, actual):
                failures.append(ArtifactMismatch(
                    name=name,
                    path=str(path),
                    expected=expected,
                    actual=actual,
                ))
                logger.warning(
                    "artifact_hash_mismatch",
                    artifact=name,
                    path=str(path),
                    expected=expected,
                    actual=actual,
                )
        return failures

    def _digest_artifacts(
        self,
        files: Sequence[Tuple[str, Path]],
        signer: CryptoSigner,
    ) -> Dict[str, str]:
        paths = [path for _, path in files]
        workers = self.settings.hash_workers

        if workers > 1 and len(paths) > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                digests = list(pool.map(signer.hasher.digest_file, paths))
        else:
            digests = [signer.hasher.digest_file(path) for path in paths]

        return {name: digest.hex() for (name, _), digest in zip(files, digests)}

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def keygen(self, manifest_path, out_dir=None, force: bool = False) -> Tuple[Path, Path]:
        """Generate a keypair for the manifest's declared algorithm and key id."""
        manifest_path = Path(manifest_path)
        manifest = Manifest.load(manifest_path)
        signer = select_signer(manifest.signature.type)

        keypair = signer.generate_keys()
        directory = Path(out_dir) if out_dir is not None else manifest_path.parent
        paths = write_keypair(directory, manifest.signature.key_id, keypair, overwrite=force)

        logger.info(
            "keypair_generated",
            algorithm=signer.algorithm.value,
            key_id=manifest.signature.key_id,
            fingerprint=signer.fingerprint(keypair.public_key),
        )
        return paths

    def sign(
        self,
        manifest_path,
        secret_key_path,
        mode: Optional[str] = None,
        signature_path=None,
    ) -> SignOutcome:
        """
        Hash artifacts, sign the canonical payload and persist the result.

        The manifest is always rewritten because it now carries the artifact
        hashes. Detached mode also writes a signature file; embedded mode puts
        the signature into signature.value.
        """
        mode = mode or self.settings.signature_mode
        if mode not in SIGNATURE_MODES:
            raise ConfigurationError(f"Invalid signature mode {mode!r}, use one of {list(SIGNATURE_MODES)}")

        manifest_path = Path(manifest_path)
        manifest = Manifest.load(manifest_path)
        signer = select_signer(manifest.signature.type)
        secret_key = read_key(secret_key_path, what="secret key")

        base_dir = manifest_path.parent
        hashed = self.hash_artifacts(manifest, base_dir, signer).with_signature_value(None)
        signature = signer.sign(hashed.signable_payload(), secret_key)

        outcome = SignOutcome(
            manifest_path=manifest_path,
            mode=mode,
            algorithm=signer.algorithm.value,
            key_id=manifest.signature.key_id,
            artifact_hashes={name: entry.hash for name, entry in sorted(hashed.artifacts.items())},
        )

        if mode == "embedded":
            hashed.with_signature_value(to_b64(signature)).save(manifest_path)
        else:
            hashed.save(manifest_path)
            target = Path(signature_path) if signature_path is not None else base_dir / DEFAULT_SIGNATURE_NAME
            DetachedSignature.create(
                signer.algorithm.value,
                manifest.signature.key_id,
                signature,
            ).save(target)
            outcome.signature_path = target

        logger.info(
            "manifest_signed",
            manifest=str(manifest_path),
            package_id=manifest.package.id,
            algorithm=signer.algorithm.value,
            key_id=manifest.signature.key_id,
            artifacts=len(hashed.artifacts),
            mode=mode,
        )
        return outcome

    def verify(self, manifest_path, public_key_path, signature_path=None) -> VerificationReport:
        """
        Two-phase verification.

        Returns a report for "checked and invalid"; raises for "could not
        check" (configuration, I/O or malformed key material).
        """
        manifest_path = Path(manifest_path)
        manifest = Manifest.load(manifest_path)
        declared = SignatureAlgorithm.parse(manifest.signature.type)

        if signature_path is not None:
            detached = DetachedSignature.load(signature_path)
            algorithm = SignatureAlgorithm.parse(detached.type)
            key_id = detached.key_id
            signature = detached.signature_bytes()
        else:
            if manifest.signature.value is None:
                raise ConfigurationError(
                    f"{manifest_path}: no embedded signature; supply a detached signature file"
                )
            algorithm = declared
            key_id = manifest.signature.key_id
            signature = from_b64(manifest.signature.value, SignatureFormatError, "signature")

        signer = get_signer(algorithm)
        report = VerificationReport(valid=False, algorithm=algorithm.value, key_id=key_id)

        if algorithm is not declared:
            return self._reject(report, (
                f"signature algorithm {algorithm.value} does not match "
                f"manifest declaration {declared.value}"
            ))
        if key_id != manifest.signature.key_id:
            return self._reject(report, (
                f"signature key id {key_id!r} does not match "
                f"manifest key id {manifest.signature.key_id!r}"
            ))
        if len(signature) != signer.signature_length:
            return self._reject(report, (
                f"signature is {len(signature)} bytes, {algorithm.value} "
                f"signatures are {signer.signature_length}"
            ))

        public_key = read_key(public_key_path, what="public key")
        report.key_fingerprint = signer.fingerprint(public_key)

        # Phase 1: signature over the canonical payload
        report.signature_valid = signer.verify(manifest.signable_payload(), signature, public_key)
        if not report.signature_valid:
            return self._reject(report, "signature does not match manifest payload")

        # Phase 2: recorded artifact hashes against current content
        report.artifact_failures = self.check_artifacts(manifest, manifest_path.parent, signer)
        report.artifacts_checked = True
        if report.artifact_failures:
            names = ", ".join(f.name for f in report.artifact_failures)
            return self._reject(report, f"artifact hash mismatch: {names}")

        report.valid = True
        logger.info(
            "manifest_verified",
            manifest=str(manifest_path),
            algorithm=algorithm.value,
            key_id=key_id,
            fingerprint=report.key_fingerprint,
            artifacts=len(manifest.artifacts),
        )
        return report

    @staticmethod
    def _reject(report: VerificationReport, reason: str) -> VerificationReport:
        report.valid = False
        report.reason = reason
        logger.warning(
            "verification_failed",
            algorithm=report.algorithm,
            key_id=report.key_id,
            phase=report.failed_phase,
            reason=reason,
        )
        return report
