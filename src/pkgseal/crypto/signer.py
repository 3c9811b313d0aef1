"""
Package Signing Implementation

Supports:
- Ed25519 via the cryptography library - classical, SHA-512 pre-image
- ML-DSA-65 via liboqs - post-quantum (NIST FIPS 204), SHA3-512 pre-image

Signers hold no key state: keys are passed in per call, so one signer
instance can serve any number of keypairs.
"""

import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Sequence

import structlog

from ..errors import KeyFormatError, SignatureFormatError, UnsupportedAlgorithmError
from .hashing import ContentHasher, PathLike, Sha3_512Hasher, Sha512Hasher

logger = structlog.get_logger()


class SignatureAlgorithm(Enum):
    """Supported signature algorithms."""
    ED25519 = "ed25519"
    ML_DSA_65 = "ml-dsa-65"

    @classmethod
    def parse(cls, declared: str) -> "SignatureAlgorithm":
        """Map a declared type string to an algorithm, or fail."""
        if not isinstance(declared, str):
            raise UnsupportedAlgorithmError(repr(declared))
        algorithm = _ALIASES.get(declared.strip().lower())
        if algorithm is None:
            raise UnsupportedAlgorithmError(declared)
        return algorithm

    @property
    def is_pqc(self) -> bool:
        return self is SignatureAlgorithm.ML_DSA_65


_ALIASES: Dict[str, SignatureAlgorithm] = {
    "ed25519": SignatureAlgorithm.ED25519,
    "classical": SignatureAlgorithm.ED25519,
    "ml-dsa-65": SignatureAlgorithm.ML_DSA_65,
    "post-quantum": SignatureAlgorithm.ML_DSA_65,
    "postquantum": SignatureAlgorithm.ML_DSA_65,
}


@dataclass(frozen=True)
class KeyPair:
    """A freshly generated key pair; both halves are opaque bytes."""
    secret_key: bytes
    public_key: bytes

    def __repr__(self) -> str:
        return f"KeyPair(public_key=<{len(self.public_key)} bytes>, secret_key=<redacted>)"


class CryptoSigner(ABC):
    """Abstract base class for package signers."""

    hasher: ContentHasher

    @property
    @abstractmethod
    def algorithm(self) -> SignatureAlgorithm:
        """Get the signature algorithm."""
        pass

    @property
    @abstractmethod
    def signature_length(self) -> int:
        """Length in bytes of the signatures this algorithm emits."""
        pass

    @abstractmethod
    def generate_keys(self) -> KeyPair:
        """Generate a fresh key pair."""
        pass

    @abstractmethod
    def _sign_digest(self, digest: bytes, secret_key: bytes) -> bytes:
        pass

    @abstractmethod
    def _verify_digest(self, digest: bytes, signature: bytes, public_key: bytes) -> bool:
        pass

    def sign(self, payload: bytes, secret_key: bytes) -> bytes:
        """Sign the hasher digest of a canonical payload."""
        return self._sign_digest(self.hasher.digest_bytes(payload), secret_key)

    def verify(self, payload: bytes, signature: bytes, public_key: bytes) -> bool:
        """
        Verify a signature over a canonical payload.

        Returns False for a well-formed but wrong signature. Raises
        SignatureFormatError / KeyFormatError for malformed input.
        """
        self._check_signature_length(signature)
        return self._verify_digest(self.hasher.digest_bytes(payload), signature, public_key)

    def sign_files(self, paths: Sequence[PathLike], secret_key: bytes, max_workers: int = 1) -> bytes:
        """Sign the aggregate digest of a file set (sorted by path)."""
        digest = self.hasher.digest_files(paths, max_workers=max_workers)
        return self._sign_digest(digest, secret_key)

    def verify_files(
        self,
        paths: Sequence[PathLike],
        signature: bytes,
        public_key: bytes,
        max_workers: int = 1,
    ) -> bool:
        """Verify a signature over the aggregate digest of a file set."""
        self._check_signature_length(signature)
        digest = self.hasher.digest_files(paths, max_workers=max_workers)
        return self._verify_digest(digest, signature, public_key)

    @staticmethod
    def fingerprint(public_key: bytes) -> str:
        """Short identifier for a public key, for logs and reports."""
        return hashlib.sha256(public_key).hexdigest()[:16]

    def _check_signature_length(self, signature: bytes) -> None:
        if len(signature) != self.signature_length:
            raise SignatureFormatError(
                f"{self.algorithm.value} signature must be {self.signature_length} bytes, "
                f"got {len(signature)}"
            )


class Ed25519Signer(CryptoSigner):
    """
    Ed25519 signer using the cryptography library.

    Keys are PKCS#8 DER (secret) and SubjectPublicKeyInfo DER (public).
    """

    hasher = Sha512Hasher()
    SIGNATURE_LENGTH = 64

    @property
    def algorithm(self) -> SignatureAlgorithm:
        return SignatureAlgorithm.ED25519

    @property
    def signature_length(self) -> int:
        return self.SIGNATURE_LENGTH

    def generate_keys(self) -> KeyPair:
        from cryptography.hazmat.primitives import serialization
        from cryptography.hazmat.primitives.asymmetric import ed25519

        private_key = ed25519.Ed25519PrivateKey.generate()
        secret_der = private_key.private_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        public_der = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        return KeyPair(secret_key=secret_der, public_key=public_der)

    def _sign_digest(self, digest: bytes, secret_key: bytes) -> bytes:
        return self._load_private_key(secret_key).sign(digest)

    def _verify_digest(self, digest: bytes, signature: bytes, public_key: bytes) -> bool:
        from cryptography.exceptions import InvalidSignature

        key = self._load_public_key(public_key)
        try:
            key.verify(signature, digest)
            return True
        except InvalidSignature:
            return False

    @staticmethod
    def _load_private_key(secret_key: bytes):
        from cryptography.exceptions import UnsupportedAlgorithm
        from cryptography.hazmat.primitives import serialization
        from cryptography.hazmat.primitives.asymmetric import ed25519

        try:
            key = serialization.load_der_private_key(secret_key, password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise KeyFormatError(f"Invalid Ed25519 secret key: {e}") from e
        if not isinstance(key, ed25519.Ed25519PrivateKey):
            raise KeyFormatError(f"Expected an Ed25519 secret key, got {type(key).__name__}")
        return key

    @staticmethod
    def _load_public_key(public_key: bytes):
        from cryptography.exceptions import UnsupportedAlgorithm
        from cryptography.hazmat.primitives import serialization
        from cryptography.hazmat.primitives.asymmetric import ed25519

        try:
            key = serialization.load_der_public_key(public_key)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise KeyFormatError(f"Invalid Ed25519 public key: {e}") from e
        if not isinstance(key, ed25519.Ed25519PublicKey):
            raise KeyFormatError(f"Expected an Ed25519 public key, got {type(key).__name__}")
        return key


class MLDSASigner(CryptoSigner):
    """
    ML-DSA-65 (Dilithium) post-quantum signer via liboqs.

    Key and signature sizes are whatever liboqs reports for the mechanism;
    nothing here assumes a fixed length.
    """

    hasher = Sha3_512Hasher()
    ALGORITHM_NAME = "ML-DSA-65"

    @property
    def algorithm(self) -> SignatureAlgorithm:
        return SignatureAlgorithm.ML_DSA_65

    @property
    def signature_length(self) -> int:
        return self._details()["length_signature"]

    def _mechanism(self, secret_key: Optional[bytes] = None):
        import oqs
        return oqs.Signature(self.ALGORITHM_NAME, secret_key)

    def _details(self) -> Dict[str, int]:
        with self._mechanism() as sig:
            return {
                "length_public_key": int(sig.length_public_key),
                "length_secret_key": int(sig.length_secret_key),
                "length_signature": int(sig.length_signature),
            }

    def generate_keys(self) -> KeyPair:
        with self._mechanism() as sig:
            public_key = bytes(sig.generate_keypair())
            secret_key = bytes(sig.export_secret_key())
        return KeyPair(secret_key=secret_key, public_key=public_key)

    def _sign_digest(self, digest: bytes, secret_key: bytes) -> bytes:
        expected = self._details()["length_secret_key"]
        if len(secret_key) != expected:
            raise KeyFormatError(
                f"ML-DSA-65 secret key must be {expected} bytes, got {len(secret_key)}"
            )
        with self._mechanism(secret_key) as sig:
            return bytes(sig.sign(digest))

    def _verify_digest(self, digest: bytes, signature: bytes, public_key: bytes) -> bool:
        expected = self._details()["length_public_key"]
        if len(public_key) != expected:
            raise KeyFormatError(
                f"ML-DSA-65 public key must be {expected} bytes, got {len(public_key)}"
            )
        with self._mechanism() as sig:
            return bool(sig.verify(digest, signature, public_key))


_SIGNERS = {
    SignatureAlgorithm.ED25519: Ed25519Signer,
    SignatureAlgorithm.ML_DSA_65: MLDSASigner,
}


def get_signer(algorithm: SignatureAlgorithm) -> CryptoSigner:
    """
    Factory function to get a signer instance.

    Args:
        algorithm: Which algorithm to use

    Returns:
        CryptoSigner instance
    """
    try:
        signer_cls = _SIGNERS[algorithm]
    except KeyError:
        raise UnsupportedAlgorithmError(str(algorithm)) from None
    return signer_cls()


def select_signer(declared: str) -> CryptoSigner:
    """Signer for a declared type string such as "ed25519" or "classical"."""
    algorithm = SignatureAlgorithm.parse(declared)
    signer = get_signer(algorithm)
    logger.debug("signer_selected", declared=declared, algorithm=algorithm.value)
    return signer
