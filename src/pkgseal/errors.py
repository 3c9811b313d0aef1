"""
Error taxonomy for pkgseal.

Configuration and I/O problems mean "could not check". Verification
failures are never raised; they are reported through VerificationReport.
"""

from typing import Optional


class PkgSealError(Exception):
    """Base class for all pkgseal errors."""


class ConfigurationError(PkgSealError):
    """Bad settings, bad manifest or an unsupported algorithm."""


class UnsupportedAlgorithmError(ConfigurationError):
    """Declared signature type is not one of the supported algorithms."""

    def __init__(self, declared: str):
        self.declared = declared
        super().__init__(f"Unsupported signature type: {declared!r}")


class ManifestFormatError(ConfigurationError):
    """Manifest could not be parsed or is missing required fields."""


class CanonicalizationError(ConfigurationError):
    """Payload contains values with no canonical encoding."""


class ArtifactIOError(PkgSealError):
    """A file could not be read or written."""

    def __init__(self, path, reason: Optional[str] = None):
        self.path = str(path)
        self.reason = reason
        message = f"I/O error on {self.path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class CryptoInputError(PkgSealError):
    """Malformed key or signature material."""


class KeyFormatError(CryptoInputError):
    """Key bytes do not decode to a key of the expected algorithm."""


class SignatureFormatError(CryptoInputError):
    """Signature bytes are undecodable or have the wrong length."""
