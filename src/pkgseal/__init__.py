"""
pkgseal - signed package manifests

Hashes the artifacts a manifest references, signs the canonical manifest
with Ed25519 or ML-DSA-65, and verifies both the signature and the
artifacts later.
"""

__version__ = "0.3.0"

from .config import Settings, configure_logging
from .core import ManifestEngine, VerificationReport

__all__ = [
    "__version__",
    "Settings",
    "configure_logging",
    "ManifestEngine",
    "VerificationReport",
]
