"""
pkgseal core: manifest model, detached signatures and the manifest engine.
"""

from .engine import ArtifactMismatch, ManifestEngine, SignOutcome, VerificationReport
from .manifest import ArtifactEntry, Manifest, PackageInfo, SignatureMetadata
from .signature import DetachedSignature

__all__ = [
    "ArtifactMismatch",
    "ManifestEngine",
    "SignOutcome",
    "VerificationReport",
    "ArtifactEntry",
    "Manifest",
    "PackageInfo",
    "SignatureMetadata",
    "DetachedSignature",
]
