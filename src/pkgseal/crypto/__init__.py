"""
Cryptographic Primitives for pkgseal

Supports:
- Ed25519 - Classical signatures over a SHA-512 pre-image
- ML-DSA-65 (Dilithium) - Post-quantum signatures (NIST FIPS 204) over a SHA3-512 pre-image
"""

from .canonical import canonical_bytes, canonical_json
from .hashing import ContentHasher, Sha3_512Hasher, Sha512Hasher
from .keys import read_key, write_keypair
from .signer import (
    SignatureAlgorithm,
    CryptoSigner,
    Ed25519Signer,
    MLDSASigner,
    KeyPair,
    get_signer,
    select_signer,
)

__all__ = [
    "canonical_bytes",
    "canonical_json",
    "ContentHasher",
    "Sha3_512Hasher",
    "Sha512Hasher",
    "read_key",
    "write_keypair",
    "SignatureAlgorithm",
    "CryptoSigner",
    "Ed25519Signer",
    "MLDSASigner",
    "KeyPair",
    "get_signer",
    "select_signer",
]
