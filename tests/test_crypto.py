"""
Tests for Cryptographic Primitives

Tests Ed25519 and ML-DSA-65 signers and the signer factory.
"""

import pytest

from pkgseal.crypto.signer import (
    SignatureAlgorithm,
    Ed25519Signer,
    MLDSASigner,
    get_signer,
    select_signer,
)
from pkgseal.crypto.hashing import Sha3_512Hasher, Sha512Hasher
from pkgseal.errors import (
    ConfigurationError,
    KeyFormatError,
    SignatureFormatError,
    UnsupportedAlgorithmError,
)

from conftest import requires_liboqs


def flip_bit(data: bytes, index: int, bit: int = 0) -> bytes:
    tampered = bytearray(data)
    tampered[index] ^= 1 << bit
    return bytes(tampered)


class TestEd25519Signer:
    """Test Ed25519 signature implementation."""

    def test_generate_key_pair(self):
        """Keys are DER encoded PKCS#8 / SPKI."""
        keypair = Ed25519Signer().generate_keys()

        # SPKI for Ed25519 is a 12 byte header + 32 byte key
        assert len(keypair.public_key) == 44
        assert keypair.public_key[0] == 0x30
        assert keypair.secret_key[0] == 0x30

    def test_keys_load_with_standard_tooling(self):
        """Generated keys are consumable by the cryptography loaders."""
        from cryptography.hazmat.primitives import serialization
        from cryptography.hazmat.primitives.asymmetric import ed25519

        keypair = Ed25519Signer().generate_keys()

        private = serialization.load_der_private_key(keypair.secret_key, password=None)
        public = serialization.load_der_public_key(keypair.public_key)
        assert isinstance(private, ed25519.Ed25519PrivateKey)
        assert isinstance(public, ed25519.Ed25519PublicKey)

    def test_sign_and_verify(self):
        """Signature should verify correctly."""
        signer = Ed25519Signer()
        keypair = signer.generate_keys()
        data = b'{"package":{"id":"x"}}'

        signature = signer.sign(data, keypair.secret_key)

        assert len(signature) == 64
        assert signer.verify(data, signature, keypair.public_key) is True

    def test_signature_is_deterministic(self):
        """Ed25519 produces the same signature for the same key and payload."""
        signer = Ed25519Signer()
        keypair = signer.generate_keys()

        assert signer.sign(b"payload", keypair.secret_key) == signer.sign(b"payload", keypair.secret_key)

    def test_signs_sha512_preimage(self):
        """The primitive signs the SHA-512 digest, not the raw payload."""
        from cryptography.hazmat.primitives import serialization

        signer = Ed25519Signer()
        keypair = signer.generate_keys()
        signature = signer.sign(b"payload", keypair.secret_key)

        public = serialization.load_der_public_key(keypair.public_key)
        public.verify(signature, Sha512Hasher().digest_bytes(b"payload"))

    def test_wrong_data_fails_verification(self):
        """Wrong data should fail verification."""
        signer = Ed25519Signer()
        keypair = signer.generate_keys()

        signature = signer.sign(b"original message", keypair.secret_key)

        assert signer.verify(b"different message", signature, keypair.public_key) is False

    def test_every_single_bit_flip_fails(self):
        """Flipping any one bit of the signature makes it invalid."""
        signer = Ed25519Signer()
        keypair = signer.generate_keys()
        data = b"test message"
        signature = signer.sign(data, keypair.secret_key)

        for index in range(len(signature)):
            for bit in (0, 7):
                tampered = flip_bit(signature, index, bit)
                assert signer.verify(data, tampered, keypair.public_key) is False

    def test_other_keypair_fails(self):
        """A public key from another keypair does not verify."""
        signer = Ed25519Signer()
        keypair = signer.generate_keys()
        other = signer.generate_keys()

        signature = signer.sign(b"test", keypair.secret_key)

        assert signer.verify(b"test", signature, other.public_key) is False

    def test_wrong_length_signature_raises(self):
        """A truncated signature is malformed input, not a failed check."""
        signer = Ed25519Signer()
        keypair = signer.generate_keys()
        signature = signer.sign(b"test", keypair.secret_key)

        with pytest.raises(SignatureFormatError):
            signer.verify(b"test", signature[:-1], keypair.public_key)

    def test_malformed_keys_raise(self):
        """Garbage key bytes raise KeyFormatError."""
        signer = Ed25519Signer()
        keypair = signer.generate_keys()
        signature = signer.sign(b"test", keypair.secret_key)

        with pytest.raises(KeyFormatError):
            signer.sign(b"test", b"not a key")
        with pytest.raises(KeyFormatError):
            signer.verify(b"test", signature, b"\x00" * 44)

    def test_secret_key_rejected_as_public_key(self):
        """Swapping the key halves is a key format error."""
        signer = Ed25519Signer()
        keypair = signer.generate_keys()
        signature = signer.sign(b"test", keypair.secret_key)

        with pytest.raises(KeyFormatError):
            signer.verify(b"test", signature, keypair.secret_key)

    def test_sign_files_and_verify_files(self, tmp_path):
        """File set signing is independent of argument order."""
        a = tmp_path / "a.bin"
        b = tmp_path / "b.bin"
        a.write_bytes(b"alpha")
        b.write_bytes(b"beta")
        signer = Ed25519Signer()
        keypair = signer.generate_keys()

        signature = signer.sign_files([b, a], keypair.secret_key)

        assert signer.verify_files([a, b], signature, keypair.public_key) is True
        assert signer.verify_files([a, b], signature, keypair.public_key, max_workers=2) is True

        b.write_bytes(b"betA")
        assert signer.verify_files([a, b], signature, keypair.public_key) is False


class TestMLDSASigner:
    """Test ML-DSA-65 signature implementation."""

    def test_uses_sha3_512(self):
        """Post-quantum pre-image uses the SHA3 family."""
        assert isinstance(MLDSASigner.hasher, Sha3_512Hasher)
        assert isinstance(Ed25519Signer.hasher, Sha512Hasher)

    @requires_liboqs
    def test_sign_and_verify(self):
        """Round trip with liboqs-sized keys."""
        signer = MLDSASigner()
        keypair = signer.generate_keys()
        data = b"test message"

        # Kilobyte-scale material, sizes taken from liboqs
        assert len(keypair.public_key) > 1000
        assert len(keypair.secret_key) > 1000

        signature = signer.sign(data, keypair.secret_key)

        assert len(signature) == signer.signature_length
        assert signer.verify(data, signature, keypair.public_key) is True

    @requires_liboqs
    def test_wrong_data_fails(self):
        """Wrong data should fail ML-DSA verification."""
        signer = MLDSASigner()
        keypair = signer.generate_keys()
        signature = signer.sign(b"original", keypair.secret_key)

        assert signer.verify(b"different", signature, keypair.public_key) is False

    @requires_liboqs
    def test_bit_flips_fail(self):
        """Tampered signature should fail."""
        signer = MLDSASigner()
        keypair = signer.generate_keys()
        data = b"test message"
        signature = signer.sign(data, keypair.secret_key)

        for index in (0, 10, len(signature) // 2, len(signature) - 1):
            assert signer.verify(data, flip_bit(signature, index), keypair.public_key) is False

    @requires_liboqs
    def test_other_keypair_fails(self):
        """A public key from another keypair does not verify."""
        signer = MLDSASigner()
        keypair = signer.generate_keys()
        other = signer.generate_keys()
        signature = signer.sign(b"test", keypair.secret_key)

        assert signer.verify(b"test", signature, other.public_key) is False

    @requires_liboqs
    def test_malformed_input_raises(self):
        """Wrong-length keys and signatures raise instead of verifying."""
        signer = MLDSASigner()
        keypair = signer.generate_keys()
        signature = signer.sign(b"test", keypair.secret_key)

        with pytest.raises(SignatureFormatError):
            signer.verify(b"test", signature[:64], keypair.public_key)
        with pytest.raises(KeyFormatError):
            signer.verify(b"test", signature, keypair.public_key[:32])
        with pytest.raises(KeyFormatError):
            signer.sign(b"test", b"short")

    @requires_liboqs
    def test_sign_files(self, tmp_path):
        """File set signing works for the post-quantum signer too."""
        a = tmp_path / "a.bin"
        a.write_bytes(b"alpha")
        signer = MLDSASigner()
        keypair = signer.generate_keys()

        signature = signer.sign_files([a], keypair.secret_key)

        assert signer.verify_files([a], signature, keypair.public_key) is True


class TestGetSigner:
    """Test the signer factory and type string mapping."""

    def test_get_ed25519_signer(self):
        """Factory should return Ed25519 signer."""
        signer = get_signer(SignatureAlgorithm.ED25519)

        assert signer.algorithm == SignatureAlgorithm.ED25519
        assert isinstance(signer, Ed25519Signer)

    def test_get_mldsa_signer(self):
        """Factory should return ML-DSA signer."""
        signer = get_signer(SignatureAlgorithm.ML_DSA_65)

        assert signer.algorithm == SignatureAlgorithm.ML_DSA_65
        assert signer.algorithm.is_pqc is True
        assert isinstance(signer, MLDSASigner)

    @pytest.mark.parametrize("declared,expected", [
        ("ed25519", SignatureAlgorithm.ED25519),
        ("classical", SignatureAlgorithm.ED25519),
        ("Ed25519", SignatureAlgorithm.ED25519),
        ("ml-dsa-65", SignatureAlgorithm.ML_DSA_65),
        ("ML-DSA-65", SignatureAlgorithm.ML_DSA_65),
        ("post-quantum", SignatureAlgorithm.ML_DSA_65),
        ("postquantum", SignatureAlgorithm.ML_DSA_65),
    ])
    def test_declared_types(self, declared, expected):
        """Declared type strings map to exactly one algorithm."""
        assert SignatureAlgorithm.parse(declared) is expected
        assert select_signer(declared).algorithm is expected

    @pytest.mark.parametrize("declared", ["rsa-9999", "", "ed448", "ml-dsa-87", None, 7])
    def test_unknown_types_are_configuration_errors(self, declared):
        """No silent fallback to a default algorithm."""
        with pytest.raises(UnsupportedAlgorithmError) as exc:
            select_signer(declared)

        assert isinstance(exc.value, ConfigurationError)
