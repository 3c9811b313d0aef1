"""
pkgseal CLI

Commands:
  keygen  - Generate a keypair for the manifest's declared algorithm
  sign    - Hash artifacts and sign a manifest with a secret key
  verify  - Verify a manifest signature and its artifacts

Exit codes: 0 ok, 1 verification failed, 2 usage/configuration error,
3 I/O error, 4 malformed key or signature.
"""

import argparse
import sys

import structlog

from . import __version__
from .config import LOG_FORMATS, SIGNATURE_MODES, Settings, configure_logging
from .core.engine import ManifestEngine
from .errors import ArtifactIOError, ConfigurationError, CryptoInputError, PkgSealError

logger = structlog.get_logger()

EXIT_OK = 0
EXIT_VERIFICATION_FAILED = 1
EXIT_CONFIG_ERROR = 2
EXIT_IO_ERROR = 3
EXIT_CRYPTO_INPUT_ERROR = 4


def cmd_keygen(engine: ManifestEngine, args) -> int:
    """Generate a keypair."""
    secret_path, public_path = engine.keygen(args.manifest, out_dir=args.out_dir, force=args.force)
    print(f"Generated keys: {secret_path}, {public_path}")
    return EXIT_OK


def cmd_sign(engine: ManifestEngine, args) -> int:
    """Sign a manifest and its artifacts."""
    outcome = engine.sign(
        args.manifest,
        args.secret_key,
        mode=args.mode,
        signature_path=args.signature_out,
    )
    for name, digest in outcome.artifact_hashes.items():
        print(f"  {name}: {digest}")
    if outcome.signature_path is not None:
        print(f"Signature written to: {outcome.signature_path}")
    else:
        print(f"Signature embedded in: {outcome.manifest_path}")
    return EXIT_OK


def cmd_verify(engine: ManifestEngine, args) -> int:
    """Verify a manifest."""
    report = engine.verify(args.manifest, args.public_key, signature_path=args.signature)

    if report.valid:
        print("Verification successful")
        print(f"  Algorithm: {report.algorithm}")
        print(f"  Key: {report.key_id} ({report.key_fingerprint})")
        return EXIT_OK

    print(f"Verification FAILED ({report.failed_phase}): {report.reason}")
    for failure in report.artifact_failures:
        print(f"  {failure.name} ({failure.path}): expected {failure.expected or '<none>'}, got {failure.actual}")
    return EXIT_VERIFICATION_FAILED


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pkgseal",
        description="pkgseal - sign and verify package manifests",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", help="Log level (env: PKGSEAL_LOG_LEVEL)")
    parser.add_argument("--log-format", choices=LOG_FORMATS, help="Log format (env: PKGSEAL_LOG_FORMAT)")
    parser.add_argument("--hash-workers", type=int, help="Threads used to read artifacts (env: PKGSEAL_HASH_WORKERS)")

    subparsers = parser.add_subparsers(dest="command", metavar="command")
    subparsers.required = True

    # keygen
    keygen_parser = subparsers.add_parser("keygen", help="Generate keypair")
    keygen_parser.add_argument("manifest", help="Manifest JSON file")
    keygen_parser.add_argument("--out-dir", help="Directory for key files (default: manifest directory)")
    keygen_parser.add_argument("--force", action="store_true", help="Overwrite existing key files")

    # sign
    sign_parser = subparsers.add_parser("sign", help="Sign manifest and artifacts")
    sign_parser.add_argument("manifest", help="Manifest JSON file")
    sign_parser.add_argument("secret_key", help="Secret key file")
    sign_parser.add_argument("--mode", choices=SIGNATURE_MODES, help="Signature placement (env: PKGSEAL_SIGNATURE_MODE)")
    sign_parser.add_argument("--signature-out", help="Detached signature path (default: package.sig)")

    # verify
    verify_parser = subparsers.add_parser("verify", help="Verify signature and artifacts")
    verify_parser.add_argument("manifest", help="Manifest JSON file")
    verify_parser.add_argument("public_key", help="Public key file")
    verify_parser.add_argument("--signature", help="Detached signature file (omit for embedded signatures)")

    return parser


COMMANDS = {
    "keygen": cmd_keygen,
    "sign": cmd_sign,
    "verify": cmd_verify,
}


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = Settings.from_env().override(
            log_level=args.log_level.upper() if args.log_level else None,
            log_format=args.log_format,
            hash_workers=args.hash_workers,
        )
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    configure_logging(settings.log_level, settings.log_format)
    engine = ManifestEngine(settings)

    try:
        return COMMANDS[args.command](engine, args)
    except ConfigurationError as e:
        logger.error("configuration_error", command=args.command, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except ArtifactIOError as e:
        logger.error("io_error", command=args.command, path=e.path, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_IO_ERROR
    except CryptoInputError as e:
        logger.error("crypto_input_error", command=args.command, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CRYPTO_INPUT_ERROR
    except PkgSealError as e:
        logger.error("pkgseal_error", command=args.command, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR


if __name__ == "__main__":
    sys.exit(main())
