"""
Content hashing for signature pre-images and artifact digests.

Each signer owns exactly one hasher class:
- Sha512Hasher   - classical (Ed25519) pre-image
- Sha3_512Hasher - post-quantum (ML-DSA-65) pre-image

Multi-file digests always feed files in sorted path order, so the result
never depends on argument or directory enumeration order.
"""

import hashlib
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Iterator, List, Sequence, Union

import structlog

from ..errors import ArtifactIOError

logger = structlog.get_logger()

PathLike = Union[str, "os.PathLike[str]"]

CHUNK_SIZE = 1024 * 1024


def read_file_bytes(path: PathLike) -> bytes:
    """Read a whole file, wrapping OS errors with the offending path."""
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        raise ArtifactIOError(path, e.strerror or str(e)) from e


def sorted_paths(paths: Iterable[PathLike]) -> List[PathLike]:
    """Sort paths lexically by their string form."""
    return sorted(paths, key=os.fspath)


class ContentHasher:
    """Base class binding a hash construction to a name."""

    name: str = ""

    def new(self):
        raise NotImplementedError

    def digest_bytes(self, data: bytes) -> bytes:
        h = self.new()
        h.update(data)
        return h.digest()

    def digest_file(self, path: PathLike) -> bytes:
        """Streaming digest of a single file."""
        h = self.new()
        try:
            with open(path, "rb") as f:
                for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
                    h.update(chunk)
        except OSError as e:
            raise ArtifactIOError(path, e.strerror or str(e)) from e
        return h.digest()

    def digest_files(self, paths: Sequence[PathLike], max_workers: int = 1) -> bytes:
        """
        Digest the concatenated contents of several files.

        Reads may run on a thread pool; updates are applied strictly in
        sorted path order.
        """
        ordered = sorted_paths(paths)
        h = self.new()
        for content in self._read_in_order(ordered, max_workers):
            h.update(content)

        logger.debug("files_digested", hasher=self.name, count=len(ordered))
        return h.digest()

    @staticmethod
    def _read_in_order(paths: List[PathLike], max_workers: int) -> Iterator[bytes]:
        if max_workers <= 1 or len(paths) <= 1:
            for path in paths:
                yield read_file_bytes(path)
            return

        # Executor.map yields results in input order regardless of completion order.
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            yield from pool.map(read_file_bytes, paths)


class Sha512Hasher(ContentHasher):
    name = "sha512"

    def new(self):
        return hashlib.sha512()


class Sha3_512Hasher(ContentHasher):
    name = "sha3-512"

    def new(self):
        return hashlib.sha3_512()
