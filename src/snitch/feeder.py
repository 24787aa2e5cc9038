"""Turn a directory of files into samples."""

from __future__ import annotations

import hashlib
from collections.abc import Iterator
from pathlib import Path

from snitch.errors import ConfigError
from snitch.models import Sample

ALGORITHMS = ("md5", "sha1", "sha256")
BLOCK_SIZE = 64 * 1024


def hash_file(path: Path, algorithm: str = "md5") -> str:
    if algorithm not in ALGORITHMS:
        raise ConfigError(f"Unsupported hash algorithm '{algorithm}' (use {', '.join(ALGORITHMS)})")
    digest = hashlib.new(algorithm)
    with path.open("rb") as fh:
        for block in iter(lambda: fh.read(BLOCK_SIZE), b""):
            digest.update(block)
    return digest.hexdigest()


def iter_directory(directory: Path, algorithm: str = "md5") -> Iterator[Sample]:
    """Yield a sample per regular file directly under ``directory``, sorted by name."""
    if not directory.is_dir():
        raise ConfigError(f"Not a directory: {directory}")
    for path in sorted(directory.iterdir()):
        if path.is_file():
            yield Sample(name=path.name, hash=hash_file(path, algorithm))
