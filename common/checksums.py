"""Content hashing helpers shared by uploads and the media library."""

import hashlib

HASH_BLOCK_SIZE = 65_536


def compute_sha256(data):
    """Return the hex-encoded SHA-256 digest of a bytes object."""
    return hashlib.sha256(data).hexdigest()


def compute_file_sha256(path, block_size=HASH_BLOCK_SIZE):
    """Compute the SHA-256 hash of a file on disk.

    Reads the file in 64 KB blocks so large videos are never loaded into
    memory at once.

    Args:
        path: Path to the file.
        block_size: Read size in bytes.

    Returns:
        Hex-encoded SHA-256 hash string (64 characters).

    Raises:
        OSError: If the file cannot be opened or read.
    """
    hasher = hashlib.sha256()
    with open(path, "rb") as fh:
        for block in iter(lambda: fh.read(block_size), b""):
            hasher.update(block)
    return hasher.hexdigest()


def checksums_match(expected, actual):
    """Compare two hex digests, ignoring case and surrounding whitespace."""
    return expected.strip().lower() == actual.strip().lower()
