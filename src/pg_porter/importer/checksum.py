"""FNV-1a 64-bit digest used for chunk integrity checks."""

from pg_porter.errors import ChecksumMismatch

FNV64_OFFSET_BASIS = 0xCBF29CE484222325
FNV64_PRIME = 0x100000001B3
_MASK = 0xFFFFFFFFFFFFFFFF


def fnv1a64(data: bytes) -> str:
    """Return the FNV-1a 64 digest of ``data`` as 16 lowercase hex digits.

    Example:
        >>> fnv1a64(b"")
        'cbf29ce484222325'
    """
    h = FNV64_OFFSET_BASIS
    for byte in data:
        h ^= byte
        h = (h * FNV64_PRIME) & _MASK
    return f"{h:016x}"


def verify_chunk(data: bytes, expected: str) -> None:
    """Raise ``ChecksumMismatch`` unless ``data`` hashes to ``expected``."""
    received = fnv1a64(data)
    if received != expected.strip().lower():
        raise ChecksumMismatch(expected, received)
