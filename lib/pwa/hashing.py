# =============================================================================
# lib/pwa/hashing.py - Deterministic Bucketing Hash
# =============================================================================
# 32-bit FNV-1a over UTF-16 code units, so a given identifier lands in the
# same bucket as it does in the browser client.
# =============================================================================

FNV_OFFSET_BASIS = 0x811C9DC5
FNV_PRIME = 0x01000193


def _utf16_units(value: str):
    encoded = value.encode("utf-16-le", "surrogatepass")
    for index in range(0, len(encoded), 2):
        yield encoded[index] | (encoded[index + 1] << 8)


def fnv1a_32(value: str) -> int:
    """
    Hash a string with 32-bit FNV-1a.

    Example:
        fnv1a_32("")  # 0x811c9dc5
        fnv1a_32("a") # 0xe40c292c
    """
    hash_value = FNV_OFFSET_BASIS
    for unit in _utf16_units(value):
        hash_value ^= unit
        hash_value = (hash_value * FNV_PRIME) & 0xFFFFFFFF
    return hash_value


def bucket_for(value: str, buckets: int) -> int:
    """Map a value to one of `buckets` stable buckets."""
    return fnv1a_32(value) % buckets
