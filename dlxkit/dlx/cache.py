"""
Cache key generation for installation slots.

Every package spec (``name@version``) and every binary download
(``url:name``) maps to one directory under the dlx root. The key is the
first 16 hex characters of the SHA-512 of the spec string, the same
scheme npx uses for its own cache, which keeps paths short enough for
Windows MAX_PATH.
"""

import hashlib

CACHE_KEY_LENGTH = 16


def generate_cache_key(spec: str) -> str:
    """
    Generate the cache directory name for a spec string.

    Example:
        >>> len(generate_cache_key("left-pad@1.3.0"))
        16
    """
    return hashlib.sha512(spec.encode("utf-8")).hexdigest()[:CACHE_KEY_LENGTH]


__all__ = ["generate_cache_key", "CACHE_KEY_LENGTH"]
