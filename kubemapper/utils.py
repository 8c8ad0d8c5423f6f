"""
Common utilities shared across the library
"""

# Standard
from typing import Any
import hashlib

# First Party
import alog

# Local
from . import constants

log = alog.use_channel("KMUTL")

# Sentinel for missing dict values
__MISSING__ = "__MISSING__"

## Dicts #######################################################################


def nested_get(dct: dict, key: str, dflt=None) -> Any:
    """Helper to get values from a dict using 'foo.bar' key notation

    Args:
        dct:  dict
            The dict to read from
        key:  str
            Key that may contain '.' notation indicating dict nesting

    Returns:
        val:  Any
            Whatever is found at the given key or dflt if the key is not found.
            This includes missing intermediate dicts.
    """
    parts = key.split(constants.PATH_DELIM)
    for i, part in enumerate(parts[:-1]):
        dct = dct.get(part, __MISSING__)
        if dct is __MISSING__:
            return dflt
        if not isinstance(dct, dict):
            raise TypeError(
                f"Intermediate key {constants.PATH_DELIM.join(parts[:i + 1])} is not a dict"
            )
    return dct.get(parts[-1], dflt)


## Names #######################################################################


def prefixed_name(prefix: str, *parts: str, hash_length: int = 19) -> str:
    """Build a stable kubernetes object name from a prefix and a sequence of
    parts. The parts are hashed so that the same inputs always produce the
    same name and the result always fits in a kubernetes name.

    Args:
        prefix:  str
            The human readable prefix, usually the owning object's name
        *parts:  str
            The values that make the name unique under the prefix
        hash_length:  int
            Number of hex characters of the hash to keep

    Returns:
        name:  str
            The "<prefix>-<hash>" name
    """
    digest = hashlib.sha1(
        constants.PATH_DELIM.join(parts).encode("utf-8")
    ).hexdigest()[:hash_length]
    max_prefix_len = constants.MAX_NAME_LEN - len(digest) - 1
    prefix = prefix[:max_prefix_len].rstrip("-.").lower()
    name = f"{prefix}-{digest}"
    log.debug3("Generated name %s for %s", name, parts)
    return name
