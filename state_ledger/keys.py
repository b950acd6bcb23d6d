"""
Composite Key Codec

Builds state store keys from an object type plus an ordered list of string
attributes. Every segment, the object type included, is terminated by a
sentinel so that no key is a prefix of another key of the same type and a
range scan over a partial key returns exactly its subtree.
"""

from typing import List, Sequence, Tuple

from .exceptions import InvalidKeyError


# Terminates every key segment. Never allowed inside an attribute.
SENTINEL = "\uffff"

# Upper bound appended to a partial key to close a prefix range.
MAX_CHAR = "\U0010ffff"


def _check_segment(value: str, what: str) -> None:
    if not isinstance(value, str):
        raise InvalidKeyError(f"{what} must be a string, got {type(value).__name__}")
    if SENTINEL in value or MAX_CHAR in value:
        raise InvalidKeyError(f"{what} {value!r} contains a reserved key character")


def build_key(object_type: str, attributes: Sequence[str]) -> str:
    """
    Build a composite key

    Args:
        object_type: Record type tag, e.g. "Account"
        attributes: Ordered key attributes

    Returns:
        The composite key string

    Raises:
        InvalidKeyError: If the object type is empty or any segment
            contains a reserved character
    """
    if not object_type:
        raise InvalidKeyError("Object type must not be empty")
    _check_segment(object_type, "Object type")

    parts = [object_type, SENTINEL]
    for attribute in attributes:
        _check_segment(attribute, "Key attribute")
        parts.append(attribute)
        parts.append(SENTINEL)
    return "".join(parts)


def split_key(key: str) -> Tuple[str, List[str]]:
    """Split a composite key back into its object type and attributes"""
    if not key or not key.endswith(SENTINEL) or MAX_CHAR in key:
        raise InvalidKeyError(f"Not a composite key: {key!r}")

    segments = key[:-1].split(SENTINEL)
    object_type, attributes = segments[0], segments[1:]
    if not object_type:
        raise InvalidKeyError(f"Composite key has no object type: {key!r}")
    return object_type, attributes


def prefix_range(object_type: str, prefix_attributes: Sequence[str]) -> Tuple[str, str]:
    """
    Half-open key range [start, end) covering every key that extends the
    given partial key.
    """
    start = build_key(object_type, prefix_attributes)
    return start, start + MAX_CHAR
