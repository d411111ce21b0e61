"""
Random identifiers that people can read back and type.
"""
import secrets
from typing import Optional

# Uppercase letters without I and O, plus the ten digits.
DEFAULT_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ0123456789"


def generate_random_string(length: int,
                           allowable_chars: Optional[str] = None) -> str:
    """
    Generate a random string drawn from a cryptographically secure source.

    Every character is picked uniformly from the alphabet with
    ``secrets.choice``, so there is no modulo bias whatever the alphabet
    size. The function keeps no state and is safe to call from any thread.

    Args:
        length: Number of characters to produce
        allowable_chars: Alphabet to draw from; defaults to DEFAULT_ALPHABET

    Returns:
        The generated string
    """
    if length < 0:
        raise ValueError("length must not be negative")

    alphabet = allowable_chars or DEFAULT_ALPHABET
    return "".join(secrets.choice(alphabet) for _ in range(length))
