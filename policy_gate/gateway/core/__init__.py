"""
Core logic package.

Provides request canonicalization and denial body encoding.
"""

from .canonicalizer import build_query, canonical_header_key, read_body, split_path
from .encoder import encode_body

__all__ = [
    "build_query",
    "canonical_header_key",
    "read_body",
    "split_path",
    "encode_body",
]
