"""
Normalization of heterogeneous remote payloads into ``PagedResult``.
"""

from .normalizer import NormalizedPage, ResponseNormalizer

__all__ = ["NormalizedPage", "ResponseNormalizer"]
