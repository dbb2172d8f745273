"""
Demo data source for local development and parity tests.
"""

from .rows import create_rows_router, generate_rows

__all__ = ["create_rows_router", "generate_rows"]
