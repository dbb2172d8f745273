"""
In-process query execution for sources that only deliver bulk data.
"""

from .client_engine import ClientQueryEngine, is_date_field

__all__ = ["ClientQueryEngine", "is_date_field"]
