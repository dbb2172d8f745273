"""
Domain layer of the data source service.

The query gateway orchestrates cache, transport, normalizer and client
engine; the table session is the stateful surface a UI table drives.
"""

from .gateway import DataSourceMode, QueryGateway, QueryOutcome, Transport
from .session import TableSession

__all__ = [
    "DataSourceMode",
    "QueryGateway",
    "QueryOutcome",
    "TableSession",
    "Transport",
]
