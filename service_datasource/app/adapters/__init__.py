"""
Adapters package for the data source service.

Contains the HTTP client wrapper the query gateway hands its GET
descriptors to. Adapters encapsulate:

- Request execution and timeouts
- Mapping of failures to shared errors with user-facing messages

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .http_transport import HttpTransport, user_message_for

__all__ = [
    "HttpTransport",
    "user_message_for",
]
