"""
DocuWare platform API client.

Provides:
- Credential, token and cookie authentication
- File cabinet listing and lookup by name
- Document retrieval (tabular listing, by id, by query, by predicate)
- Field update, upload and streamed download
- Bounded retry with jittered backoff on non-200 responses
"""

from .client import (
    DocuwareAPIError,
    DocuwareAuthError,
    DocuwareClient,
    DocuwareError,
    DocuwareSession,
    document_link,
    format_cookie,
)
from .models import Cabinet, DocuwareDocument
from .retry import PolicyWait, RetryPolicy, no_jitter, random_jitter

__all__ = [
    "Cabinet",
    "DocuwareAPIError",
    "DocuwareAuthError",
    "DocuwareClient",
    "DocuwareDocument",
    "DocuwareError",
    "DocuwareSession",
    "PolicyWait",
    "RetryPolicy",
    "document_link",
    "format_cookie",
    "no_jitter",
    "random_jitter",
]
