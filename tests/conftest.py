"""Test fixtures and utilities."""

import pytest

from docuware_helper.docuware_client import DocuwareClient, RetryPolicy, no_jitter

BASE_URL = "https://dw.test"
PLATFORM_URL = f"{BASE_URL}/docuware/platform"
CABINET_ID = "fc-0001"
CABINET_NAME = "Meter - STG"
SESSION_COOKIE = ".DWPLATFORMAUTH=abc123; dwingressplatform=xyz"

# Fast policy for tests: no sleeping between attempts
FAST_RETRY = RetryPolicy(
    max_attempts=5,
    base_delay_seconds=0,
    min_jitter_seconds=0,
    max_jitter_seconds=0,
    jitter=no_jitter,
)


def table_page(rows: list[list], headers: tuple[str, ...] = ("DWDOCID", "SERIAL_NO", "STATUS")) -> dict:
    """Tabular documents page as returned with ``format=table``."""
    return {
        "Headers": [{"FieldName": name, "DisplayName": name.title()} for name in headers],
        "Rows": [{"Items": items} for items in rows],
    }


def query_result(documents: list[dict]) -> dict:
    """DialogExpression query result for a list of field maps."""
    return {
        "Count": {"Value": len(documents)},
        "Items": [
            {"Fields": [{"FieldName": name, "Item": value} for name, value in doc.items()]}
            for doc in documents
        ],
    }


@pytest.fixture(autouse=True)
def clean_docuware_env(monkeypatch):
    """Keep developer DOCUWARE_* variables out of the tests."""
    for name in (
        "DOCUWARE_URL",
        "DOCUWARE_TOKEN",
        "DOCUWARE_COOKIE",
        "DOCUWARE_ORGANIZATION",
        "DOCUWARE_RETRY_MAX",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def client() -> DocuwareClient:
    """Client with an existing session cookie and the fast retry policy."""
    return DocuwareClient(BASE_URL, cookie=SESSION_COOKIE, retry_policy=FAST_RETRY)


@pytest.fixture
def cabinets_response() -> dict:
    return {
        "FileCabinet": [
            {"Id": CABINET_ID, "Name": CABINET_NAME},
            {"Id": "fc-0002", "Name": "Contracts"},
        ]
    }


@pytest.fixture
def single_document_response() -> dict:
    """Single document detail response."""
    return {
        "Id": 7,
        "Fields": [
            {"FieldName": "DWDOCID", "Item": 7, "ItemElementName": "Int"},
            {"FieldName": "SERIAL_NO", "Item": "3080RC20119", "ItemElementName": "String"},
            {"FieldName": "NOTES", "Item": None, "ItemElementName": "String"},
        ],
    }
