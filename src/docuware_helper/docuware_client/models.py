"""
DocuWare cabinet and document records.

The API hands documents back in three shapes:
- tabular listing: ``Headers`` (field names) plus ``Rows[].Items`` (values by index)
- single document: ``Fields[]`` of ``{FieldName, Item}`` objects
- query result: ``Items[].Fields[]``, one field list per document

All of them are normalized into ``DocuwareDocument`` so callers never care
which endpoint supplied the data.
"""

from dataclasses import dataclass, field
from typing import Any

DEFAULT_DOCUMENT_ID_FIELD = "DWDOCID"


@dataclass(frozen=True)
class Cabinet:
    """File cabinet representation."""

    id: str
    name: str

    @classmethod
    def from_api_response(cls, data: dict) -> "Cabinet":
        return cls(id=str(data.get("Id", "")), name=data.get("Name", ""))


@dataclass
class DocuwareDocument:
    """Document record keyed by field name."""

    id: Any
    cabinet_id: str
    row: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """JSON shape printed by the CLI."""
        return {"id": self.id, "cabinetId": self.cabinet_id, "row": self.row}

    @classmethod
    def from_table_row(
        cls,
        header_names: list[str],
        items: list[Any],
        cabinet_id: str,
        id_field: str = DEFAULT_DOCUMENT_ID_FIELD,
    ) -> "DocuwareDocument":
        """Zip one tabular row against the page's header names."""
        row = {name: item for name, item in zip(header_names, items)}
        return cls(id=row.get(id_field), cabinet_id=cabinet_id, row=row)

    @classmethod
    def from_fields(
        cls,
        fields: list[dict],
        cabinet_id: str,
        document_id: Any,
    ) -> "DocuwareDocument":
        """Fold a single-document ``Fields`` list. Empty values become ""."""
        row = {}
        for f in fields:
            row[f.get("FieldName")] = f.get("Item") or ""
        return cls(id=document_id, cabinet_id=cabinet_id, row=row)


def table_header_names(page: dict) -> list[str]:
    """Field names of a tabular page, in column order."""
    return [header.get("FieldName") for header in page.get("Headers") or []]


def documents_from_table_page(
    page: dict,
    header_names: list[str],
    cabinet_id: str,
    id_field: str = DEFAULT_DOCUMENT_ID_FIELD,
) -> list[DocuwareDocument]:
    return [
        DocuwareDocument.from_table_row(header_names, row.get("Items") or [], cabinet_id, id_field)
        for row in page.get("Rows") or []
    ]


def documents_from_query_result(
    result: dict,
    cabinet_id: str,
    id_field: str = DEFAULT_DOCUMENT_ID_FIELD,
) -> list[DocuwareDocument]:
    """Translate a query result. Column names come from the first item."""
    count = (result.get("Count") or {}).get("Value", 0)
    items = result.get("Items") or []
    if count == 0 or not items:
        return []

    header_names = [f.get("FieldName") for f in items[0].get("Fields") or []]
    documents = []
    for item in items:
        values = [f.get("Item") for f in item.get("Fields") or []]
        documents.append(
            DocuwareDocument.from_table_row(header_names, values, cabinet_id, id_field)
        )
    return documents
