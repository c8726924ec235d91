"""
Summaries of successful dump operations.

Turns the payload captured by the poll loop into per-category statistics
without going back to the service (the operation no longer exists there
once its result has been read). Rendering lives in operations.printers.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from .runtime_types import OperationKind, Success

__all__ = [
    "CategoryStats",
    "ImportSummary",
    "ExportSummary",
    "summarize",
    "summarize_import",
    "summarize_export",
    "display_name",
    "describe_item",
    "describe_exported_item",
]

PREVIEW_CHARS = 50


def display_name(category: str) -> str:
    """snake_case category -> Title Case label ("liked_queries" -> "Liked Queries")."""
    return " ".join(word[:1].upper() + word[1:] for word in category.split("_"))


def _preview(text: str) -> str:
    return f"{text[:PREVIEW_CHARS]}..." if len(text) > PREVIEW_CHARS else text


def describe_item(category: str, item: Any) -> str:
    """
    One-line label for an imported or ignored object.

    Well-known categories get a typed label (Schema/Table/Column/Context/
    Query); anything else falls back to its name, id or JSON form.
    """
    if isinstance(item, str):
        return item
    if not isinstance(item, dict):
        return json.dumps(item, default=str)

    name = item.get("name")
    if category == "schema_definitions" and name:
        return f"Schema: {name}"
    if category == "tables" and name:
        schema = item.get("schema")
        return f"Table: {schema + '.' if schema else ''}{name}"
    if category == "columns" and (name or item.get("column_name")):
        column = name or item.get("column_name")
        table = item.get("table") or item.get("table_name")
        return f"Column: {table + '.' if table else ''}{column}"
    if category == "semantic_contexts" and item.get("statement"):
        return f"Context: {item.get('scope') or ''} - \"{_preview(item['statement'])}\""
    if category == "liked_queries" and item.get("query"):
        return f"Query: \"{_preview(item['query'])}\""
    if name or item.get("id"):
        return str(name or item.get("id"))
    return json.dumps(item, default=str)


def describe_exported_item(item: Any) -> Optional[str]:
    """Label for an entry of an exported category, or None if it has nothing printable."""
    if not isinstance(item, dict):
        return str(item)
    if item.get("name"):
        return str(item["name"])
    if item.get("id"):
        return f"ID: {item['id']}"
    scalars = [k for k, v in item.items() if not isinstance(v, (dict, list))]
    if scalars:
        return f"{scalars[0]}: {item[scalars[0]]}"
    return None


@dataclass(frozen=True)
class CategoryStats:
    """Imported and ignored objects of one category."""
    name: str
    imported: Tuple[Any, ...] = ()
    ignored: Tuple[Any, ...] = ()

    @property
    def display_name(self) -> str:
        return display_name(self.name)

    @property
    def imported_count(self) -> int:
        return len(self.imported)

    @property
    def ignored_count(self) -> int:
        return len(self.ignored)


@dataclass(frozen=True)
class ImportSummary:
    """
    Category-partitioned result of an import.

    dry_run marks a simulation: nothing listed as imported was applied.
    has_stats is False when the service returned no usable statistics.
    """
    dry_run: bool
    message: Optional[str] = None
    categories: Tuple[CategoryStats, ...] = ()
    has_stats: bool = True

    @property
    def total_imported(self) -> int:
        return sum(c.imported_count for c in self.categories)

    @property
    def total_ignored(self) -> int:
        return sum(c.ignored_count for c in self.categories)


@dataclass(frozen=True)
class ExportSummary:
    """
    Statistics of an exported dump.

    A dump is either a flat list of typed objects (total counts objects)
    or a mapping of category -> objects (total counts categories).
    """
    is_list: bool
    total: int
    counts: Dict[str, int] = field(default_factory=dict)
    items: Dict[str, List[str]] = field(default_factory=dict)
    empty: bool = False


def _as_tuple(value: Any) -> Tuple[Any, ...]:
    return tuple(value) if isinstance(value, list) else ()


def summarize_import(info: Any, *, dry_run: bool) -> ImportSummary:
    """Build an ImportSummary from an import status payload."""
    message = info.get("message") if isinstance(info, dict) else None
    stats = info.get("stats") if isinstance(info, dict) else None
    if not isinstance(stats, dict):
        return ImportSummary(dry_run=dry_run, message=message, has_stats=False)

    categories = []
    for name, data in stats.items():
        data = data if isinstance(data, dict) else {}
        categories.append(CategoryStats(
            name=name,
            imported=_as_tuple(data.get("imported")),
            ignored=_as_tuple(data.get("ignored")),
        ))
    return ImportSummary(dry_run=dry_run, message=message, categories=tuple(categories))


def summarize_export(data: Any) -> ExportSummary:
    """Build an ExportSummary from an exported dump."""
    if not data:
        return ExportSummary(is_list=isinstance(data, list), total=0, empty=True)

    counts: Dict[str, int] = {}
    items: Dict[str, List[str]] = {}

    if isinstance(data, list):
        for entry in data:
            if not isinstance(entry, dict):
                continue
            kind = entry.get("type") or entry.get("object_type")
            if kind:
                counts[kind] = counts.get(kind, 0) + 1
            label = kind or "Object"
            if entry.get("name"):
                items.setdefault("", []).append(f"{label}: {entry['name']}")
            elif entry.get("id"):
                items.setdefault("", []).append(f"Object with ID: {entry['id']}")
        return ExportSummary(is_list=True, total=len(data), counts=dict(sorted(counts.items())), items=items)

    if isinstance(data, dict):
        for category, value in data.items():
            if isinstance(value, (list, dict)):
                counts[category] = len(value)
            if isinstance(value, list) and value:
                labels = [describe_exported_item(v) for v in value]
                items[category] = [label for label in labels if label is not None]
        return ExportSummary(is_list=False, total=len(data), counts=dict(sorted(counts.items())), items=items)

    return ExportSummary(is_list=False, total=0, empty=True)


def summarize(outcome: Success) -> Union[ExportSummary, ImportSummary]:
    """Summary matching the kind of a successful outcome."""
    if outcome.kind is OperationKind.IMPORT:
        return summarize_import(outcome.payload, dry_run=outcome.dry_run)
    return summarize_export(outcome.payload)
