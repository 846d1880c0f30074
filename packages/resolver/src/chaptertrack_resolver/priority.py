"""Field reconciliation by metadata source priority."""

from __future__ import annotations

from typing import Any, Optional

from chaptertrack_contracts import MetadataSource

# Lower number wins
SOURCE_PRIORITY: dict[MetadataSource, int] = {
    MetadataSource.USER_OVERRIDE: 1,
    MetadataSource.CANONICAL: 2,
    MetadataSource.SECONDARY: 3,
    MetadataSource.INFERRED: 4,
}

_missing = set(MetadataSource) - set(SOURCE_PRIORITY)
if _missing:
    raise RuntimeError(f"SOURCE_PRIORITY missing sources: {sorted(m.value for m in _missing)}")

LIST_FIELDS = frozenset({"alternative_titles", "genres"})


def source_priority(source: MetadataSource) -> int:
    return SOURCE_PRIORITY[source]


def can_overwrite(existing: MetadataSource, incoming: MetadataSource) -> bool:
    """Incoming data may replace existing data of equal or lower priority."""
    return source_priority(incoming) <= source_priority(existing)


def _merge_list(existing: list[Any], incoming: list[Any]) -> list[Any]:
    merged = list(existing)
    seen = {str(v).lower() for v in existing}
    for value in incoming:
        if str(value).lower() not in seen:
            seen.add(str(value).lower())
            merged.append(value)
    return merged


def reconcile_fields(
    existing: dict[str, Any],
    existing_source: Optional[MetadataSource],
    incoming: dict[str, Any],
    incoming_source: MetadataSource,
) -> dict[str, Any]:
    """Fields from ``incoming`` that should be written over ``existing``.

    List fields are always merged as a union. Scalar fields are written when
    the existing value is empty or the incoming source has equal or higher
    priority. ``None`` incoming values never clear existing data.

    Returns:
        Only the fields that change
    """
    writable = existing_source is None or can_overwrite(existing_source, incoming_source)
    changes: dict[str, Any] = {}

    for name, value in incoming.items():
        current = existing.get(name)
        if name in LIST_FIELDS:
            merged = _merge_list(current or [], value or [])
            if merged != (current or []):
                changes[name] = merged
            continue
        if value is None:
            continue
        if current in (None, "") or (writable and value != current):
            changes[name] = value

    if writable and changes and existing_source != incoming_source:
        changes["metadata_source"] = incoming_source
    return changes
