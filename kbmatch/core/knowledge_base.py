"""
Knowledge-base loading: JSON array of records -> ordered list of Entry.
"""

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from ..util.logging import logger
from ..vector.types import DEFAULT_CATEGORY, Entry
from .config import KB_PATH, KB_PRIMARY_FIELD, KB_RESPONSE_FIELD
from .errors import KnowledgeBaseError

PRIMARY_FIELD_ALIASES = ("pregunta", "question", "propuesta", "title", "text")
RESPONSE_FIELD_ALIASES = ("respuesta", "answer", "descripcion", "content")


def _first_present(record: Dict[str, Any], explicit: Optional[str], aliases: Iterable[str]) -> Optional[str]:
    fields = [explicit] if explicit else aliases
    for name in fields:
        value = record.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def entries_from_records(records: List[Dict[str, Any]],
                         primary_field: Optional[str] = None,
                         response_field: Optional[str] = None) -> List[Entry]:
    """
    Convert raw records into entries, keeping input order.

    Records without primary text are skipped. Ids come from an explicit
    ``id`` field, else the record's position in the input.

    Raises:
        KnowledgeBaseError: on duplicate ids or when nothing usable remains
    """
    primary_field = primary_field or KB_PRIMARY_FIELD
    response_field = response_field or KB_RESPONSE_FIELD

    entries = []
    seen_ids = set()

    for position, record in enumerate(records):
        if not isinstance(record, dict):
            logger.warning(f"Skipping knowledge base record {position}: not an object")
            continue

        primary = _first_present(record, primary_field, PRIMARY_FIELD_ALIASES)
        if primary is None:
            logger.warning(f"Skipping knowledge base record {position}: no primary text")
            continue

        entry_id = str(record["id"]) if record.get("id") is not None else str(position)
        if entry_id in seen_ids:
            raise KnowledgeBaseError(f"Duplicate entry id in knowledge base: {entry_id}")
        seen_ids.add(entry_id)

        category = record.get("category")
        if not isinstance(category, str) or not category.strip():
            category = DEFAULT_CATEGORY

        entries.append(Entry(
            id=entry_id,
            primary_text=primary,
            secondary_text=_first_present(record, response_field, RESPONSE_FIELD_ALIASES),
            category=category.strip()
        ))

    if not entries:
        raise KnowledgeBaseError("Knowledge base contains no usable entries")

    return entries


def load_entries(path: Optional[str] = None) -> List[Entry]:
    """
    Load the knowledge base from a JSON file.

    Raises:
        KnowledgeBaseError: file missing, unreadable, not a JSON array, or empty
    """
    path = Path(path or KB_PATH)

    try:
        with open(path, encoding="utf-8") as f:
            records = json.load(f)
    except FileNotFoundError as e:
        raise KnowledgeBaseError(f"Knowledge base file not found: {path}") from e
    except (OSError, json.JSONDecodeError) as e:
        raise KnowledgeBaseError(f"Could not read knowledge base {path}: {e}") from e

    if not isinstance(records, list):
        raise KnowledgeBaseError(f"Knowledge base must be a JSON array: {path}")

    entries = entries_from_records(records)
    logger.log_operation("knowledge_base.load", "success", {"path": str(path), "entries": len(entries)})
    return entries
