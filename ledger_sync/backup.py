"""
Import / Export

Export writes the whole Document as pretty-printed UTF-8 JSON, plus two
informational keys (`exportedAt`, `userEmail`). Import reverses that:
it requires the three core lists up front, then hands the rest to the
normalizer, which drops anything inconsistent.
"""

import json
from datetime import datetime
from typing import Any, Optional

from ledger_sync.models.document import Document, format_timestamp
from ledger_sync.validation.normalizer import normalize_document


REQUIRED_IMPORT_KEYS = ("accounts", "categories", "transactions")


class ImportRejectedError(ValueError):
    """The import file is not a ledger export; nothing was changed."""
    pass


def export_filename(now: Optional[datetime] = None) -> str:
    """Suggested download name, e.g. ledger-backup-2024-05-01.json."""
    return f"ledger-backup-{format_timestamp(now)[:10]}.json"


def export_document(
    document: Document,
    user_email: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    payload: dict[str, Any] = document.to_payload()
    payload["exportedAt"] = format_timestamp(now)
    payload["userEmail"] = user_email
    return json.dumps(payload, ensure_ascii=False, indent=2)


def parse_import(text: str) -> Document:
    """
    Parse an export file into a normalized Document.

    Raises:
        ImportRejectedError: if the text is not JSON, not an object, or
            lacks any of the accounts/categories/transactions lists
    """
    try:
        data = json.loads(text)
    except (ValueError, TypeError) as e:
        # JSONDecodeError, or a number too long to convert
        raise ImportRejectedError(f"File is not valid JSON: {e}")

    if not isinstance(data, dict):
        raise ImportRejectedError("File does not contain a ledger export")

    missing = [key for key in REQUIRED_IMPORT_KEYS if not isinstance(data.get(key), list)]
    if missing:
        raise ImportRejectedError(
            f"File is missing required lists: {', '.join(missing)}"
        )

    data.pop("exportedAt", None)
    data.pop("userEmail", None)
    return normalize_document(data)
