"""JSON encoding of stored records.

This module provides:
- encode_json: Serialize Python data or pydantic models to pretty-printed JSON bytes
- decode_json: Parse JSON bytes into a requested type
- compute_file_hash: SHA-256 of a file

Datetimes are written as "YYYY-MM-DD HH:MM:SS" and dates as
"YYYY-MM-DD". Decoding goes through a pydantic TypeAdapter, which parses
both patterns back when the target type asks for them.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date, datetime
from functools import lru_cache
from pathlib import Path
from typing import Any, TypeVar

from pydantic import TypeAdapter

T = TypeVar("T")

DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
DATE_FORMAT = "%Y-%m-%d"

_ANY = TypeAdapter(Any)


@lru_cache(maxsize=128)
def _adapter(target: Any) -> TypeAdapter[Any]:
    return TypeAdapter(target)


def _default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.strftime(DATETIME_FORMAT)
    if isinstance(value, date):
        return value.strftime(DATE_FORMAT)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_json(data: Any) -> bytes:
    """Serialize data to indented UTF-8 JSON.

    Pydantic models and dataclasses are dumped to plain Python first so
    their date fields use the stored date patterns.
    """
    plain = _ANY.dump_python(data, mode="python")
    return json.dumps(plain, indent=2, ensure_ascii=False, default=_default).encode("utf-8")


def decode_json(raw: bytes, target: Any = Any) -> Any:
    """Parse JSON bytes and validate them against a type.

    Args:
        raw: UTF-8 JSON document.
        target: Type to validate into (a pydantic model, dataclass,
            ``list[Model]`` and similar). ``Any`` returns plain JSON data.

    Raises:
        ValueError: If the document is not valid JSON or does not match target.
    """
    data = json.loads(raw.decode("utf-8"))
    if target is Any:
        return data
    return _adapter(target).validate_python(data)


def compute_file_hash(path: Path) -> str:
    """Compute SHA-256 hash of a file.

    Reads the file in chunks to handle large files efficiently.

    Args:
        path: Path to the file to hash.

    Returns:
        Hexadecimal SHA-256 hash string.
    """
    hasher = hashlib.sha256()
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(8192), b""):
            hasher.update(block)
    return hasher.hexdigest()
