"""Registry describing where and how each file type is stored.

This module provides:
- FileTypeSpec: Directory, filename template and backup tier of a file type
- FILE_TYPES: Mapping of every FileType to its FileTypeSpec
- get_spec: Look up a FileTypeSpec
- file_type_from_filename: Recover the FileType of a stored filename
- criticality_for_file: Backup tier of a filename or path

The table is built once at import time and checked to cover every
FileType member, so adding a member without registering it fails at
import rather than at the first write.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from string import Formatter
from types import MappingProxyType

from worksync.core.types import CriticalityLevel, FileType


@dataclass(frozen=True)
class FileTypeSpec:
    """Storage layout of a file type.

    Attributes:
        directory: Directory relative to the local or network root.
        template: str.format template for the filename. Available fields are
            username, user_id, year and month.
        prefix: Filename prefix used to recognise stored files.
        criticality: Backup tier.
        local_only: True when the file is never mirrored to the network root.
    """

    directory: str
    template: str
    prefix: str
    criticality: CriticalityLevel
    local_only: bool = False

    def filename(
        self,
        username: str | None = None,
        user_id: int | None = None,
        year: int | None = None,
        month: int | None = None,
    ) -> str:
        values = {"username": username, "user_id": user_id, "year": year, "month": month}
        missing = [name for name in self.fields if values[name] is None]
        if missing:
            raise ValueError(f"Missing {', '.join(missing)} for template {self.template!r}")
        return self.template.format(**values)

    @property
    def fields(self) -> tuple[str, ...]:
        """Names of the fields the filename template uses."""
        return tuple(name for _, name, _, _ in Formatter().parse(self.template) if name)

    def parse(self, filename: str) -> dict[str, str] | None:
        """Split a stored filename back into its template fields.

        Numeric fields only match digits, so a username may itself contain
        underscores. Trailing backup suffixes are ignored.

        Returns:
            Field values as strings, or None when the name does not match.
        """
        match = _template_pattern(self.template).match(filename)
        return match.groupdict() if match else None


_FIELD_PATTERNS = {
    "username": r".+?",
    "user_id": r"\d+",
    "year": r"\d{4}",
    "month": r"\d{2}",
}


def _template_pattern(template: str) -> re.Pattern[str]:
    parts = []
    for literal, name, _, _ in Formatter().parse(template):
        parts.append(re.escape(literal))
        if name:
            parts.append(f"(?P<{name}>{_FIELD_PATTERNS[name]})")
    return re.compile("".join(parts), re.IGNORECASE)


_HIGH = CriticalityLevel.HIGH
_MEDIUM = CriticalityLevel.MEDIUM
_LOW = CriticalityLevel.LOW

FILE_TYPES: MappingProxyType[FileType, FileTypeSpec] = MappingProxyType(
    {
        FileType.SESSION: FileTypeSpec(
            "user/session", "session_{username}_{user_id}.json", "session", _MEDIUM
        ),
        FileType.WORKTIME: FileTypeSpec(
            "user/worktime", "worktime_{username}_{year}_{month:02d}.json", "worktime", _HIGH
        ),
        FileType.REGISTER: FileTypeSpec(
            "user/register",
            "registru_{username}_{user_id}_{year}_{month:02d}.json",
            "registru",
            _HIGH,
        ),
        FileType.TIMEOFF_TRACKER: FileTypeSpec(
            "user/timeoff",
            "timeoff_tracker_{username}_{user_id}_{year}.json",
            "timeoff_tracker",
            _LOW,
        ),
        FileType.CHECK_REGISTER: FileTypeSpec(
            "user/check_register",
            "check_registru_{username}_{user_id}_{year}_{month:02d}.json",
            "check_registru",
            _HIGH,
        ),
        FileType.LEAD_CHECK_REGISTER: FileTypeSpec(
            "admin/check_register",
            "lead_check_registru_{username}_{user_id}_{year}_{month:02d}.json",
            "lead_check_registru",
            _MEDIUM,
        ),
        FileType.ADMIN_WORKTIME: FileTypeSpec(
            "admin/worktime", "general_worktime_{year}_{month:02d}.json", "general_worktime", _LOW
        ),
        FileType.ADMIN_REGISTER: FileTypeSpec(
            "admin/register",
            "admin_registru_{username}_{user_id}_{year}_{month:02d}.json",
            "admin_registru",
            _LOW,
        ),
        FileType.ADMIN_BONUS: FileTypeSpec(
            "admin/bonus",
            "admin_bonus_{year}_{month:02d}.json",
            "admin_bonus",
            _LOW,
            local_only=True,
        ),
        FileType.ADMIN_CHECK_BONUS: FileTypeSpec(
            "admin/bonus",
            "admin_check_bonus_{year}_{month:02d}.json",
            "admin_check_bonus",
            _MEDIUM,
        ),
        FileType.CHECK_VALUES: FileTypeSpec(
            "login/users", "check_values_{username}_{user_id}.json", "check_values", _MEDIUM
        ),
        FileType.USERS: FileTypeSpec(
            "login/users", "users_{username}_{user_id}.json", "users", _MEDIUM
        ),
        FileType.TEAM: FileTypeSpec(
            "login",
            "team_{username}_{year}_{month:02d}.json",
            "team",
            _LOW,
            local_only=True,
        ),
    }
)

_missing = set(FileType) - set(FILE_TYPES)
if _missing:
    raise RuntimeError(f"File types without storage layout: {sorted(m.value for m in _missing)}")

# Longest prefix first so "check_registru" wins over "registru" and
# "admin_check_bonus" over "admin_bonus".
_BY_PREFIX: tuple[tuple[str, FileType], ...] = tuple(
    sorted(
        ((spec.prefix, file_type) for file_type, spec in FILE_TYPES.items()),
        key=lambda item: len(item[0]),
        reverse=True,
    )
)

_LOW_MARKERS = ("status", "temp", "cache", "log")


def get_spec(file_type: FileType) -> FileTypeSpec:
    """Get the storage layout of a file type."""
    return FILE_TYPES[file_type]


def file_type_from_filename(filename: str) -> FileType | None:
    """Recover the file type of a stored filename.

    Backup suffixes are ignored, so "worktime_alice_2024_03.json.bak"
    resolves like the original file.

    Args:
        filename: Bare filename, without directories.

    Returns:
        The matching FileType, or None for unrecognised names.
    """
    name = filename.lower()
    for prefix, file_type in _BY_PREFIX:
        if name.startswith(prefix + "_"):
            return file_type
    return None


def criticality_for_file(path: Path | str) -> CriticalityLevel:
    """Determine the backup tier of a file.

    Known file types use their registered tier. Unknown files are
    MEDIUM, except status, temp, cache and log files which are LOW.
    """
    path = Path(path)
    file_type = file_type_from_filename(path.name)
    if file_type is not None:
        return FILE_TYPES[file_type].criticality

    lowered = path.name.lower()
    if any(marker in lowered for marker in _LOW_MARKERS):
        return CriticalityLevel.LOW
    return CriticalityLevel.MEDIUM
