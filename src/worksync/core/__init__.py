"""Core module - Shared types, configuration, file layout and codecs."""

from worksync.core.config import StorageConfig, load_config, save_config
from worksync.core.filetypes import (
    FILE_TYPES,
    FileTypeSpec,
    criticality_for_file,
    file_type_from_filename,
    get_spec,
)
from worksync.core.obfuscation import ObfuscationCodec
from worksync.core.serialization import compute_file_hash, decode_json, encode_json
from worksync.core.types import (
    CriticalityLevel,
    FileOperationResult,
    FilePath,
    FileType,
    LockTimeoutError,
    StorageError,
    SyncDirection,
    SyncState,
    TransactionError,
)

__all__ = [
    # Config
    "StorageConfig",
    "load_config",
    "save_config",
    # File layout
    "FILE_TYPES",
    "FileTypeSpec",
    "criticality_for_file",
    "file_type_from_filename",
    "get_spec",
    # Codecs
    "ObfuscationCodec",
    "compute_file_hash",
    "decode_json",
    "encode_json",
    # Types
    "CriticalityLevel",
    "FileOperationResult",
    "FilePath",
    "FileType",
    "LockTimeoutError",
    "StorageError",
    "SyncDirection",
    "SyncState",
    "TransactionError",
]
