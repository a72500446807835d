"""
Loader for staged JSON and NDJSON files.

Reads a staged file from disk and parses it, producing readable error
messages for malformed content. NDJSON lines that fail to parse are
skipped and counted rather than failing the whole file.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from dualstore.common.errors import AnalysisError, InputError
from dualstore.config.settings import get_settings

logger = logging.getLogger(__name__)

NDJSON_EXTENSIONS = {".ndjson", ".jsonl"}


@dataclass
class LoadedDocument:
    """Parsed content of a staged file."""
    data: Any
    data_type: str  # json or ndjson
    extension: str
    size_bytes: int
    skipped_lines: int = 0


def detect_data_type(*names: Optional[str]) -> str:
    """Return 'ndjson' if any of the given names has an NDJSON extension."""
    for name in names:
        if name and Path(name).suffix.lower() in NDJSON_EXTENSIONS:
            return "ndjson"
    return "json"


class JsonFileLoader:
    """Reads and parses staged JSON/NDJSON files."""

    def __init__(self, max_size_bytes: Optional[int] = None):
        self.max_size_bytes = max_size_bytes or get_settings().max_json_file_bytes

    def load(self, file_path: str, data_type: Optional[str] = None) -> LoadedDocument:
        """
        Load and parse a staged file.

        Args:
            file_path: Path to the staged file
            data_type: Force 'json' or 'ndjson' (detected from extension if None)

        Returns:
            LoadedDocument

        Raises:
            InputError: If the file is missing, unreadable or too large
            AnalysisError: If the content is not valid JSON
        """
        if not file_path:
            raise InputError("A file path is required", operation="load")

        path = Path(file_path)
        if not path.is_file():
            raise InputError(f"Staged file not found: {file_path}", operation="load")

        try:
            size_bytes = path.stat().st_size
        except OSError as e:
            raise InputError(f"Cannot read staged file: {file_path}", operation="load", cause=e)

        if size_bytes > self.max_size_bytes:
            raise InputError(
                f"File size {size_bytes} exceeds maximum {self.max_size_bytes} bytes",
                operation="load",
            )

        data_type = data_type or detect_data_type(file_path)
        extension = path.suffix.lower().lstrip(".") or data_type

        try:
            content = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise AnalysisError(
                f"File is not valid UTF-8 text: {file_path}", operation="load", cause=e)
        except OSError as e:
            raise InputError(f"Cannot read staged file: {file_path}", operation="load", cause=e)

        if data_type == "ndjson":
            records, skipped = self._parse_ndjson(content, file_path)
            return LoadedDocument(
                data=records,
                data_type="ndjson",
                extension=extension,
                size_bytes=size_bytes,
                skipped_lines=skipped,
            )

        return LoadedDocument(
            data=self._parse_json(content, file_path),
            data_type="json",
            extension=extension,
            size_bytes=size_bytes,
        )

    def _parse_json(self, content: str, file_path: str) -> Any:
        if not content.strip():
            raise AnalysisError(f"JSON file is empty: {file_path}", operation="parse")

        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise AnalysisError(
                f"Invalid JSON syntax in file: {file_path} "
                f"(line {e.lineno}, column {e.colno}): {e.msg}",
                operation="parse",
                cause=e,
            )

    def _parse_ndjson(self, content: str, file_path: str):
        records = []
        skipped = 0

        for line_number, line in enumerate(content.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError as e:
                skipped += 1
                logger.warning(
                    f"Skipping malformed NDJSON line {line_number} in {file_path}: {e.msg}"
                )

        if skipped:
            logger.warning(
                f"NDJSON file {file_path}: {len(records)} records parsed, {skipped} lines skipped"
            )

        return records, skipped
