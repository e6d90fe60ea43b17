from __future__ import annotations

import json
import os
import tempfile
import zipfile
from pathlib import Path
from typing import Any

from .models import AttributeLookup, TestDefinition, lookup_from_dict, test_definitions_from_list
from .schema import validate_lookup_doc

LOOKUP_FILE_NAME = "tfb_lookup.json"
TEST_METADATA_ENTRY = "test_metadata.json"


class LookupUnavailableError(RuntimeError):
    """Raised when there is no readable lookup to reconcile against."""


class TestMetadataNotFoundError(LookupError):
    """Raised when a run carries no test metadata, or an empty list of it."""


def dump_json(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False) + "\n"


def load_lookup(path: Path, *, validate: bool = False) -> AttributeLookup:
    if not path.is_file():
        raise LookupUnavailableError(f"{path}: lookup file not found")
    try:
        doc = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise LookupUnavailableError(f"{path}: unable to read lookup: {exc}") from exc
    if not isinstance(doc, dict):
        raise LookupUnavailableError(f"{path}: expected top-level JSON object")
    if validate:
        validate_lookup_doc(doc)
    return lookup_from_dict(doc)


def _find_zip_entry(archive: zipfile.ZipFile, entry_path: str) -> zipfile.ZipInfo | None:
    # Results archives nest the metadata under a run directory, so match on the tail.
    candidates = [
        info
        for info in archive.infolist()
        if not info.is_dir() and (info.filename == entry_path or info.filename.endswith("/" + entry_path))
    ]
    if not candidates:
        return None
    return min(candidates, key=lambda info: (info.filename.count("/"), info.filename))


def _read_metadata_text(path: Path) -> str:
    if path.suffix.lower() != ".zip":
        return path.read_text(encoding="utf-8")
    try:
        with zipfile.ZipFile(path) as archive:
            info = _find_zip_entry(archive, TEST_METADATA_ENTRY)
            if info is None:
                raise TestMetadataNotFoundError(f"{path}: archive has no {TEST_METADATA_ENTRY}")
            return archive.read(info).decode("utf-8")
    except zipfile.BadZipFile as exc:
        raise TestMetadataNotFoundError(f"{path}: not a readable zip archive: {exc}") from exc


def load_test_metadata(path: Path) -> list[TestDefinition]:
    """Read a run's test definitions from a test_metadata.json file or a results zip."""
    if not path.is_file():
        raise TestMetadataNotFoundError(f"{path}: file not found")
    try:
        raw = json.loads(_read_metadata_text(path))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise TestMetadataNotFoundError(f"{path}: unable to parse test metadata: {exc}") from exc
    tests = test_definitions_from_list(raw)
    if not tests:
        raise TestMetadataNotFoundError(f"{path}: no test definitions found")
    return tests


def save_lookup(path: Path, lookup: AttributeLookup) -> None:
    """Replace the lookup file atomically; readers see either the old or the new file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix="tfb_lookup_upload", suffix=".json", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(dump_json(lookup.to_dict()))
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
