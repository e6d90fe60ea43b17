from __future__ import annotations

import string
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Prefix for dictionary values that were absent from the most recent run.
UNUSED_MARKER = "-"


class Attribute(str, Enum):
    """Classification axes of a benchmarked test.

    The value is the key used in a full test_metadata.json entry; ``code`` is
    the key used in a minified tfb_lookup.json test entry.
    """

    APPROACH = "approach"
    CLASSIFICATION = "classification"
    DATABASE = "database"
    DATABASE_OS = "database_os"
    FRAMEWORK = "framework"
    LANGUAGE = "language"
    NAME = "name"
    ORM = "orm"
    OS = "os"
    PLATFORM = "platform"
    DISPLAY_NAME = "display_name"
    WEBSERVER = "webserver"

    @property
    def code(self) -> str:
        return ATTRIBUTE_CODES[self]

    @property
    def is_literal(self) -> bool:
        return self in LITERAL_ATTRIBUTES


ATTRIBUTE_CODES: dict[Attribute, str] = {
    Attribute.APPROACH: "a",
    Attribute.CLASSIFICATION: "c",
    Attribute.DATABASE: "d",
    Attribute.DATABASE_OS: "b",
    Attribute.FRAMEWORK: "f",
    Attribute.LANGUAGE: "l",
    Attribute.NAME: "i",
    Attribute.ORM: "o",
    Attribute.OS: "s",
    Attribute.PLATFORM: "p",
    Attribute.DISPLAY_NAME: "t",
    Attribute.WEBSERVER: "w",
}

# Stored verbatim in minified tests instead of as a dictionary index.
LITERAL_ATTRIBUTES = frozenset({Attribute.NAME, Attribute.DISPLAY_NAME})

# Minified test keys that are not attribute codes.
IDENTITY_KEY = "ii"
VERSUS_KEY = "v"

_ASCII_LOWER = str.maketrans(string.ascii_uppercase, string.ascii_lowercase)


def ascii_lower(value: str) -> str:
    # str.lower() folds non-ASCII letters too, which stored data never did.
    return value.translate(_ASCII_LOWER)


def ascii_equals(a: str, b: str) -> bool:
    return ascii_lower(a) == ascii_lower(b)


def is_unused(value: str) -> bool:
    return value.startswith(UNUSED_MARKER)


def strip_unused_marker(value: str) -> str:
    return value[len(UNUSED_MARKER) :] if is_unused(value) else value


def fold_value(value: str) -> str:
    """Comparison key for dictionary values: marker stripped, ASCII-lowercased."""
    return ascii_lower(strip_unused_marker(value))


def attribute_from_key(raw: object) -> Attribute | None:
    if not isinstance(raw, str):
        return None
    try:
        return Attribute(raw)
    except ValueError:
        return None


@dataclass(frozen=True)
class AttributeInfo:
    """The dictionary of known values for one attribute.

    ``values`` only ever grows; existing entries keep their position so that
    indices recorded in minified tests stay valid. ``version`` is the opaque
    ``v`` field of the stored file and is carried through untouched.
    """

    code: str
    values: tuple[str, ...]
    version: Any = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "list": list(self.values), "v": self.version}


@dataclass(frozen=True)
class TestDefinition:
    """One framework permutation from a run's test_metadata.json."""

    approach: str = ""
    classification: str = ""
    database: str = ""
    database_os: str = ""
    framework: str = ""
    language: str = ""
    orm: str = ""
    os: str = ""
    platform: str = ""
    name: str = ""
    display_name: str = ""
    notes: str = ""
    versus: str = ""
    webserver: str = ""

    def value_of(self, attribute: Attribute) -> str:
        return getattr(self, attribute.value)

    def to_dict(self) -> dict[str, str]:
        doc = {attribute.value: self.value_of(attribute) for attribute in Attribute}
        doc["notes"] = self.notes
        doc["versus"] = self.versus
        return doc


@dataclass(frozen=True)
class MinifiedTestDefinition:
    """A test entry of tfb_lookup.json.

    Every attribute field except the literal ones holds the decimal index of
    the test's value in that attribute's dictionary, or "" when unknown.
    """

    identity: int
    approach: str = ""
    classification: str = ""
    database: str = ""
    database_os: str = ""
    framework: str = ""
    language: str = ""
    orm: str = ""
    os: str = ""
    platform: str = ""
    name: str = ""
    display_name: str = ""
    webserver: str = ""
    versus: tuple[int, ...] = ()

    def value_of(self, attribute: Attribute) -> str:
        return getattr(self, attribute.value)

    def to_dict(self) -> dict[str, Any]:
        doc: dict[str, Any] = {attribute.code: self.value_of(attribute) for attribute in Attribute}
        doc[IDENTITY_KEY] = self.identity
        doc[VERSUS_KEY] = list(self.versus)
        return doc


@dataclass(frozen=True)
class AttributeLookup:
    """The whole tfb_lookup.json document.

    Treated as an immutable snapshot: the pipeline always builds a new one.
    """

    attributes: dict[Attribute, AttributeInfo]
    minified_tests: dict[str, MinifiedTestDefinition]

    def to_dict(self) -> dict[str, Any]:
        return {
            "attributes": {attribute.value: info.to_dict() for attribute, info in self.attributes.items()},
            "tests": {identity: test.to_dict() for identity, test in self.minified_tests.items()},
        }


def _text(raw: object) -> str:
    if raw is None:
        return ""
    if isinstance(raw, bool):
        return ""
    if isinstance(raw, (str, int)):
        return str(raw)
    return ""


def _identity(raw: object) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str):
        try:
            return int(raw.strip())
        except ValueError:
            return None
    return None


def attribute_info_from_dict(doc: dict[str, Any], *, attribute: Attribute) -> AttributeInfo:
    values_raw = doc.get("list") or []
    if not isinstance(values_raw, list):
        values_raw = []
    return AttributeInfo(
        code=str(doc.get("code") or attribute.code),
        values=tuple(str(value) for value in values_raw if isinstance(value, (str, int, float))),
        version=doc.get("v", []),
    )


def test_definition_from_dict(doc: dict[str, Any]) -> TestDefinition:
    return TestDefinition(
        **{attribute.value: _text(doc.get(attribute.value)) for attribute in Attribute},
        notes=_text(doc.get("notes")),
        versus=_text(doc.get("versus")),
    )


def test_definitions_from_list(raw: object) -> list[TestDefinition]:
    if not isinstance(raw, list):
        return []
    return [test_definition_from_dict(entry) for entry in raw if isinstance(entry, dict)]


def minified_test_from_dict(doc: dict[str, Any], *, identity_key: str = "") -> MinifiedTestDefinition:
    identity = _identity(doc.get(IDENTITY_KEY))
    if identity is None:
        identity = _identity(identity_key) or 0

    versus_raw = doc.get(VERSUS_KEY) or []
    if not isinstance(versus_raw, list):
        versus_raw = [versus_raw]
    versus = tuple(ref for ref in (_identity(item) for item in versus_raw) if ref is not None)

    return MinifiedTestDefinition(
        identity=identity,
        versus=versus,
        **{attribute.value: _text(doc.get(attribute.code)) for attribute in Attribute},
    )


def lookup_from_dict(doc: dict[str, Any]) -> AttributeLookup:
    attributes_raw = doc.get("attributes") if isinstance(doc.get("attributes"), dict) else {}
    tests_raw = doc.get("tests") if isinstance(doc.get("tests"), dict) else {}

    attributes: dict[Attribute, AttributeInfo] = {}
    for key, info in attributes_raw.items():
        attribute = attribute_from_key(key)
        if attribute is None or not isinstance(info, dict):
            continue
        attributes[attribute] = attribute_info_from_dict(info, attribute=attribute)

    return AttributeLookup(
        attributes=attributes,
        minified_tests={
            str(identity): minified_test_from_dict(test, identity_key=str(identity))
            for identity, test in tests_raw.items()
            if isinstance(test, dict)
        },
    )
