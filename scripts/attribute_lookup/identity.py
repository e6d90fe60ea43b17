from __future__ import annotations

from collections.abc import Iterable, Mapping

from .models import Attribute, TestDefinition, ascii_equals

# database_os, os and display_name are not compared. That is how stored
# identities were assigned historically; changing it would re-key tests.
MATCH_ATTRIBUTES: tuple[Attribute, ...] = (
    Attribute.APPROACH,
    Attribute.CLASSIFICATION,
    Attribute.DATABASE,
    Attribute.FRAMEWORK,
    Attribute.LANGUAGE,
    Attribute.ORM,
    Attribute.PLATFORM,
    Attribute.WEBSERVER,
)


def matches_on_attributes(a: TestDefinition, b: TestDefinition) -> bool:
    if ascii_equals(a.name, b.name):
        return True
    return all(ascii_equals(a.value_of(attribute), b.value_of(attribute)) for attribute in MATCH_ATTRIBUTES)


def next_identity(previous: Mapping[int, TestDefinition]) -> int:
    return 1 + max(previous, default=0)


def find_match(test: TestDefinition, previous: Mapping[int, TestDefinition]) -> int | None:
    for identity, candidate in previous.items():
        if matches_on_attributes(test, candidate):
            return identity
    return None


def assign_identities(
    previous: Mapping[int, TestDefinition],
    tests: Iterable[TestDefinition],
) -> dict[int, TestDefinition]:
    """Give every test of a new run a stable identity.

    A test that matches a previously stored test reuses its identity. When two
    new tests match the same stored test, the first one keeps the identity and
    the later one gets a fresh identity rather than overwriting it. Fresh
    identities start above the highest stored identity.
    """
    fresh = next_identity(previous)
    assigned: dict[int, TestDefinition] = {}

    for test in tests:
        identity = find_match(test, previous)
        if identity is None or identity in assigned:
            identity = fresh
            fresh += 1
        assigned[identity] = test

    return assigned
