from __future__ import annotations

from collections.abc import Iterable, Mapping

from .models import UNUSED_MARKER, Attribute, AttributeInfo, TestDefinition, ascii_lower, fold_value, is_unused


def observed_values(attribute: Attribute, tests: Iterable[TestDefinition]) -> list[str]:
    """Distinct values of one attribute across a run, in first-seen order and casing.

    Run values are compared ASCII-lowercased only; a leading ``-`` is part of
    the value here, not the unused marker.
    """
    seen: set[str] = set()
    values: list[str] = []
    for test in tests:
        value = test.value_of(attribute)
        key = ascii_lower(value)
        if key in seen:
            continue
        seen.add(key)
        values.append(value)
    return values


def reconcile_attribute(info: AttributeInfo, observed: Iterable[str]) -> AttributeInfo:
    """Merge one run's values into an attribute dictionary.

    Existing entries keep their position. Entries the run did not use gain the
    unused marker; entries already marked stay marked even when the run uses
    them again. Values not yet known are appended. A run value is known when
    it matches a stored entry either as stored or with the marker stripped.
    """
    observed = list(observed)
    observed_keys = {ascii_lower(value) for value in observed}
    known_keys = {fold_value(value) for value in info.values}
    known_keys.update(ascii_lower(value) for value in info.values)

    updated: list[str] = []
    for value in info.values:
        if is_unused(value) or ascii_lower(value) in observed_keys:
            updated.append(value)
        else:
            updated.append(UNUSED_MARKER + value)

    for value in observed:
        key = ascii_lower(value)
        if key in known_keys:
            continue
        known_keys.add(key)
        updated.append(value)

    return AttributeInfo(code=info.code, values=tuple(updated), version=info.version)


def reconcile_attributes(
    previous: Mapping[Attribute, AttributeInfo],
    tests: Iterable[TestDefinition],
) -> dict[Attribute, AttributeInfo]:
    """Reconcile every stored dictionary against the tests of a new run.

    Only attributes that already have a dictionary are carried; a run never
    introduces a new attribute.
    """
    tests = list(tests)
    return {
        attribute: reconcile_attribute(info, observed_values(attribute, tests))
        for attribute, info in previous.items()
    }
