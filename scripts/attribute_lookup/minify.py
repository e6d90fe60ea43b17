from __future__ import annotations

from collections.abc import Mapping

from .models import (
    Attribute,
    AttributeInfo,
    MinifiedTestDefinition,
    TestDefinition,
    ascii_equals,
    ascii_lower,
    fold_value,
)


def _first_index_by_value(attributes: Mapping[Attribute, AttributeInfo]) -> dict[Attribute, dict[str, int]]:
    # An entry's stored spelling wins over a marker-stripped spelling of an earlier entry.
    indexes: dict[Attribute, dict[str, int]] = {}
    for attribute, info in attributes.items():
        by_value: dict[str, int] = {}
        for index, value in enumerate(info.values):
            by_value.setdefault(ascii_lower(value), index)
        for index, value in enumerate(info.values):
            by_value.setdefault(fold_value(value), index)
        indexes[attribute] = by_value
    return indexes


def _versus_identity(versus: str, ordered: list[tuple[int, TestDefinition]]) -> int | None:
    if not versus:
        return None
    for identity, other in ordered:
        if ascii_equals(versus, other.framework) or ascii_equals(versus, other.name):
            return identity
    return None


def minify_tests(
    attributes: Mapping[Attribute, AttributeInfo],
    tests: Mapping[int, TestDefinition],
) -> dict[str, MinifiedTestDefinition]:
    """Encode identity-assigned tests against the reconciled dictionaries.

    Attribute values become the index of the first entry matching them
    case-insensitively as stored, else with the entry's unused marker ignored.
    They become "" when the attribute has no dictionary or the value is not in
    it. ``versus`` names are resolved
    against this same batch by framework or name. Output is ordered by
    identity.
    """
    indexes = _first_index_by_value(attributes)
    ordered = sorted(tests.items())
    result: dict[str, MinifiedTestDefinition] = {}

    for identity, test in ordered:
        encoded: dict[str, str] = {}
        for attribute in Attribute:
            value = test.value_of(attribute)
            if attribute.is_literal:
                encoded[attribute.value] = value
                continue
            index = indexes.get(attribute, {}).get(ascii_lower(value))
            encoded[attribute.value] = "" if index is None else str(index)

        versus = _versus_identity(test.versus, ordered)
        result[str(identity)] = MinifiedTestDefinition(
            identity=identity,
            versus=() if versus is None else (versus,),
            **encoded,
        )

    return result
