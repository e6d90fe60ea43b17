from __future__ import annotations

from .models import Attribute, AttributeLookup, TestDefinition


def _values_by_index(lookup: AttributeLookup) -> dict[Attribute, dict[str, str]]:
    # Keyed by the decimal string exactly as stored, so "05" or "-1" never resolve.
    return {
        attribute: {str(index): value for index, value in enumerate(info.values)}
        for attribute, info in lookup.attributes.items()
    }


def _identity_from_key(identity_key: str) -> int | None:
    # Only canonical decimal keys, so "05", " 5" and "+5" never collapse onto 5.
    if not (identity_key.isascii() and identity_key.isdigit()):
        return None
    identity = int(identity_key)
    return identity if str(identity) == identity_key else None


def unminify_tests(lookup: AttributeLookup) -> dict[int, TestDefinition]:
    """Expand the minified tests of a lookup back into full test definitions.

    The lookup file is hand-edited, so nothing here raises: an index with no
    matching dictionary entry resolves to "", and a ``versus`` reference to a
    missing identity resolves to "". Entries whose identity key is not a
    canonical decimal integer are skipped.
    """
    values = _values_by_index(lookup)
    result: dict[int, TestDefinition] = {}

    for identity_key, minified in lookup.minified_tests.items():
        identity = _identity_from_key(identity_key)
        if identity is None:
            continue

        versus = ""
        if minified.versus:
            versus_test = lookup.minified_tests.get(str(minified.versus[0]))
            versus = versus_test.name if versus_test is not None else ""

        resolved: dict[str, str] = {}
        for attribute in Attribute:
            stored = minified.value_of(attribute)
            if attribute.is_literal:
                resolved[attribute.value] = stored
            else:
                resolved[attribute.value] = values.get(attribute, {}).get(stored, "")

        result[identity] = TestDefinition(**resolved, notes="", versus=versus)

    return result
