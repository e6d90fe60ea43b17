from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from .identity import assign_identities
from .minify import minify_tests
from .models import Attribute, AttributeLookup, TestDefinition, is_unused
from .reconcile import reconcile_attributes
from .unminify import unminify_tests


def reconcile_lookup(old: AttributeLookup, new_tests: Iterable[TestDefinition]) -> AttributeLookup:
    """Produce the lookup that replaces ``old`` after a run with ``new_tests``.

    Pure: ``old`` is read, never modified. Deterministic for identical inputs.
    """
    new_tests = list(new_tests)
    previous_tests = unminify_tests(old)
    attributes = reconcile_attributes(old.attributes, new_tests)
    assigned = assign_identities(previous_tests, new_tests)
    return AttributeLookup(attributes=attributes, minified_tests=minify_tests(attributes, assigned))


@dataclass(frozen=True)
class AttributeChange:
    attribute: Attribute
    added: tuple[str, ...] = ()
    newly_unused: tuple[str, ...] = ()


@dataclass(frozen=True)
class LookupChanges:
    attributes: list[AttributeChange] = field(default_factory=list)
    reused_identities: tuple[int, ...] = ()
    new_identities: tuple[int, ...] = ()
    dropped_identities: tuple[int, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.attributes or self.new_identities or self.dropped_identities)


def _identities(lookup: AttributeLookup) -> set[int]:
    return {test.identity for test in lookup.minified_tests.values()}


def summarize_changes(old: AttributeLookup, new: AttributeLookup) -> LookupChanges:
    """Describe what a reconciliation did, for status output and review pages."""
    changes: list[AttributeChange] = []
    for attribute, info in new.attributes.items():
        before = old.attributes.get(attribute)
        before_values = before.values if before is not None else ()
        added = info.values[len(before_values) :]
        newly_unused = tuple(
            value
            for value, previous in zip(info.values, before_values)
            if is_unused(value) and not is_unused(previous)
        )
        if added or newly_unused:
            changes.append(AttributeChange(attribute=attribute, added=tuple(added), newly_unused=newly_unused))

    old_ids = _identities(old)
    new_ids = _identities(new)
    return LookupChanges(
        attributes=changes,
        reused_identities=tuple(sorted(new_ids & old_ids)),
        new_identities=tuple(sorted(new_ids - old_ids)),
        dropped_identities=tuple(sorted(old_ids - new_ids)),
    )
