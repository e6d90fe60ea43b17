from __future__ import annotations

from typing import Any

from .models import Attribute, AttributeLookup, is_unused, strip_unused_marker
from .pipeline import LookupChanges
from .unminify import unminify_tests


def attributes_json_view(lookup: AttributeLookup) -> dict[str, Any]:
    """The machine-readable view served alongside the review page."""
    doc = lookup.to_dict()
    return {"attributes": doc["attributes"], "tests": doc["tests"]}


def _cell(value: str) -> str:
    return value.replace("|", "\\|").replace("\n", " ").strip()


def render_lookup_markdown(
    lookup: AttributeLookup,
    *,
    file_name: str,
    changes: LookupChanges | None = None,
) -> str:
    lines: list[str] = []
    lines.append(f"# Attribute Lookup: {file_name}")
    lines.append("")
    lines.append("## Summary")
    lines.append(f"- Attributes: `{len(lookup.attributes)}`")
    lines.append(f"- Tests: `{len(lookup.minified_tests)}`")
    if changes is not None:
        lines.append(f"- Reused identities: `{len(changes.reused_identities)}`")
        lines.append(f"- New identities: `{len(changes.new_identities)}`")
        lines.append(f"- Dropped identities: `{len(changes.dropped_identities)}`")
    lines.append("")

    if changes is not None and changes.attributes:
        lines.append("## Changes")
        lines.append("| Attribute | Added | Newly unused |")
        lines.append("|---|---|---|")
        for change in changes.attributes:
            added = ", ".join(f"`{_cell(v)}`" for v in change.added)
            unused = ", ".join(f"`{_cell(strip_unused_marker(v))}`" for v in change.newly_unused)
            lines.append(f"| `{change.attribute.value}` | {added} | {unused} |")
        lines.append("")

    lines.append("## Attributes")
    for attribute, info in lookup.attributes.items():
        lines.append(f"### {attribute.value} (`{info.code}`)")
        lines.append("| Index | Value | Status |")
        lines.append("|---:|---|---|")
        for index, value in enumerate(info.values):
            status = "unused" if is_unused(value) else "in use"
            lines.append(f"| {index} | `{_cell(strip_unused_marker(value))}` | {status} |")
        lines.append("")

    columns = [
        Attribute.FRAMEWORK,
        Attribute.LANGUAGE,
        Attribute.PLATFORM,
        Attribute.WEBSERVER,
        Attribute.DATABASE,
        Attribute.ORM,
        Attribute.APPROACH,
        Attribute.CLASSIFICATION,
    ]
    lines.append("## Tests")
    lines.append("| ID | Name | " + " | ".join(c.value for c in columns) + " | Versus |")
    lines.append("|---:|---|" + "---|" * len(columns) + "---|")
    for identity, test in sorted(unminify_tests(lookup).items()):
        values = " | ".join(_cell(strip_unused_marker(test.value_of(c))) for c in columns)
        lines.append(f"| {identity} | `{_cell(test.name)}` | {values} | {_cell(test.versus)} |")

    return "\n".join(lines).rstrip() + "\n"
