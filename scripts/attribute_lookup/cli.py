from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path

SCRIPT_DIR = Path(__file__).resolve().parent
if str(SCRIPT_DIR.parent) not in sys.path:
    sys.path.insert(0, str(SCRIPT_DIR.parent))

from attribute_lookup.models import lookup_from_dict  # noqa: E402
from attribute_lookup.pipeline import LookupChanges, reconcile_lookup, summarize_changes  # noqa: E402
from attribute_lookup.render import attributes_json_view, render_lookup_markdown  # noqa: E402
from attribute_lookup.schema import LookupValidationError, validate_lookup_doc  # noqa: E402
from attribute_lookup.store import (  # noqa: E402
    LOOKUP_FILE_NAME,
    LookupUnavailableError,
    TestMetadataNotFoundError,
    dump_json,
    load_lookup,
    load_test_metadata,
    save_lookup,
)

ATTRIBUTES_DIR_ENV = "TFB_ATTRIBUTES_DIR"
# Resolved against the working directory.
DEFAULT_ATTRIBUTES_DIR = Path("data") / "attributes"

EXIT_OK = 0
EXIT_INVALID = 1
EXIT_UNAVAILABLE = 3
EXIT_NOT_FOUND = 4

TAG = "[attribute-lookup]"


def default_lookup_path() -> Path:
    attributes_dir = os.environ.get(ATTRIBUTES_DIR_ENV, "")
    return (Path(attributes_dir) if attributes_dir else DEFAULT_ATTRIBUTES_DIR) / LOOKUP_FILE_NAME


def _error(message: object) -> None:
    print(f"{TAG} ERROR: {message}", file=sys.stderr)


def _print_changes(changes: LookupChanges) -> None:
    for change in changes.attributes:
        if change.added:
            print(f"{TAG} {change.attribute.value}: added {', '.join(change.added)}")
        if change.newly_unused:
            print(f"{TAG} {change.attribute.value}: now unused {', '.join(change.newly_unused)}")
    print(
        f"{TAG} tests: {len(changes.reused_identities)} reused, "
        f"{len(changes.new_identities)} new, {len(changes.dropped_identities)} dropped"
    )


def cmd_preview(args: argparse.Namespace) -> int:
    old = load_lookup(Path(args.lookup), validate=args.validate)
    tests_path = Path(args.tests)
    new_tests = load_test_metadata(tests_path)
    updated = reconcile_lookup(old, new_tests)

    if args.format == "json":
        text = dump_json(attributes_json_view(updated))
    else:
        text = render_lookup_markdown(updated, file_name=tests_path.name, changes=summarize_changes(old, updated))

    if args.out:
        out = Path(args.out)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(text, encoding="utf-8")
        print(f"{TAG} wrote {out}")
    else:
        sys.stdout.write(text)
    return EXIT_OK


def cmd_apply(args: argparse.Namespace) -> int:
    lookup_path = Path(args.lookup)
    old = load_lookup(lookup_path, validate=args.validate)
    new_tests = load_test_metadata(Path(args.tests))
    updated = reconcile_lookup(old, new_tests)
    _print_changes(summarize_changes(old, updated))

    if args.dry_run:
        print(f"{TAG} dry run, {lookup_path} left unchanged")
        return EXIT_OK
    save_lookup(lookup_path, updated)
    print(f"{TAG} wrote {lookup_path}")
    return EXIT_OK


def cmd_save(args: argparse.Namespace) -> int:
    source = Path(args.lookup_json)
    try:
        doc = json.loads(source.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise LookupValidationError(f"{source}: unable to read lookup JSON: {exc}") from exc
    validate_lookup_doc(doc)

    lookup_path = Path(args.lookup)
    save_lookup(lookup_path, lookup_from_dict(doc))
    print(f"{TAG} wrote {lookup_path}")
    return EXIT_OK


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="attribute-lookup",
        description="Reconcile tfb_lookup.json attribute dictionaries with a run's test metadata",
    )
    sub = parser.add_subparsers(dest="cmd", required=True)
    lookup_help = f"Path to {LOOKUP_FILE_NAME} (default: ${ATTRIBUTES_DIR_ENV}/{LOOKUP_FILE_NAME} or data/attributes)"
    validate_help = "Check the stored lookup against the lookup schema before reconciling"

    preview = sub.add_parser("preview", help="Show the reconciled lookup for a run without saving it")
    preview.add_argument("--lookup", default=None, help=lookup_help)
    preview.add_argument("--tests", required=True, help="Path to test_metadata.json or a results .zip")
    preview.add_argument("--format", choices=("json", "markdown"), default="markdown")
    preview.add_argument("--out", default=None, help="Write output here instead of stdout")
    preview.add_argument("--validate", action="store_true", help=validate_help)
    preview.set_defaults(func=cmd_preview)

    apply = sub.add_parser("apply", help="Reconcile the lookup with a run and replace it on disk")
    apply.add_argument("--lookup", default=None, help=lookup_help)
    apply.add_argument("--tests", required=True, help="Path to test_metadata.json or a results .zip")
    apply.add_argument("--dry-run", action="store_true", help="Report changes without writing")
    apply.add_argument("--validate", action="store_true", help=validate_help)
    apply.set_defaults(func=cmd_apply)

    save = sub.add_parser("save", help="Validate an edited lookup document and replace the stored lookup")
    save.add_argument("--lookup-json", required=True, help="Path to the edited lookup JSON")
    save.add_argument("--lookup", default=None, help=lookup_help)
    save.set_defaults(func=cmd_save)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = _parser().parse_args(argv)
    if args.lookup is None:
        args.lookup = str(default_lookup_path())

    try:
        return int(args.func(args))
    except LookupUnavailableError as exc:
        _error(exc)
        return EXIT_UNAVAILABLE
    except TestMetadataNotFoundError as exc:
        _error(exc)
        return EXIT_NOT_FOUND
    except (LookupValidationError, OSError) as exc:
        _error(exc)
        return EXIT_INVALID


if __name__ == "__main__":
    raise SystemExit(main())
