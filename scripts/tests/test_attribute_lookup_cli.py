from __future__ import annotations

import io
import json
import shutil
import sys
import tempfile
import unittest
import zipfile
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest import mock


ROOT = Path(__file__).resolve().parents[2]
SCRIPTS_DIR = ROOT / "scripts"
if str(SCRIPTS_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPTS_DIR))

from attribute_lookup import cli, render, schema, store  # noqa: E402
from attribute_lookup.models import Attribute  # noqa: E402
from attribute_lookup.pipeline import reconcile_lookup, summarize_changes  # noqa: E402

FIXTURE_DIR = ROOT / "eval/fixtures/attribute-lookup-v1"
LOOKUP_FIXTURE = FIXTURE_DIR / "tfb_lookup.json"
METADATA_FIXTURE = FIXTURE_DIR / "test_metadata.json"


def _run(argv: list[str]) -> tuple[int, str, str]:
    out = io.StringIO()
    err = io.StringIO()
    with redirect_stdout(out), redirect_stderr(err):
        code = cli.main(argv)
    return code, out.getvalue(), err.getvalue()


class LookupSchemaTest(unittest.TestCase):
    def test_fixture_and_reconciled_output_validate(self) -> None:
        doc = json.loads(LOOKUP_FIXTURE.read_text(encoding="utf-8"))
        schema.validate_lookup_doc(doc)

        updated = reconcile_lookup(store.load_lookup(LOOKUP_FIXTURE), store.load_test_metadata(METADATA_FIXTURE))
        schema.validate_lookup_doc(updated.to_dict())

    def test_rejects_malformed_documents(self) -> None:
        doc = json.loads(LOOKUP_FIXTURE.read_text(encoding="utf-8"))
        doc["attributes"]["mystery"] = {"code": "m", "list": [], "v": []}
        doc["tests"]["1"]["ii"] = "one"
        del doc["tests"]["2"]["f"]

        with self.assertRaises(schema.LookupValidationError) as ctx:
            schema.validate_lookup_doc(doc)
        message = str(ctx.exception)
        self.assertIn("attributes", message)
        self.assertIn("tests/1/ii", message)
        self.assertIn("'f' is a required property", message)

    def test_rejects_missing_top_level_keys(self) -> None:
        errors = schema.schema_errors({"attributes": {}})
        self.assertEqual(errors, ["<root>: 'tests' is a required property"])

    def test_default_schema_is_package_data(self) -> None:
        resource = schema.default_schema_resource()

        self.assertTrue(resource.is_file())
        location = Path(str(resource))
        self.assertEqual(location.name, schema.SCHEMA_FILE_NAME)
        self.assertEqual(location.parent.name, "schemas")
        self.assertEqual(location.parent.parent.name, "attribute_lookup")
        self.assertEqual(json.loads(resource.read_text(encoding="utf-8"))["required"], ["attributes", "tests"])


class LookupStoreTest(unittest.TestCase):
    def test_missing_lookup_is_unavailable(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(store.LookupUnavailableError):
                store.load_lookup(Path(tmpdir) / "tfb_lookup.json")

    def test_unparseable_lookup_is_unavailable(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "tfb_lookup.json"
            path.write_text("{not json", encoding="utf-8")
            with self.assertRaises(store.LookupUnavailableError):
                store.load_lookup(path)

    def test_reads_metadata_from_results_zip(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            archive = Path(tmpdir) / "results.zip"
            with zipfile.ZipFile(archive, "w") as zf:
                zf.writestr("results/20261019/results.json", "{}")
                zf.writestr("results/20261019/test_metadata.json", METADATA_FIXTURE.read_text(encoding="utf-8"))

            tests = store.load_test_metadata(archive)

        self.assertEqual([t.name for t in tests], ["servlet", "gemini-mysql", "fastify-postgres", "gemini-postgres"])

    def test_zip_without_metadata_is_not_found(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            archive = Path(tmpdir) / "results.zip"
            with zipfile.ZipFile(archive, "w") as zf:
                zf.writestr("results/results.json", "{}")
            with self.assertRaises(store.TestMetadataNotFoundError):
                store.load_test_metadata(archive)

    def test_empty_metadata_is_not_found(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "test_metadata.json"
            path.write_text("[]\n", encoding="utf-8")
            with self.assertRaises(store.TestMetadataNotFoundError):
                store.load_test_metadata(path)

    def test_save_replaces_file_and_leaves_no_temp_files(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            target = Path(tmpdir) / "attributes" / "tfb_lookup.json"
            lookup = store.load_lookup(LOOKUP_FIXTURE)

            store.save_lookup(target, lookup)
            store.save_lookup(target, lookup)

            self.assertEqual(json.loads(target.read_text(encoding="utf-8")), lookup.to_dict())
            self.assertEqual([p.name for p in target.parent.iterdir()], ["tfb_lookup.json"])

    def test_load_with_validation_rejects_schema_violations(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "tfb_lookup.json"
            path.write_text(json.dumps({"attributes": {}}), encoding="utf-8")

            self.assertEqual(store.load_lookup(path).minified_tests, {})
            with self.assertRaises(schema.LookupValidationError):
                store.load_lookup(path, validate=True)


class RenderTest(unittest.TestCase):
    def test_json_view_has_attributes_and_tests(self) -> None:
        lookup = store.load_lookup(LOOKUP_FIXTURE)
        view = render.attributes_json_view(lookup)
        self.assertEqual(sorted(view), ["attributes", "tests"])
        self.assertEqual(view["attributes"]["framework"]["list"], ["gemini", "express", "servlet"])

    def test_markdown_flags_unused_values_and_lists_tests(self) -> None:
        old = store.load_lookup(LOOKUP_FIXTURE)
        updated = reconcile_lookup(old, store.load_test_metadata(METADATA_FIXTURE))

        markdown = render.render_lookup_markdown(
            updated,
            file_name="results.zip",
            changes=summarize_changes(old, updated),
        )

        self.assertIn("# Attribute Lookup: results.zip", markdown)
        self.assertIn("| 1 | `express` | unused |", markdown)
        self.assertIn("| `framework` | `fastify` | `express` |", markdown)
        self.assertIn("| 6 | `fastify-postgres` |", markdown)
        self.assertIn("- New identities: `2`", markdown)


class CliTest(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self.lookup_path = self.tmp / "attributes" / "tfb_lookup.json"
        self.lookup_path.parent.mkdir(parents=True)
        shutil.copyfile(LOOKUP_FIXTURE, self.lookup_path)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_preview_json_does_not_modify_lookup(self) -> None:
        before = self.lookup_path.read_text(encoding="utf-8")
        code, out, _ = _run(
            ["preview", "--lookup", str(self.lookup_path), "--tests", str(METADATA_FIXTURE), "--format", "json"]
        )

        self.assertEqual(code, cli.EXIT_OK)
        view = json.loads(out)
        self.assertEqual(sorted(view["tests"]), ["1", "2", "6", "7"])
        self.assertEqual(self.lookup_path.read_text(encoding="utf-8"), before)

    def test_preview_markdown_to_file(self) -> None:
        out_path = self.tmp / "review" / "lookup.md"
        code, out, _ = _run(
            ["preview", "--lookup", str(self.lookup_path), "--tests", str(METADATA_FIXTURE), "--out", str(out_path)]
        )

        self.assertEqual(code, cli.EXIT_OK)
        self.assertIn(f"[attribute-lookup] wrote {out_path}", out)
        self.assertIn("## Attributes", out_path.read_text(encoding="utf-8"))

    def test_apply_persists_reconciled_lookup(self) -> None:
        code, out, _ = _run(["apply", "--lookup", str(self.lookup_path), "--tests", str(METADATA_FIXTURE)])

        self.assertEqual(code, cli.EXIT_OK)
        self.assertIn("framework: added fastify", out)
        self.assertIn("tests: 2 reused, 2 new, 1 dropped", out)
        saved = store.load_lookup(self.lookup_path)
        self.assertEqual(saved.attributes[Attribute.FRAMEWORK].values, ("gemini", "-express", "servlet", "fastify"))

    def test_apply_dry_run_leaves_lookup(self) -> None:
        before = self.lookup_path.read_text(encoding="utf-8")
        code, out, _ = _run(
            ["apply", "--lookup", str(self.lookup_path), "--tests", str(METADATA_FIXTURE), "--dry-run"]
        )
        self.assertEqual(code, cli.EXIT_OK)
        self.assertIn("dry run", out)
        self.assertEqual(self.lookup_path.read_text(encoding="utf-8"), before)

    def test_missing_lookup_reports_unavailable(self) -> None:
        code, _, err = _run(["apply", "--lookup", str(self.tmp / "nope.json"), "--tests", str(METADATA_FIXTURE)])
        self.assertEqual(code, cli.EXIT_UNAVAILABLE)
        self.assertIn("[attribute-lookup] ERROR:", err)

    def test_empty_run_reports_not_found(self) -> None:
        empty = self.tmp / "test_metadata.json"
        empty.write_text("[]", encoding="utf-8")
        code, _, err = _run(["apply", "--lookup", str(self.lookup_path), "--tests", str(empty)])
        self.assertEqual(code, cli.EXIT_NOT_FOUND)
        self.assertIn("no test definitions", err)

    def test_save_validates_before_replacing(self) -> None:
        edited = json.loads(LOOKUP_FIXTURE.read_text(encoding="utf-8"))
        edited["attributes"]["framework"]["list"][1] = "-express"
        edited_path = self.tmp / "edited.json"
        edited_path.write_text(json.dumps(edited), encoding="utf-8")

        code, _, _ = _run(["save", "--lookup-json", str(edited_path), "--lookup", str(self.lookup_path)])

        self.assertEqual(code, cli.EXIT_OK)
        saved = store.load_lookup(self.lookup_path)
        self.assertEqual(saved.attributes[Attribute.FRAMEWORK].values, ("gemini", "-express", "servlet"))

    def test_save_rejects_invalid_document(self) -> None:
        before = self.lookup_path.read_text(encoding="utf-8")
        bad_path = self.tmp / "bad.json"
        bad_path.write_text(json.dumps({"attributes": {}}), encoding="utf-8")

        code, _, err = _run(["save", "--lookup-json", str(bad_path), "--lookup", str(self.lookup_path)])

        self.assertEqual(code, cli.EXIT_INVALID)
        self.assertIn("lookup validation failed", err)
        self.assertEqual(self.lookup_path.read_text(encoding="utf-8"), before)

    def test_default_lookup_path_honours_environment(self) -> None:
        with mock.patch.dict("os.environ", {cli.ATTRIBUTES_DIR_ENV: str(self.lookup_path.parent)}):
            self.assertEqual(cli.default_lookup_path(), self.lookup_path)

    def test_validate_flag_rejects_malformed_lookup(self) -> None:
        doc = json.loads(LOOKUP_FIXTURE.read_text(encoding="utf-8"))
        doc["tests"]["1"]["ii"] = "one"
        self.lookup_path.write_text(json.dumps(doc), encoding="utf-8")
        before = self.lookup_path.read_text(encoding="utf-8")

        for command in ("preview", "apply"):
            with self.subTest(command=command):
                argv = [command, "--lookup", str(self.lookup_path), "--tests", str(METADATA_FIXTURE)]

                code, _, err = _run(argv + ["--validate"])
                self.assertEqual(code, cli.EXIT_INVALID)
                self.assertIn("lookup validation failed", err)
                self.assertIn("tests/1/ii", err)
                self.assertEqual(self.lookup_path.read_text(encoding="utf-8"), before)

        code, _, _ = _run(["preview", "--lookup", str(self.lookup_path), "--tests", str(METADATA_FIXTURE)])
        self.assertEqual(code, cli.EXIT_OK)

    def test_default_lookup_path_is_relative_to_working_directory(self) -> None:
        with mock.patch.dict("os.environ", {cli.ATTRIBUTES_DIR_ENV: ""}):
            self.assertEqual(cli.default_lookup_path(), Path("data") / "attributes" / "tfb_lookup.json")


if __name__ == "__main__":
    unittest.main()
