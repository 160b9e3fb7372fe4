"""End-to-end analysis of packages on disk and in a registry clone."""

from unittest.mock import patch

import httpx

from typst_package_check.check.pipeline import (
    PACKAGE_NOT_FOUND,
    check_directory,
    check_package,
    check_registry_package,
)
from typst_package_check.check.models import Severity
from typst_package_check.package.loader import Registry
from typst_package_check.package.spec import PackageSpec

from tests.helpers import MANIFEST, make_files, published_package, write_tree


class TestScenarios:
    def test_missing_relative_import(self, tmp_path):
        write_tree(tmp_path, {"typst.toml": MANIFEST, "lib.typ": '#import "missing.typ"\n'})
        result = check_directory(tmp_path)

        (d,) = result.report.diagnostics
        assert d.rule_id == "imports/unresolved"
        assert d.severity is Severity.ERROR
        assert d.file == "lib.typ"
        assert "missing.typ" in d.message
        assert result.report.verdict == "fail"

    def test_clean_package(self, tmp_path):
        write_tree(tmp_path, {"typst.toml": MANIFEST, "lib.typ": "#let greet(name) = [Hello #name]\n"})
        result = check_directory(tmp_path)
        assert result.report.diagnostics == ()
        assert result.report.verdict == "pass"

    def test_missing_registry_package(self, registry_root, add_registry_package):
        add_registry_package(
            "preview", "mypkg", "1.0.0",
            published_package(lib='#import "@preview/other:2.0.0": thing\n'),
        )
        with patch.object(httpx.Client, "send") as sync_send, patch.object(httpx.AsyncClient, "send") as async_send:
            result = check_registry_package(Registry(registry_root), PackageSpec.parse("@preview/mypkg:1.0.0"))
        sync_send.assert_not_called()
        async_send.assert_not_called()

        (d,) = result.report.diagnostics
        assert d.rule_id == "imports/package-not-found"
        assert "@preview/other:2.0.0" in d.message
        assert d.file == "lib.typ"


class TestPipeline:
    def test_cycle_terminates_and_is_reported_once(self):
        files = make_files({
            "lib.typ": '#import "a.typ": *\n',
            "a.typ": '#import "b.typ": *\n',
            "b.typ": '#import "a.typ": *\n',
        })
        result = check_package(files)
        assert [d.rule_id for d in result.report.diagnostics] == ["imports/cycle"]

    def test_every_cycle_through_a_shared_file_is_reported(self):
        files = make_files({
            "lib.typ": '#import "b.typ": *\n#import "c.typ": *\n',
            "b.typ": '#import "lib.typ": *\n',
            "c.typ": '#import "lib.typ": *\n',
        })
        result = check_package(files)
        cycles = [d for d in result.report.diagnostics if d.rule_id == "imports/cycle"]
        assert [(d.file, d.message) for d in cycles] == [
            ("b.typ", "Import cycle: b.typ -> lib.typ -> b.typ"),
            ("c.typ", "Import cycle: c.typ -> lib.typ -> c.typ"),
        ]

    def test_deterministic_report(self):
        files = {
            "lib.typ": '#import "missing.typ"\n#import "b.typ"\n#let badName = "x\n',
            "b.typ": '#import "lib.typ"\n',
            "orphan.typ": "",
            "fonts/a.ttf": b"font",
            "README.md": "> [!WARNING]\n> careful\n",
        }
        first = check_package(make_files(files)).report
        second = check_package(make_files(dict(reversed(list(files.items()))))).report
        assert first.to_json() == second.to_json()
        assert first.render() == second.render()

    def test_short_circuit_on_manifest_problems(self, tmp_path):
        write_tree(tmp_path, {"typst.toml": "[package]\n", "lib.typ": '#import "missing.typ"\n'})
        result = check_directory(tmp_path)
        assert {d.rule_id for d in result.report.diagnostics} == {"manifest/invalid"}

    def test_registry_package_not_found(self, registry_root):
        result = check_registry_package(Registry(registry_root), PackageSpec.parse("@preview/mypkg:1.0.0"))
        (d,) = result.report.diagnostics
        assert d.rule_id == PACKAGE_NOT_FOUND
        assert result.report.package == "@preview/mypkg:1.0.0"
        assert not result.passed

    def test_registry_overlay(self, registry_root, add_registry_package):
        add_registry_package("preview", "mypkg", "1.0.0")
        result = check_registry_package(
            Registry(registry_root),
            PackageSpec.parse("@preview/mypkg:1.0.0"),
            overlay={"lib.typ": b'#import "util.typ"\n', "LICENSE": None},
        )
        assert [d.rule_id for d in result.report.diagnostics] == ["files/license", "imports/unresolved"]
