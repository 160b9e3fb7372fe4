import json

import pytest

from typst_package_check.cli import EXIT_FAIL, EXIT_FATAL, EXIT_PASS, main

from tests.helpers import MANIFEST, published_package, write_tree


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    monkeypatch.delenv("PACKAGES_DIR", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)


class TestCheckCommand:
    def test_failing_package(self, tmp_path, monkeypatch, capsys):
        write_tree(tmp_path, {"typst.toml": MANIFEST, "lib.typ": '#import "missing.typ"\n'})
        monkeypatch.chdir(tmp_path)

        assert main(["check"]) == EXIT_FAIL
        out = capsys.readouterr().out
        assert "lib.typ\n  error[imports/unresolved] 1:9:" in out
        assert out.rstrip().endswith("FAIL: 1 error, 0 warnings, 0 hints")

    def test_passing_package(self, tmp_path, monkeypatch, capsys):
        write_tree(tmp_path, {"typst.toml": MANIFEST, "lib.typ": "= Hello\n"})
        monkeypatch.chdir(tmp_path)

        assert main(["check"]) == EXIT_PASS
        assert capsys.readouterr().out.strip() == "PASS: 0 errors, 0 warnings, 0 hints"

    def test_registry_package(self, tmp_path, monkeypatch, capsys):
        package = tmp_path / "packages" / "preview" / "mypkg" / "1.0.0"
        write_tree(package, published_package(lib='#import "@preview/other:2.0.0": thing\n'))
        monkeypatch.chdir(tmp_path)

        assert main(["check", "@preview/mypkg:1.0.0", "--json"]) == EXIT_FAIL
        report = json.loads(capsys.readouterr().out)
        assert report["package"] == "@preview/mypkg:1.0.0"
        assert [d["rule_id"] for d in report["diagnostics"]] == ["imports/package-not-found"]

    def test_registry_from_packages_dir(self, tmp_path, monkeypatch, capsys):
        package = tmp_path / "clone" / "packages" / "preview" / "mypkg" / "1.0.0"
        write_tree(package, published_package())
        monkeypatch.setenv("PACKAGES_DIR", str(tmp_path / "clone"))
        monkeypatch.chdir(tmp_path)

        assert main(["check", "@preview/mypkg:1.0.0"]) == EXIT_PASS

    def test_invalid_package_spec(self, capsys):
        assert main(["check", "not-a-spec"]) == EXIT_FATAL
        assert "Error:" in capsys.readouterr().err


class TestOtherCommands:
    def test_server_without_configuration(self, monkeypatch, capsys):
        for name in ("GITHUB_APP_IDENTIFIER", "GITHUB_WEBHOOK_SECRET", "GITHUB_PRIVATE_KEY"):
            monkeypatch.delenv(name, raising=False)
        assert main(["server"]) == EXIT_FATAL
        assert "PACKAGES_DIR" in capsys.readouterr().err

    def test_action_without_configuration(self, monkeypatch, capsys):
        for name in ("GITHUB_INSTALLATION", "GITHUB_APP_IDENTIFIER", "GITHUB_PRIVATE_KEY", "GITHUB_SHA"):
            monkeypatch.delenv(name, raising=False)
        assert main(["action"]) == EXIT_FATAL
        assert "GITHUB_INSTALLATION" in capsys.readouterr().err

    def test_missing_env_file(self, tmp_path, capsys):
        assert main(["--env-file", str(tmp_path / "nope.env"), "check"]) == EXIT_FATAL

    def test_invalid_log_level(self, tmp_path, monkeypatch):
        write_tree(tmp_path, {"typst.toml": MANIFEST, "lib.typ": ""})
        monkeypatch.chdir(tmp_path)
        assert main(["--log-level", "loud", "check"]) == EXIT_FATAL

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            main([])
