import pytest

from typst_package_check.core.exceptions import ManifestInvalid, ManifestMalformed
from typst_package_check.package.manifest import key_span, parse_manifest, validate_files

from tests.helpers import MANIFEST, make_files

TEMPLATE_MANIFEST = MANIFEST + """
[template]
path = "template"
entrypoint = "main.typ"
thumbnail = "thumbnail.png"
"""


class TestParseManifest:
    def test_minimal_manifest(self):
        manifest = parse_manifest(MANIFEST)
        assert manifest.package.name == "mypkg"
        assert manifest.package.version == "1.0.0"
        assert manifest.package.entrypoint == "lib.typ"
        assert manifest.package.authors == []
        assert manifest.template is None

    def test_template_entrypoint_is_relative_to_root(self):
        manifest = parse_manifest(TEMPLATE_MANIFEST)
        assert manifest.template is not None
        assert manifest.template.entrypoint_path == "template/main.typ"

    def test_entrypoint_is_normalized(self):
        manifest = parse_manifest(MANIFEST.replace('"lib.typ"', '"./src/../lib.typ"'))
        assert manifest.package.entrypoint == "lib.typ"

    def test_malformed_toml(self):
        with pytest.raises(ManifestMalformed):
            parse_manifest("[package\nname = ")

    def test_missing_package_table(self):
        with pytest.raises(ManifestInvalid) as exc_info:
            parse_manifest('[template]\npath = "t"\n')
        assert exc_info.value.problems == [("package", None, "The `[package]` table is required")]

    def test_missing_fields_are_all_reported(self):
        with pytest.raises(ManifestInvalid) as exc_info:
            parse_manifest('[package]\nname = "mypkg"\n')
        problems = exc_info.value.problems
        assert ("package", "version", "`package.version` is required") in problems
        assert ("package", "entrypoint", "`package.entrypoint` is required") in problems
        assert len(problems) == 2

    def test_invalid_name_and_version(self):
        text = MANIFEST.replace('"mypkg"', '"My_Pkg"').replace('"1.0.0"', '"1.0"')
        with pytest.raises(ManifestInvalid) as exc_info:
            parse_manifest(text)
        keys = {key for _, key, _ in exc_info.value.problems}
        assert keys == {"name", "version"}
        messages = " ".join(message for _, _, message in exc_info.value.problems)
        assert "Value error" not in messages

    @pytest.mark.parametrize("entrypoint", ["/lib.typ", "../lib.typ", ""])
    def test_entrypoint_must_stay_inside_package(self, entrypoint):
        with pytest.raises(ManifestInvalid) as exc_info:
            parse_manifest(MANIFEST.replace('"lib.typ"', f'"{entrypoint}"'))
        assert exc_info.value.problems[0][:2] == ("package", "entrypoint")


class TestValidateFiles:
    def test_existing_entrypoint(self):
        validate_files(parse_manifest(MANIFEST), make_files({"lib.typ": ""}))

    def test_missing_entrypoint(self):
        with pytest.raises(ManifestInvalid) as exc_info:
            validate_files(parse_manifest(MANIFEST), make_files({"other.typ": ""}))
        assert exc_info.value.problems == [
            ("package", "entrypoint", "Package entrypoint `lib.typ` does not exist"),
        ]

    def test_template_files(self):
        files = make_files({"lib.typ": "", "template/other.typ": ""}, manifest=TEMPLATE_MANIFEST)
        with pytest.raises(ManifestInvalid) as exc_info:
            validate_files(parse_manifest(TEMPLATE_MANIFEST), files)
        keys = [key for _, key, _ in exc_info.value.problems]
        assert keys == ["entrypoint", "thumbnail"]

    def test_missing_template_directory(self):
        files = make_files({"lib.typ": "", "thumbnail.png": b"png"}, manifest=TEMPLATE_MANIFEST)
        with pytest.raises(ManifestInvalid) as exc_info:
            validate_files(parse_manifest(TEMPLATE_MANIFEST), files)
        assert [key for _, key, _ in exc_info.value.problems] == ["path", "entrypoint"]


class TestKeySpan:
    def test_key(self):
        span = key_span(MANIFEST, "package", "version")
        assert span is not None
        assert MANIFEST[span.start:span.end] == 'version = "1.0.0"'

    def test_table_header(self):
        span = key_span(MANIFEST, "package")
        assert span is not None
        assert MANIFEST[span.start:span.end] == "[package]"

    def test_key_in_other_table_is_not_matched(self):
        assert key_span(TEMPLATE_MANIFEST, "package", "path") is None
        assert key_span(TEMPLATE_MANIFEST, "template", "path") is not None

    def test_missing_key(self):
        assert key_span(MANIFEST, "package", "authors") is None
