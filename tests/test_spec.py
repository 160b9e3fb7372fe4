import pytest

from typst_package_check.core.exceptions import InvalidPackageSpec
from typst_package_check.package.spec import PackageSpec, PackageVersion


class TestPackageVersion:
    def test_parse(self):
        assert PackageVersion.parse("1.2.3") == PackageVersion(1, 2, 3)
        assert str(PackageVersion.parse("0.10.0")) == "0.10.0"

    def test_ordering_is_numeric(self):
        assert PackageVersion.parse("0.10.0") > PackageVersion.parse("0.9.9")
        assert sorted(PackageVersion.parse(v) for v in ["1.0.0", "0.2.0", "0.10.1"]) == [
            PackageVersion(0, 2, 0),
            PackageVersion(0, 10, 1),
            PackageVersion(1, 0, 0),
        ]

    @pytest.mark.parametrize("value", ["1.0", "1.0.0.0", "01.0.0", "a.b.c", "", "1.0.0-beta"])
    def test_invalid(self, value):
        with pytest.raises(InvalidPackageSpec):
            PackageVersion.parse(value)


class TestPackageSpec:
    def test_parse_with_at_sign(self):
        spec = PackageSpec.parse("@preview/cetz:0.2.1")
        assert spec.namespace == "preview"
        assert spec.name == "cetz"
        assert spec.version == PackageVersion(0, 2, 1)
        assert str(spec) == "@preview/cetz:0.2.1"

    def test_parse_without_at_sign(self):
        assert PackageSpec.parse("preview/cetz:0.2.1") == PackageSpec.parse("@preview/cetz:0.2.1")

    def test_registry_path(self):
        assert PackageSpec.parse("@preview/my-pkg:1.0.0").registry_path() == "packages/preview/my-pkg/1.0.0"

    def test_versionless(self):
        spec = PackageSpec.parse("@preview/cetz:0.2.1")
        assert str(spec.versionless) == "@preview/cetz"
        assert spec.with_version(PackageVersion(0, 3, 0)) == PackageSpec.parse("@preview/cetz:0.3.0")

    @pytest.mark.parametrize(
        "value,fragment",
        [
            ("@cetz:0.2.1", "namespace"),
            ("@preview/cetz", "version"),
            ("@preview/Cetz:0.2.1", "package name"),
            ("@Preview/cetz:0.2.1", "namespace"),
            ("@preview/cetz:latest", "version"),
        ],
    )
    def test_invalid(self, value, fragment):
        with pytest.raises(InvalidPackageSpec) as exc_info:
            PackageSpec.parse(value)
        assert fragment in str(exc_info.value)

    def test_invalid_spec_is_a_value_error(self):
        with pytest.raises(ValueError):
            PackageSpec.parse("nonsense")
