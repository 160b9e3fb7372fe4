from typst_package_check.check.engine import INTERNAL_RULE_FAILURE, CheckContext, Rule, RuleEngine
from typst_package_check.check.imports import ImportGraph, ParseCache
from typst_package_check.check.models import Diagnostic, Severity
from typst_package_check.check.pipeline import check_package
from typst_package_check.check.rules import default_rules
from typst_package_check.package.source import Package

from tests.helpers import make_files


class FixedRule(Rule):
    rule_id = "test/fixed"

    def __init__(self, *messages):
        self.messages = messages

    def evaluate(self, context):
        for message in self.messages:
            yield Diagnostic.warning(self.rule_id, message, file="lib.typ")


class BrokenRule(Rule):
    rule_id = "test/broken"

    def evaluate(self, context):
        yield Diagnostic.warning(self.rule_id, "partial output")
        raise RuntimeError("boom")


def make_context(files=None):
    fileset = make_files(files or {"lib.typ": ""})
    return CheckContext(package=Package(files=fileset), graph=ImportGraph(), parsed=ParseCache(fileset))


class TestRuleEngine:
    def test_collects_in_rule_order(self):
        engine = RuleEngine([FixedRule("b"), FixedRule("a")])
        assert [d.message for d in engine.run(make_context())] == ["b", "a"]

    def test_failing_rule_is_isolated(self):
        engine = RuleEngine([FixedRule("before"), BrokenRule(), FixedRule("after")])
        diagnostics = engine.run(make_context())

        assert [d.message for d in diagnostics if d.rule_id == "test/fixed"] == ["before", "after"]
        failures = [d for d in diagnostics if d.rule_id == INTERNAL_RULE_FAILURE]
        assert len(failures) == 1
        assert failures[0].severity is Severity.ERROR
        assert "test/broken" in failures[0].message
        assert "RuntimeError: boom" in failures[0].message
        # Output of the failed rule is discarded as a whole.
        assert not any(d.message == "partial output" for d in diagnostics)

    def test_failing_rule_in_full_pipeline(self):
        files = make_files({"lib.typ": '#import "missing.typ"\n'})
        result = check_package(files, rules=[*default_rules(), BrokenRule()])
        rule_ids = [d.rule_id for d in result.report.diagnostics]
        assert "imports/unresolved" in rule_ids
        assert INTERNAL_RULE_FAILURE in rule_ids


class TestDefaultRules:
    def test_rule_ids_are_unique(self):
        ids = [rule.rule_id for rule in default_rules()]
        assert len(ids) == len(set(ids))

    def test_every_rule_has_a_description(self):
        assert all(rule.description for rule in default_rules())
