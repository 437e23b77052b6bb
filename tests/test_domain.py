"""Tests for the domain layer."""

import pytest

from pocketci.domain import (
    BuildOutcome,
    BuildRecord,
    BuildStatus,
    BuildTarget,
    Codename,
    OutcomeKind,
    PassSummary,
    Pocket,
    PocketRule,
    Snapshot,
)


class TestPocketRule:
    """Tests for branch-name matching rules."""

    def test_codename_placeholder_makes_rule_specific(self):
        assert PocketRule('exact', 'master_{codename}').specific
        assert not PocketRule('glob', 'proposed*').specific

    def test_exact(self):
        rule = PocketRule('exact', 'master')
        assert rule.matches('master', 'jammy')
        assert not rule.matches('master2', 'jammy')

    def test_exact_with_codename(self):
        rule = PocketRule('exact', 'master_{codename}')
        assert rule.matches('master_jammy', 'jammy')
        assert not rule.matches('master_jammy', 'noble')

    def test_glob(self):
        rule = PocketRule('glob', 'proposed*')
        assert rule.matches('proposed', 'jammy')
        assert rule.matches('proposed-fix', 'jammy')
        assert not rule.matches('unproposed', 'jammy')

    def test_glob_is_case_sensitive(self):
        assert not PocketRule('glob', 'master*').matches('Master', 'jammy')

    def test_regex_must_match_whole_name(self):
        rule = PocketRule('regex', r'release-\d+')
        assert rule.matches('release-42', 'jammy')
        assert not rule.matches('release-42-rc', 'jammy')

    def test_regex_codename_is_escaped(self):
        rule = PocketRule('regex', r'{codename}/.+')
        assert rule.matches('a.b/x', 'a.b')
        assert not rule.matches('aXb/x', 'a.b')

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            PocketRule('prefix', 'x').matches('x', 'jammy')

    def test_from_dict_round_trip(self):
        data = {'type': 'glob', 'pattern': 'proposed*'}
        assert PocketRule.from_dict(data).to_dict() == data


class TestPocketAndCodename:
    """Tests for configuration objects."""

    def test_pocket_specificity(self):
        pocket = Pocket.from_dict({'name': 'main', 'rules': [
            {'type': 'exact', 'pattern': 'master'},
            {'type': 'exact', 'pattern': 'master_{codename}'},
        ]})
        assert pocket.specificity('master', 'noble') == 0
        assert pocket.specificity('master_noble', 'noble') == 1
        assert pocket.specificity('master_noble', 'jammy') is None
        assert pocket.specificity('develop', 'noble') is None

    def test_codename_keeps_pocket_order(self):
        codename = Codename.from_dict({'name': 'jammy', 'release': 22.04, 'pockets': ['proposed', 'main']})
        assert codename.pockets == ('proposed', 'main')
        assert codename.release == '22.04'


class TestBuildTarget:
    """Tests for BuildTarget."""

    def test_str_and_parse(self):
        target = BuildTarget('hello', 'jammy', 'main')
        assert str(target) == 'hello@jammy/main'
        assert BuildTarget.parse('hello@jammy/main') == target

    def test_parse_rejects_garbage(self):
        with pytest.raises(ValueError):
            BuildTarget.parse('hello/jammy')

    def test_targets_are_ordered(self):
        targets = [BuildTarget('b', 'jammy', 'main'), BuildTarget('a', 'noble', 'main')]
        assert sorted(targets)[0].repository == 'a'


class TestBuildRecord:
    """Tests for BuildRecord and BuildOutcome."""

    def _record(self, **kwargs):
        defaults = dict(id=1, target=BuildTarget('hello', 'jammy', 'main'),
                        commit_id='a' * 40, status=BuildStatus.FAILED, attempts=3)
        defaults.update(kwargs)
        return BuildRecord(**defaults)

    def test_needs_attention_after_max_attempts(self):
        assert self._record().needs_attention(3)
        assert not self._record(attempts=2).needs_attention(3)
        assert not self._record(status=BuildStatus.SUCCEEDED).needs_attention(3)

    def test_to_dict(self):
        data = self._record(failure_reason='boom', observed_at=0.0).to_dict()
        assert data['target'] == 'hello@jammy/main'
        assert data['status'] == 'failed'
        assert data['failure_reason'] == 'boom'
        assert 'next_attempt_at' not in data

    def test_outcome_constructors(self):
        assert BuildOutcome.succeeded().is_success
        assert BuildOutcome.failed('x').kind is OutcomeKind.FAILED
        assert BuildOutcome.unavailable('down').reason == 'down'


class TestSnapshotAndSummary:
    """Tests for Snapshot and PassSummary."""

    def test_non_buildable_snapshot_dict_has_no_archive(self):
        data = Snapshot('c' * 40, 'hello', buildable=False).to_dict()
        assert data['buildable'] is False
        assert 'location' not in data
        assert 'digest' not in data

    def test_summary_counters(self):
        summary = PassSummary()
        summary.add('builds_dispatched')
        summary.add('builds_dispatched', 2)
        assert summary.builds_dispatched == 3
        assert summary.clean

    def test_summary_errors_make_it_unclean(self):
        summary = PassSummary()
        summary.add_error('hello: failed')
        assert not summary.clean
        assert summary.to_dict()['errors'] == ['hello: failed']
