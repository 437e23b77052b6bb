"""Tests for the repository registry."""

import pytest

from pocketci.database import Database, get_repositories, get_sync_errors, load_branch_heads
from pocketci.domain import PassSummary
from pocketci.infra.github_client import RemoteBranch
from pocketci.services.registry_service import RepositoryRegistry

from conftest import FakeLister, commit_files, git, packaged_repo, requires_git

pytestmark = requires_git


@pytest.fixture
def origin(tmp_path):
    return packaged_repo(tmp_path / 'origins' / 'hello')


def registry_for(config, db_path, clock, lister):
    return RepositoryRegistry(config, lister, db_path, clock=clock)


def heads_in(db_path):
    with Database(db_path=db_path) as db:
        return load_branch_heads(db)


class TestDiscover:
    """Tests for repository discovery."""

    def test_exclude_prefix_and_allow_list(self, config, db_path, clock, tmp_path):
        lister = FakeLister({'acme': {
            'hello': tmp_path / 'a', 'archived-old': tmp_path / 'b', 'world': tmp_path / 'c',
        }})
        names = [r.name for r in registry_for(config, db_path, clock, lister).discover()]
        assert names == ['hello', 'world']

        config['github']['repositories'] = ['world']
        names = [r.name for r in registry_for(config, db_path, clock, lister).discover()]
        assert names == ['world']

    def test_archived_repositories_are_skipped(self, config, db_path, clock, tmp_path):
        lister = FakeLister({'acme': {'hello': tmp_path / 'a', 'legacy': tmp_path / 'b'}})
        lister.archived.add('legacy')
        names = [r.name for r in registry_for(config, db_path, clock, lister).discover()]
        assert names == ['hello']

        config['github']['include_archived'] = True
        names = [r.name for r in registry_for(config, db_path, clock, lister).discover()]
        assert names == ['hello', 'legacy']

    def test_failing_org_is_skipped_and_recorded(self, config, db_path, clock, tmp_path):
        config['github']['organizations'].append({'name': 'other'})
        lister = FakeLister({'other': {'world': tmp_path / 'w'}})
        lister.failing_orgs.add('acme')

        repos = registry_for(config, db_path, clock, lister).discover()

        assert [r.name for r in repos] == ['world']
        with Database(db_path=db_path) as db:
            errors = get_sync_errors(db)
        assert [(e['repository'], e['stage']) for e in errors] == [('acme', 'listing')]

    def test_mirror_paths_live_under_root(self, config, db_path, clock, tmp_path):
        lister = FakeLister({'acme': {'hello': tmp_path / 'a'}})
        [repo] = registry_for(config, db_path, clock, lister).discover()
        assert repo.mirror_path == str(tmp_path / 'state' / 'mirrors' / 'hello.git')
        assert repo.organization == 'acme'


class TestSync:
    """Tests for mirror synchronization and head detection."""

    def test_new_heads_are_observed(self, config, db_path, clock, origin):
        git(origin, 'branch', 'proposed-fix')
        registry = registry_for(config, db_path, clock, FakeLister({'acme': {'hello': origin}}))
        summary = PassSummary()

        observations = list(registry.sync(summary=summary))

        assert sorted(o.branch.name for o in observations) == ['master', 'proposed-fix']
        assert all(o.siblings == ('master', 'proposed-fix') for o in observations)
        master = git(origin, 'rev-parse', 'master')
        assert all(o.commit.id == master for o in observations)
        assert summary.repositories_synced == 1
        assert summary.heads_observed == 2
        with Database(db_path=db_path) as db:
            assert get_repositories(db)[0]['last_synced_at'] is not None

    def test_acknowledged_heads_are_not_emitted_again(self, config, db_path, clock, origin):
        registry = registry_for(config, db_path, clock, FakeLister({'acme': {'hello': origin}}))

        for obs in registry.sync():
            registry.acknowledge(obs)
        assert list(registry.sync()) == []

    def test_unacknowledged_heads_are_emitted_again(self, config, db_path, clock, origin):
        registry = registry_for(config, db_path, clock, FakeLister({'acme': {'hello': origin}}))
        assert len(list(registry.sync())) == 1
        assert len(list(registry.sync())) == 1

    def test_advanced_head_is_observed(self, config, db_path, clock, origin):
        registry = registry_for(config, db_path, clock, FakeLister({'acme': {'hello': origin}}))
        for obs in registry.sync():
            registry.acknowledge(obs)

        new_head = commit_files(origin, {'src/main.c': 'int main(void) { return 1; }\n'})
        [obs] = list(registry.sync())

        assert obs.commit.id == new_head
        assert obs.branch.name == 'master'

    def test_slash_branches_are_skipped(self, config, db_path, clock, origin):
        git(origin, 'branch', 'feature/thing')
        registry = registry_for(config, db_path, clock, FakeLister({'acme': {'hello': origin}}))
        assert [o.branch.name for o in registry.sync()] == ['master']

    def test_deleted_branch_is_retired(self, config, db_path, clock, origin):
        git(origin, 'branch', 'proposed-fix')
        registry = registry_for(config, db_path, clock, FakeLister({'acme': {'hello': origin}}))
        for obs in registry.sync():
            registry.acknowledge(obs)

        git(origin, 'branch', '-D', 'proposed-fix')
        [again] = list(registry.sync())
        assert again.branch.name == 'master'
        assert again.siblings == ('master',)
        assert set(heads_in(db_path)) == {('hello', 'master')}

        registry.acknowledge(again)
        assert list(registry.sync()) == []

    def test_unreachable_repository_does_not_block_others(self, config, db_path, clock, origin, tmp_path):
        ghost = tmp_path / 'origins' / 'ghost'
        lister = FakeLister(
            {'acme': {'hello': origin, 'ghost': ghost}},
            broken={'ghost': [RemoteBranch('master', 'a' * 40)]},
        )
        registry = registry_for(config, db_path, clock, lister)
        summary = PassSummary()

        observations = list(registry.sync(summary=summary))

        assert [o.repository.name for o in observations] == ['hello']
        assert summary.repositories_failed == 1
        assert summary.repositories_synced == 1
        assert not (tmp_path / 'state' / 'mirrors' / 'ghost.git').exists()
        with Database(db_path=db_path) as db:
            errors = get_sync_errors(db)
        assert [(e['repository'], e['stage']) for e in errors] == [('ghost', 'mirror')]

        # Next pass, the repository is reachable again
        packaged_repo(ghost, 'ghost')
        del lister.broken['ghost']
        for obs in observations:
            registry.acknowledge(obs)
        retried = list(registry.sync())
        assert [o.repository.name for o in retried] == ['ghost']
        with Database(db_path=db_path) as db:
            assert get_sync_errors(db) == []

    def test_head_missing_from_mirror_is_not_observed(self, config, db_path, clock, origin):
        lister = FakeLister({'acme': {'hello': origin}}, broken={'hello': [RemoteBranch('master', 'b' * 40)]})
        registry = registry_for(config, db_path, clock, lister)
        assert list(registry.sync()) == []

    def test_corrupt_mirror_is_recloned(self, config, db_path, clock, origin, tmp_path):
        registry = registry_for(config, db_path, clock, FakeLister({'acme': {'hello': origin}}))
        list(registry.sync())

        mirror = tmp_path / 'state' / 'mirrors' / 'hello.git'
        (mirror / 'HEAD').unlink()
        assert len(list(registry.sync())) == 1
        assert (mirror / 'HEAD').exists()

    def test_no_repositories_started_after_shutdown(self, config, db_path, clock, origin):
        lister = FakeLister({'acme': {'hello': origin}})
        registry = registry_for(config, db_path, clock, lister)
        registry.shutdown.set()
        assert list(registry.sync()) == []
        assert 'branches:acme/hello' not in lister.calls
