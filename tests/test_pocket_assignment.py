"""Tests for the pocket assignment engine."""

from pocketci.domain import Branch, BuildTarget, Commit, Repository
from pocketci.services.pocket_service import PocketAssigner

from conftest import make_config

SHA = 'f' * 40


def assign(assigner, branch_name, repo='hello', siblings=()):
    repository = Repository(repo, '/dev/null', '/dev/null')
    branch = Branch(repo, branch_name, SHA)
    commit = Commit(SHA, repo, branch_name)
    return assigner.assign(repository, branch, commit, observed_at=5.0, siblings=siblings)


class TestPocketAssigner:
    """Tests for PocketAssigner."""

    def test_master_binds_main_of_every_codename(self, tmp_path):
        assigner = PocketAssigner.from_config(make_config(tmp_path))
        bound = assign(assigner, 'master')
        assert {b.target for b in bound} == {
            BuildTarget('hello', 'jammy', 'main'),
            BuildTarget('hello', 'noble', 'main'),
        }
        assert all(b.commit_id == SHA for b in bound)

    def test_codename_specific_branch(self, tmp_path):
        assigner = PocketAssigner.from_config(make_config(tmp_path))
        bound = assign(assigner, 'master_noble')
        assert {b.target for b in bound} == {BuildTarget('hello', 'noble', 'main')}

    def test_pocket_only_accepted_by_some_codenames(self, tmp_path):
        assigner = PocketAssigner.from_config(make_config(tmp_path))
        bound = assign(assigner, 'proposed-fix')
        assert {b.target for b in bound} == {BuildTarget('hello', 'jammy', 'proposed')}

    def test_unmatched_branch_yields_nothing(self, tmp_path):
        assigner = PocketAssigner.from_config(make_config(tmp_path))
        assert assign(assigner, 'feature-x') == frozenset()

    def test_first_matching_pocket_wins(self, tmp_path):
        config = make_config(tmp_path)
        # Both pockets accept "proposed-main"; main is listed first for jammy
        config['pockets'][0]['rules'].append({'type': 'glob', 'pattern': 'proposed-*'})
        assigner = PocketAssigner.from_config(config)
        bound = assign(assigner, 'proposed-main')
        assert BuildTarget('hello', 'jammy', 'main') in {b.target for b in bound}
        assert BuildTarget('hello', 'jammy', 'proposed') not in {b.target for b in bound}

    def test_codename_pocket_order_decides(self, tmp_path):
        config = make_config(tmp_path)
        config['pockets'][0]['rules'].append({'type': 'glob', 'pattern': 'proposed-*'})
        config['codenames'][0]['pockets'] = ['proposed', 'main']
        assigner = PocketAssigner.from_config(config)
        targets = {b.target for b in assign(assigner, 'proposed-main')}
        assert BuildTarget('hello', 'jammy', 'proposed') in targets
        assert BuildTarget('hello', 'jammy', 'main') not in targets

    def test_multi_match_all(self, tmp_path):
        config = make_config(tmp_path, assignment={'multi_match': 'all'})
        config['pockets'][0]['rules'].append({'type': 'glob', 'pattern': 'proposed-*'})
        assigner = PocketAssigner.from_config(config)
        targets = {b.target for b in assign(assigner, 'proposed-main')}
        assert BuildTarget('hello', 'jammy', 'main') in targets
        assert BuildTarget('hello', 'jammy', 'proposed') in targets

    def test_deterministic(self, tmp_path):
        assigner = PocketAssigner.from_config(make_config(tmp_path))
        assert assign(assigner, 'master') == assign(assigner, 'master')

    def test_codename_specific_sibling_takes_the_target(self, tmp_path):
        assigner = PocketAssigner.from_config(make_config(tmp_path))
        bound = assign(assigner, 'master', siblings=['master', 'master_jammy', 'proposed-fix'])
        assert {b.target for b in bound} == {BuildTarget('hello', 'noble', 'main')}

    def test_specific_branch_ignores_generic_sibling(self, tmp_path):
        assigner = PocketAssigner.from_config(make_config(tmp_path))
        bound = assign(assigner, 'master_jammy', siblings=['master', 'master_jammy'])
        assert {b.target for b in bound} == {BuildTarget('hello', 'jammy', 'main')}

    def test_generic_siblings_do_not_shadow_each_other(self, tmp_path):
        assigner = PocketAssigner.from_config(make_config(tmp_path))
        bound = assign(assigner, 'proposed-a', siblings=['proposed-a', 'proposed-b'])
        assert {b.target for b in bound} == {BuildTarget('hello', 'jammy', 'proposed')}
