"""
Pocket assignment service for pocketci.

Maps a branch to the build targets it feeds. Codenames are evaluated in
configuration order and, within a codename, its pockets in the order the
codename lists them. By default the first matching pocket wins for each
codename; with ``assignment.multi_match: all`` every matching pocket binds.

When two branches of one repository map to the same target, a branch
matched by a codename-specific rule (``master_{codename}``) takes the
target from one matched only by generic rules (``master``).
"""

import logging
from typing import Any, Dict, FrozenSet, Iterable, List, Tuple

from ..domain.repository import Branch, Commit, Repository
from ..domain.target import BoundTarget, BuildTarget, Codename, Pocket

logger = logging.getLogger(__name__)


class PocketAssigner:
    """
    Assigns (repository, branch, commit) to (codename, pocket) targets.

    Example:
        assigner = PocketAssigner.from_config(config)
        for bound in assigner.assign(repository, branch, commit):
            print(bound.target)
    """

    def __init__(self, codenames: List[Codename], pockets: Dict[str, Pocket], multi_match: str = 'first'):
        self.codenames = list(codenames)
        self.pockets = dict(pockets)
        self.multi_match = multi_match

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'PocketAssigner':
        pockets = {p['name']: Pocket.from_dict(p) for p in config.get('pockets', [])}
        codenames = [Codename.from_dict(c) for c in config.get('codenames', [])]
        multi_match = config.get('assignment', {}).get('multi_match', 'first')
        return cls(codenames, pockets, multi_match)

    def matches_for(self, repository: str, branch_name: str) -> List[Tuple[BuildTarget, int]]:
        """Targets a branch maps to with the specificity of each match, in configuration order."""
        matches = []
        for codename in self.codenames:
            for pocket_name in codename.pockets:
                pocket = self.pockets.get(pocket_name)
                level = pocket.specificity(branch_name, codename.name) if pocket else None
                if level is None:
                    continue
                matches.append((BuildTarget(repository, codename.name, pocket.name), level))
                if self.multi_match == 'first':
                    break
        return matches

    def assign(
        self,
        repository: Repository,
        branch: Branch,
        commit: Commit,
        observed_at: float = 0.0,
        siblings: Iterable[str] = (),
    ) -> FrozenSet[BoundTarget]:
        """
        Bind a commit to every target its branch maps to.

        Args:
            siblings: Names of the repository's other live branches; a
                target one of them matches more specifically is skipped

        Returns:
            Possibly empty set; an unmatched branch is not an error
        """
        matches = self.matches_for(repository.name, branch.name)
        if not matches:
            logger.debug(f"{repository.name}/{branch.name} matches no pocket")
            return frozenset()

        claimed: Dict[BuildTarget, int] = {}
        for sibling in siblings:
            if sibling == branch.name:
                continue
            for target, level in self.matches_for(repository.name, sibling):
                claimed[target] = max(level, claimed.get(target, level))

        bound = set()
        for target, level in matches:
            if claimed.get(target, -1) > level:
                logger.debug(f"{target}: {branch.name} yields to a codename-specific branch")
                continue
            bound.add(BoundTarget(target, commit.id, observed_at))
        return frozenset(bound)
