"""
Release configuration and build target domain objects for pocketci.

Codenames and pockets come from static configuration. A pocket owns an
ordered list of branch-matching rules; a rule is a tagged variant
(exact, glob or regex) whose pattern may contain ``{codename}``.
"""

import fnmatch
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class PocketRule:
    """A single branch-name matching rule."""
    type: str      # exact, glob, regex
    pattern: str

    @property
    def specific(self) -> bool:
        """True if the rule only matches branches named for one codename."""
        return '{codename}' in self.pattern

    def expand(self, codename: str) -> str:
        """Substitute the codename placeholder into the pattern."""
        if self.type == 'regex':
            return self.pattern.replace('{codename}', re.escape(codename))
        return self.pattern.replace('{codename}', codename)

    def matches(self, branch: str, codename: str) -> bool:
        """Check whether a branch name matches this rule for a codename."""
        pattern = self.expand(codename)
        if self.type == 'exact':
            return branch == pattern
        if self.type == 'glob':
            return fnmatch.fnmatchcase(branch, pattern)
        if self.type == 'regex':
            return re.fullmatch(pattern, branch) is not None
        raise ValueError(f"unknown rule type: {self.type}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PocketRule':
        return cls(type=data['type'], pattern=data['pattern'])

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type, 'pattern': self.pattern}


@dataclass(frozen=True)
class Pocket:
    """A release channel within a codename, selected by branch rules."""
    name: str
    rules: Tuple[PocketRule, ...] = ()

    def specificity(self, branch: str, codename: str) -> Optional[int]:
        """
        How specifically a branch matches this pocket for a codename.

        Returns:
            1 if a codename-specific rule matches, 0 if only generic rules
            match, None if no rule matches
        """
        levels = [int(rule.specific) for rule in self.rules if rule.matches(branch, codename)]
        return max(levels) if levels else None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Pocket':
        rules = tuple(PocketRule.from_dict(rule) for rule in data.get('rules', []))
        return cls(name=data['name'], rules=rules)


@dataclass(frozen=True)
class Codename:
    """A release series and the pockets it accepts, in priority order."""
    name: str
    pockets: Tuple[str, ...] = ()
    release: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Codename':
        return cls(
            name=data['name'],
            pockets=tuple(data.get('pockets', [])),
            release=str(data['release']) if data.get('release') is not None else None,
        )


@dataclass(frozen=True, order=True)
class BuildTarget:
    """The coordinate {repository, codename, pocket} of a packaging destination."""
    repository: str
    codename: str
    pocket: str

    def __str__(self) -> str:
        return f"{self.repository}@{self.codename}/{self.pocket}"

    @classmethod
    def parse(cls, text: str) -> 'BuildTarget':
        """Parse ``repository@codename/pocket``."""
        match = re.fullmatch(r'([^@]+)@([^/]+)/(.+)', text)
        if not match:
            raise ValueError(f"target must look like repository@codename/pocket, got {text!r}")
        return cls(*match.groups())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'repository': self.repository,
            'codename': self.codename,
            'pocket': self.pocket,
        }


@dataclass(frozen=True)
class BoundTarget:
    """A build target bound to the commit it should be built from."""
    target: BuildTarget
    commit_id: str
    observed_at: float = field(default=0.0, compare=False)
