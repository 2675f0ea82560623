from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Mapping, Set


def fold(name: str) -> str:
    return name.casefold()


@dataclass(frozen=True)
class Removal:
    name: str
    round: int
    missing: List[str]


@dataclass
class PruneResult:
    retained: FrozenSet[str]
    removals: List[Removal] = field(default_factory=list)
    canonical: Dict[str, str] = field(default_factory=dict)

    @property
    def rounds(self) -> int:
        return self.removals[-1].round if self.removals else 0

    @property
    def removed(self) -> List[str]:
        return [removal.name for removal in self.removals]

    def display(self, name: str) -> str:
        """Original spelling of a folded module name."""
        return self.canonical.get(name, name)


def fold_dependency_map(deps: Mapping[str, Iterable[str]]) -> Dict[str, List[str]]:
    """Case-fold module names and their edges; keys that fold together are merged."""
    folded: Dict[str, List[str]] = {}
    for name in sorted(deps):
        folded.setdefault(fold(name), []).extend(fold(dep) for dep in deps[name])
    return folded


def canonical_names(names: Iterable[str]) -> Dict[str, str]:
    """Map each folded name to one original spelling (the smallest one seen)."""
    canonical: Dict[str, str] = {}
    for name in sorted(names):
        canonical.setdefault(fold(name), name)
    return canonical


def spelling_table(deps: Mapping[str, Iterable[str]]) -> Dict[str, str]:
    """Canonical spellings, preferring how a module is named as a key over how it is imported."""
    table = canonical_names(deps)
    imported = canonical_names(dep for edges in deps.values() for dep in edges)
    for folded, name in imported.items():
        table.setdefault(folded, name)
    return table


def restrict(deps: Mapping[str, Iterable[str]], retained: Iterable[str]) -> Dict[str, List[str]]:
    keep = {fold(name) for name in retained}
    folded = fold_dependency_map(deps)
    return {
        name: [dep for dep in edges if dep in keep]
        for name, edges in folded.items()
        if name in keep
    }


def _unique(values: Iterable[str]) -> List[str]:
    seen: Set[str] = set()
    out: List[str] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        out.append(value)
    return out


def prune(deps: Mapping[str, Iterable[str]]) -> PruneResult:
    """Drop modules whose dependencies are missing until nothing else breaks.

    Every round looks at a frozen copy of the retained set, so modules removed
    in the same round never influence each other; they go together and the
    next round sees their absence. Modules are visited in sorted order, which
    makes the removal log identical across runs.

    A module that lists itself is satisfied as long as it is still retained,
    so self-edges never cause a removal on their own.
    """
    graph = fold_dependency_map(deps)
    retained: Set[str] = set(graph)
    removals: List[Removal] = []
    round_index = 0
    while True:
        snapshot = frozenset(retained)
        broken: Dict[str, List[str]] = {}
        for name in sorted(snapshot):
            missing = [dep for dep in graph[name] if dep not in snapshot]
            if missing:
                broken[name] = _unique(missing)
        if not broken:
            break
        round_index += 1
        for name in sorted(broken):
            removals.append(Removal(name=name, round=round_index, missing=broken[name]))
        retained.difference_update(broken)
    return PruneResult(
        retained=frozenset(retained),
        removals=removals,
        canonical=spelling_table(deps),
    )
