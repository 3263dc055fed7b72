"""Immutable program index snapshots."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator

import numpy as np

from locksearch.config import SortOrder
from locksearch.models import Entry


@dataclass(frozen=True, slots=True)
class ProgramIndex:
    """A published, read-only view of the discovered programs.

    `entries` are in canonical order (normalized name, then identity) and
    `names` holds their normalized names at the same positions so queries
    never renormalize. `display_order` lists entry positions for the empty
    query; a random order is drawn once per build from `seed`.
    """

    entries: tuple[Entry, ...]
    names: tuple[str, ...]
    identities: tuple[str, ...]
    display_order: tuple[int, ...]
    sort: SortOrder = "alphabetical"
    seed: int | None = None
    source: str = "discovery"

    @classmethod
    def build(
        cls,
        entries: Iterable[Entry],
        *,
        sort: SortOrder = "alphabetical",
        seed: int | None = None,
        source: str = "discovery",
    ) -> "ProgramIndex":
        ordered = sorted(entries, key=lambda entry: (entry.normalized_name, entry.identity))
        names = tuple(entry.normalized_name for entry in ordered)
        identities = tuple(entry.identity for entry in ordered)

        if sort == "random":
            if seed is None:
                seed = int(np.random.SeedSequence().entropy)
            rng = np.random.default_rng(seed)
            display_order = tuple(int(position) for position in rng.permutation(len(ordered)))
        else:
            seed = None
            display_order = tuple(
                sorted(
                    range(len(ordered)),
                    key=lambda position: (ordered[position].name.casefold(), identities[position]),
                )
            )

        return cls(
            entries=tuple(ordered),
            names=names,
            identities=identities,
            display_order=display_order,
            sort=sort,
            seed=seed,
            source=source,
        )

    @classmethod
    def empty(cls, sort: SortOrder = "alphabetical") -> "ProgramIndex":
        return cls(entries=(), names=(), identities=(), display_order=(), sort=sort, source="empty")

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[Entry]:
        return iter(self.entries)

    def in_display_order(self) -> Iterator[Entry]:
        for position in self.display_order:
            yield self.entries[position]
