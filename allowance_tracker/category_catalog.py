from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, Mapping


@dataclass(frozen=True)
class CatalogEntry:
    key: str
    label: str
    icon: str


@dataclass(frozen=True)
class CategoryCatalog:
    """Fixed set of expense categories, in display order."""

    entries: tuple[CatalogEntry, ...]

    def __post_init__(self) -> None:
        keys = [entry.key for entry in self.entries]
        if len(set(keys)) != len(keys):
            raise ValueError("Category keys must be unique.")
        object.__setattr__(self, "entries", tuple(self.entries))

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None

    @property
    def keys(self) -> tuple[str, ...]:
        return tuple(entry.key for entry in self.entries)

    def get(self, key: str) -> CatalogEntry | None:
        for entry in self.entries:
            if entry.key == key:
                return entry
        return None

    def normalize(self, value: str | None) -> str:
        if value is None:
            raise ValueError("Category required.")
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError("Category required.")
        if normalized not in self:
            raise ValueError(f"Unknown category: {normalized}")
        return normalized

    def as_display_map(self) -> Mapping[str, dict[str, str]]:
        return {entry.key: {"icon": entry.icon, "label": entry.label} for entry in self.entries}


def build_catalog(entries: Iterable[tuple[str, str, str]]) -> CategoryCatalog:
    return CategoryCatalog(
        entries=tuple(CatalogEntry(key=key, label=label, icon=icon) for key, label, icon in entries)
    )


DEFAULT_CATALOG = build_catalog(
    [
        ("food", "Food & Dining", "fas fa-utensils"),
        ("shopping", "Shopping", "fas fa-shopping-bag"),
        ("friends", "Friends & Social", "fas fa-users"),
        ("weekend", "Weekend Outing", "fas fa-glass-cheers"),
        ("social", "Social Service", "fas fa-hands-helping"),
    ]
)
