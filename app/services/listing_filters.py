from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Protocol, TypeVar


ANY = "all"


class _Filterable(Protocol):
    name: str
    breed: str
    description: str
    species: str
    size: str
    location: str


T = TypeVar("T", bound=_Filterable)


def _active(value: str | None) -> str | None:
    """Normalize a filter value; empty or "all" means the filter is off."""
    if value is None:
        return None
    value = value.strip()
    if not value or value.lower() == ANY:
        return None
    return value


@dataclass(frozen=True)
class ListingFilter:
    search: str | None = None
    species: str | None = None
    size: str | None = None
    location: str | None = None

    @classmethod
    def build(
        cls,
        *,
        search: str | None = None,
        species: str | None = None,
        size: str | None = None,
        location: str | None = None,
    ) -> "ListingFilter":
        return cls(
            search=_active(search),
            species=_active(species),
            size=_active(size),
            location=_active(location),
        )

    @property
    def is_empty(self) -> bool:
        return not (self.search or self.species or self.size or self.location)

    def matches(self, listing: _Filterable) -> bool:
        if self.search:
            needle = self.search.lower()
            haystacks = (listing.name, listing.breed, listing.description)
            if not any(needle in (h or "").lower() for h in haystacks):
                return False
        if self.species and listing.species != self.species:
            return False
        if self.size and listing.size != self.size:
            return False
        if self.location and self.location.lower() not in (listing.location or "").lower():
            return False
        return True


def filter_listings(listings: Iterable[T], flt: ListingFilter) -> list[T]:
    # All active filters combine with AND.
    if flt.is_empty:
        return list(listings)
    return [x for x in listings if flt.matches(x)]
