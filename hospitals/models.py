"""
Purpose: Core data models for the hospitals domain.
What it does:
Defines a Hospital and the coarse administrative Location (city / region / country)
used for proximity scoring, without relying on Django ORM constraints.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


def _normalize_place(value: Optional[str]) -> str:
    return (value or "").strip().lower()


@dataclass(frozen=True)
class Location:
    """
    Administrative position of a facility.
    Exact geocoordinates are often missing, so matching works on this hierarchy instead.
    """
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None

    def same_city(self, other: Location) -> bool:
        mine, theirs = _normalize_place(self.city), _normalize_place(other.city)
        return bool(mine) and mine == theirs

    def same_region(self, other: Location) -> bool:
        mine, theirs = _normalize_place(self.region), _normalize_place(other.region)
        return bool(mine) and mine == theirs

    def same_country(self, other: Location) -> bool:
        mine, theirs = _normalize_place(self.country), _normalize_place(other.country)
        return bool(mine) and mine == theirs


@dataclass(frozen=True)
class Hospital:
    id: str
    name: str
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None

    @property
    def location(self) -> Location:
        return Location(city=self.city, region=self.region, country=self.country)
