"""In-memory filtering and ordering for the browse page.

The browse page fetches the full public event list once and narrows it here.
:func:`derive_visible_events` is a pure function of its two arguments and is
re-run from scratch whenever any filter input changes.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from typing import Iterable, TypeVar

from .enums import Difficulty, EventCategory, EventStatus
from .errors import ValidationError
from .queries import ALL
from .utils import parse_event_date

E = TypeVar("E")
EnumT = TypeVar("EnumT", EventCategory, Difficulty, EventStatus)


def parse_choice(enum_cls: type[EnumT], raw: str | None, *, field: str) -> EnumT | str:
    """Return the enum member for ``raw`` or the ``"all"`` sentinel."""
    cleaned = (raw or "").strip().lower()
    if not cleaned or cleaned == ALL:
        return ALL
    try:
        return enum_cls(cleaned)
    except ValueError as exc:
        raise ValidationError(f"Unknown {field}: {raw}") from exc


@dataclass(frozen=True)
class FilterCriteria:
    search: str = ""
    category: EventCategory | str = ALL
    difficulty: Difficulty | str = ALL
    status: EventStatus | str = ALL

    @classmethod
    def from_params(
        cls,
        *,
        search: str | None = None,
        category: str | None = None,
        difficulty: str | None = None,
        status: str | None = None,
    ) -> FilterCriteria:
        return cls(
            search=search or "",
            category=parse_choice(EventCategory, category, field="category"),
            difficulty=parse_choice(Difficulty, difficulty, field="difficulty"),
            status=parse_choice(EventStatus, status, field="status"),
        )

    @property
    def search_term(self) -> str:
        return self.search.strip().casefold()

    @property
    def has_active_filters(self) -> bool:
        return bool(self.search) or any(
            value != ALL for value in (self.category, self.difficulty, self.status)
        )

    def cleared(self) -> FilterCriteria:
        return replace(self, search="", category=ALL, difficulty=ALL, status=ALL)

    def active_labels(self) -> list[str]:
        """Badges describing each active filter, in display order."""
        labels: list[str] = []
        if self.search:
            labels.append(f'Search: "{self.search}"')
        for value in (self.category, self.difficulty, self.status):
            if value != ALL:
                labels.append(value.value.replace("_", " "))
        return labels

    def as_query(self) -> dict[str, str]:
        return {
            "q": self.search,
            "category": _choice_value(self.category),
            "difficulty": _choice_value(self.difficulty),
            "status": _choice_value(self.status),
        }


def _choice_value(value) -> str:
    return value if value == ALL else value.value


def _contains(value: str | None, term: str) -> bool:
    return value is not None and term in value.casefold()


def _matches_search(event, term: str) -> bool:
    return (
        _contains(event.title, term)
        or _contains(getattr(event, "description", None), term)
        or _contains(event.location_name, term)
    )


def _date_sort_key(event) -> tuple[int, date]:
    parsed = parse_event_date(getattr(event, "event_date", None))
    if parsed is None:
        return (1, date.max)
    return (0, parsed)


def derive_visible_events(all_events: Iterable[E], criteria: FilterCriteria) -> list[E]:
    """Return the events matching ``criteria`` sorted by event date.

    Each stage narrows the previous result. Events whose date cannot be
    parsed sort after all dated events; ties keep their input order.
    """
    results = list(all_events)

    term = criteria.search_term
    if term:
        results = [e for e in results if _matches_search(e, term)]

    if criteria.category != ALL:
        results = [e for e in results if e.category == criteria.category]

    if criteria.difficulty != ALL:
        results = [e for e in results if e.difficulty == criteria.difficulty]

    if criteria.status != ALL:
        results = [e for e in results if e.status == criteria.status]

    results.sort(key=_date_sort_key)
    return results
