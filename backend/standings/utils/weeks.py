"""
Week label helpers.

Week labels are free-form ("Week 3", "W10", "3"). Display order is natural:
digit runs compare numerically, everything else case-insensitively, so
"Week 2" sorts before "Week 10".
"""
import re
from typing import Iterable, List, Optional, Tuple

_DIGITS = re.compile(r"(\d+)")

CUMULATIVE_LABEL = "cumulative"


def week_sort_key(week: str) -> Tuple:
    parts = _DIGITS.split(week.strip().lower())
    key = []
    for part in parts:
        if part.isdigit():
            key.append((1, int(part), ""))
        elif part:
            key.append((0, 0, part))
    # Raw label last so distinct labels never compare equal
    return (tuple(key), week)


def sort_weeks(weeks: Iterable[Optional[str]]) -> List[str]:
    """Distinct, non-empty week labels in display order"""
    return sorted({w for w in weeks if w}, key=week_sort_key)


def scope_label(week: Optional[str]) -> str:
    return week if week is not None else CUMULATIVE_LABEL


def week_clause(column, week: Optional[str]):
    """WHERE clause for a nullable week column; None selects the cumulative scope"""
    if week is None:
        return column.is_(None)
    return column == week
