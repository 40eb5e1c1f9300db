"""Domain exceptions raised by the standings services. Routes map them to HTTP errors."""


class StandingsError(ValueError):
    """Base exception for standings errors"""
    pass


class NotFoundError(StandingsError):
    """A referenced tournament, match, map, result or round does not exist"""
    pass


class ValidationError(StandingsError):
    """Input rejected before any write"""
    pass


class WeekNotFoundError(ValidationError):
    """Requested week label is not among the tournament's known weeks"""

    def __init__(self, week: str, known_weeks=None):
        self.week = week
        self.known_weeks = list(known_weeks or [])
        super().__init__(f"Week '{week}' not found in tournament")


class RecalculationTimeoutError(StandingsError):
    """Background recalculation exceeded its deadline before finishing every scope"""
    pass
