from fastapi import HTTPException

from standings.services.errors import NotFoundError, StandingsError, ValidationError


def to_http_exception(exc: StandingsError) -> HTTPException:
    """Map a service exception onto the HTTP status the routes report"""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))
