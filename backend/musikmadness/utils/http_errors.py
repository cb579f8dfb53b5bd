"""
Translate bracket/tournament service errors into HTTP errors.

Service and core code never import FastAPI; routers wrap calls with
`except SERVICE_ERRORS as e: raise to_http_exception(e)`.
"""

from fastapi import HTTPException

from musikmadness.services.bracket_errors import BracketError, TournamentServiceError

SERVICE_ERRORS = (BracketError, TournamentServiceError)


def to_http_exception(error: Exception) -> HTTPException:
    status_code = getattr(error, "status_code", 400)
    return HTTPException(status_code=status_code, detail=str(error))
