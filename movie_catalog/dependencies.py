"""
FastAPI dependencies.

The repository lives on ``app.state`` and is handed to routes from there.
"""

from fastapi import HTTPException, Request, status

from .services.movie_repository import MovieRepository


def get_repository(request: Request) -> MovieRepository:
    """
    Get the movie repository of the running app.

    Raises:
        HTTPException: If the app has not finished starting
    """
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Movie repository not initialized",
        )
    return context.repository
