"""FastAPI dependency injection functions."""

from typing import Annotated

from fastapi import Header, HTTPException, Request, status

from fortyfive.services.generation import GenerationService
from fortyfive.uow import UnitOfWorkFactory


def get_uow_factory(request: Request) -> UnitOfWorkFactory:
    """Get UnitOfWork factory from app state.

    Example:
        >>> @router.get("/endpoint")
        >>> async def endpoint(uow_factory=Depends(get_uow_factory)):
        ...     async with await uow_factory() as uow:
        ...         await uow.templates.list_active()
    """
    return request.app.state.uow_factory


def get_generation_service(request: Request) -> GenerationService:
    """Get the GenerationService built in the app lifespan."""
    return request.app.state.generation_service


def get_current_user_id(x_user_id: Annotated[str | None, Header()] = None) -> int:
    """Resolve the calling user's id from the X-User-Id header.

    Token-based authentication happens upstream; by the time a request reaches
    this service the gateway has put the verified user id in this header.

    Raises:
        HTTPException: 401 if the header is missing or not a positive integer
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="user not authenticated"
        )
    try:
        user_id = int(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid user id"
        ) from None
    if user_id <= 0:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid user id")
    return user_id
