from sqlalchemy.exc import IntegrityError, DBAPIError

from core.errors import AppError, ConflictError


async def safe_commit(session, conflict_message: str = "Conflicting record already exists", server_error_message: str = "Internal server error"):
    """Commit, rolling back and mapping integrity violations to a conflict error."""
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        raise ConflictError(conflict_message) from e
    except DBAPIError as e:
        await session.rollback()
        raise AppError(server_error_message) from e
