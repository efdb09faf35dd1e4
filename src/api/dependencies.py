"""FastAPI dependency injection helpers."""

import secrets
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.errors import ForbiddenError
from src.infrastructure.database import async_session_factory
from src.infrastructure.factory import sql_engine
from src.services.engine import Engine


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_engine(db: AsyncSession = Depends(get_db)) -> Engine:
    """Lifecycle engine bound to the request's session."""
    return await sql_engine(db)


async def get_current_user(x_user_id: str = Header(...)) -> str:
    """Acting user id, set by the upstream auth gateway."""
    return x_user_id


def _check_secret(supplied: Optional[str], expected: str, code: str) -> None:
    # compare_digest only takes ASCII str; compare bytes
    if not supplied or not secrets.compare_digest(
        supplied.encode(), expected.encode()
    ):
        raise ForbiddenError("Missing or invalid credential", code)


async def require_payment_gateway(
    x_gateway_secret: Optional[str] = Header(None),
) -> None:
    """Only the payment gateway may report payment status."""
    _check_secret(
        x_gateway_secret, settings.payment_gateway_secret, "INVALID_GATEWAY_SECRET"
    )


async def require_admin(x_admin_key: Optional[str] = Header(None)) -> None:
    _check_secret(x_admin_key, settings.admin_api_key, "INVALID_ADMIN_KEY")
