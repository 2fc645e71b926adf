"""
Request dependencies for FastAPI.

Authentication is owned by the identity service; this backend only decodes
the bearer token to find out which business (owner) a request acts for.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from accounts_backend.app.core.jwt import decode_access_token
from accounts_backend.app.db.session import get_db
from accounts_backend.app.domain.inventory.service import InventoryService
from accounts_backend.app.domain.settlement.engine import SettlementEngine
from accounts_backend.app.services.event_publisher import EventPublisher, get_event_publisher

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_owner(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> int:
    """
    Resolve the owner ID from a JWT.

    Accepts an ``owner_id`` claim, falling back to ``user_id`` for tokens
    issued to single-user businesses.

    Raises:
        HTTPException: 401 if the token is invalid or names no owner
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    owner_id = payload.get("owner_id") or payload.get("user_id")
    if not owner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return int(owner_id)


async def get_settlement_engine(
    db: AsyncSession = Depends(get_db),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> SettlementEngine:
    return SettlementEngine(db, publisher)


async def get_inventory_service(
    db: AsyncSession = Depends(get_db),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> InventoryService:
    return InventoryService(db, publisher)
