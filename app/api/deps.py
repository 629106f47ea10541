from typing import Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.services.pack_label_service import PackLabelService
from app.services.serial_allocator import DatabaseSerialAllocator, SerialAllocator


async def get_serial_allocator(
    db: AsyncSession = Depends(get_db),
) -> Optional[SerialAllocator]:
    """
    Dependency providing the serial allocator.

    Override in tests or alternate deployments to swap the sequence backend.
    """
    return DatabaseSerialAllocator(db)


async def get_pack_label_service(
    db: AsyncSession = Depends(get_db),
    allocator: Optional[SerialAllocator] = Depends(get_serial_allocator),
) -> PackLabelService:
    return PackLabelService(db, allocator=allocator, settings=settings)


__all__ = ["get_db", "get_serial_allocator", "get_pack_label_service"]
