# Services module
from app.services.pack_label_service import PackLabelService
from app.services.serial_allocator import DatabaseSerialAllocator, InMemorySerialAllocator

__all__ = [
    "PackLabelService",
    "DatabaseSerialAllocator",
    "InMemorySerialAllocator",
]
