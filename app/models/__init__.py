# Models module
from app.models.pack_label import (
    PackSequence,
    LabelGroup,
    PackLabel,
    ScanEvent,
    LabelStatus,
    GroupStatus,
    ScanEventType,
)

__all__ = [
    "PackSequence",
    "LabelGroup",
    "PackLabel",
    "ScanEvent",
    "LabelStatus",
    "GroupStatus",
    "ScanEventType",
]
