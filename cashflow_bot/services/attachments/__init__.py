"""Receipt storage services package."""

from cashflow_bot.services.attachments.interface import (
    AttachmentError,
    AttachmentInterface,
    ReceiptRejectedError,
)
from cashflow_bot.services.attachments.cloudinary_service import (
    CloudinaryAttachmentService,
)

__all__ = [
    "AttachmentError",
    "AttachmentInterface",
    "CloudinaryAttachmentService",
    "ReceiptRejectedError",
]
