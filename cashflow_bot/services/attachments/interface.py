"""Abstract interface for receipt storage."""

from abc import ABC, abstractmethod

from cashflow_bot.errors import AttachmentError


class AttachmentInterface(ABC):
    """Stores a receipt image and hands back a link that stays valid."""

    @abstractmethod
    async def upload(self, data: bytes, display_name: str, description: str) -> str:
        """
        Store a receipt.

        Args:
            data: Raw image bytes
            display_name: Human-readable name, used to build the asset id
            description: Free text stored alongside the image

        Returns:
            Public https link to the stored image

        Raises:
            ReceiptRejectedError: If the payload is not an acceptable image
            AttachmentError: If storing failed
        """
        pass


class ReceiptRejectedError(AttachmentError):
    """
    The payload was refused before upload.

    Unlike other attachment errors, the message is meant for the user.
    """

    @property
    def message(self) -> str:
        return str(self)
