"""
Receipt Storage using Cloudinary

DESIGN DECISION: Receipts are stored in Cloudinary and only their public
link goes into the ledger. The spreadsheet stays small and accountants can
open a receipt straight from the row.

This service handles:
1. Checking the payload is an image we can open (Pillow)
2. Uploading it under a deterministic public id
3. Returning the durable https link

The public id is derived from the display name and a hash of the bytes, so
a retried upload of the same receipt overwrites the same asset instead of
creating a second one.
"""

import asyncio
import hashlib
import re
from io import BytesIO
from typing import Optional

import cloudinary
import cloudinary.uploader
import structlog
from cloudinary.exceptions import Error as CloudinaryError
from PIL import Image, UnidentifiedImageError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from cashflow_bot.config import AppSettings, CloudinarySettings, get_settings
from cashflow_bot.services.attachments.interface import (
    AttachmentError,
    AttachmentInterface,
    ReceiptRejectedError,
)


logger = structlog.get_logger(__name__)

_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9_-]+")


class CloudinaryAttachmentService(AttachmentInterface):
    """
    Uploads receipt images to Cloudinary.

    Flow:
    1. Receive raw image bytes
    2. Reject anything that is too large or not an image
    3. Upload with the description stored as the asset caption
    4. Return secure_url
    """

    def __init__(
        self,
        settings: Optional[CloudinarySettings] = None,
        app_settings: Optional[AppSettings] = None,
    ):
        self._settings = settings or get_settings().cloudinary
        self._app_settings = app_settings or get_settings().app
        self._configured = False

    def _configure(self):
        """Configure Cloudinary SDK."""
        if not self._configured:
            cloudinary.config(
                cloud_name=self._settings.cloud_name,
                api_key=self._settings.api_key,
                api_secret=self._settings.api_secret,
                secure=True,
            )
            self._configured = True

    def _generate_public_id(self, display_name: str, data: bytes) -> str:
        """
        Generate a stable public ID for Cloudinary.

        Format: {sanitized_display_name}_{content_hash}
        """
        content_hash = hashlib.md5(data).hexdigest()[:8]
        slug = _UNSAFE_ID_CHARS.sub("_", display_name).strip("_") or "receipt"
        return f"{slug[:60]}_{content_hash}"

    def _check_image(self, data: bytes) -> str:
        """
        Make sure the payload is an image within the size limit.

        Returns:
            The detected image format (e.g. "JPEG")

        Raises:
            ReceiptRejectedError: With a message for the user
        """
        if not data:
            raise ReceiptRejectedError("❌ Файл пуст. Отправьте фото чека.")

        max_bytes = self._app_settings.max_upload_size_bytes
        if len(data) > max_bytes:
            raise ReceiptRejectedError(
                f"❌ Файл слишком большой. Максимум {self._app_settings.max_upload_size_mb} МБ."
            )

        try:
            with Image.open(BytesIO(data)) as img:
                img.verify()
                return img.format or "unknown"
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError) as e:
            raise ReceiptRejectedError(
                "❌ Не удалось распознать изображение. Отправьте фото чека."
            ) from e

    @retry(
        retry=retry_if_exception_type(CloudinaryError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _upload_sync(self, data: bytes, public_id: str, description: str) -> dict:
        self._configure()
        return cloudinary.uploader.upload(
            data,
            public_id=public_id,
            folder=self._settings.folder,
            resource_type="image",
            overwrite=True,
            context={"caption": description},
        )

    async def upload(self, data: bytes, display_name: str, description: str) -> str:
        image_format = self._check_image(data)
        public_id = self._generate_public_id(display_name, data)

        try:
            result = await asyncio.to_thread(self._upload_sync, data, public_id, description)
        except CloudinaryError as e:
            raise AttachmentError(f"Cloudinary error: {e}")
        except Exception as e:
            raise AttachmentError(f"Failed to upload receipt: {e}")

        link = result.get("secure_url") or result.get("url")
        if not link:
            raise AttachmentError("No URL returned from Cloudinary")

        logger.info(
            "receipt_uploaded",
            public_id=public_id,
            image_format=image_format,
            size_bytes=len(data),
        )
        return link
