"""
Content Normalizer

Turns an uploaded file into a canonical extraction payload:
- Images are downscaled, re-encoded as JPEG and inlined as a data URL
- PDFs contribute their embedded text layer
- Text is passed through, truncated to a fixed character budget

Every failure (empty, oversized, unsupported, undecodable) is reported as
a single normalization_failed kind.
"""

import asyncio
import base64
import io
import logging
from typing import Optional, Tuple

from pdfminer.high_level import extract_text
from PIL import Image, ImageOps, UnidentifiedImageError

from fuelex.config.settings import NormalizerConfig
from fuelex.exceptions import NormalizationFailed
from fuelex.models.fuel_invoice import NormalizedPayload, PayloadKind, RawDocument
from fuelex.processors.base import BaseProcessor, ProcessingResult
from fuelex.utils.file_utils import (
    MEDIA_IMAGE,
    MEDIA_PDF,
    MEDIA_TEXT,
    base_media_type,
    get_content_type,
    media_kind,
)

logger = logging.getLogger(__name__)

NORMALIZATION_FAILED = 'normalization_failed'


class ContentNormalizer(BaseProcessor):
    """
    Converts a RawDocument into a NormalizedPayload.

    Image re-encoding and PDF text extraction are CPU bound and run in a
    worker thread so the event loop stays responsive.
    """

    def __init__(self, config: Optional[NormalizerConfig] = None):
        super().__init__(config or NormalizerConfig())

    def can_process(self, document: RawDocument) -> bool:
        return media_kind(self._media_type(document)) is not None

    async def process(self, document: RawDocument) -> ProcessingResult:
        """
        Normalize a document.

        Returns:
            ProcessingResult with a NormalizedPayload, or error_kind
            'normalization_failed'
        """
        try:
            payload = await self.normalize(document)
        except NormalizationFailed as e:
            logger.warning(f"Normalization failed for {document.name}: {e}")
            return ProcessingResult.failed(NORMALIZATION_FAILED, str(e))

        return ProcessingResult.ok(
            payload,
            kind=payload.kind.value,
            char_count=payload.char_count,
            truncated=payload.truncated
        )

    async def normalize(self, document: RawDocument) -> NormalizedPayload:
        """Normalize a document, raising NormalizationFailed on any problem"""
        content = document.content
        if not content:
            raise NormalizationFailed(f"{document.name} is empty")
        if len(content) > self.config.max_file_bytes:
            raise NormalizationFailed(
                f"{document.name} is {len(content)} bytes, above the "
                f"{self.config.max_file_bytes} byte limit"
            )

        media_type = self._media_type(document)
        kind = media_kind(media_type)

        if kind == MEDIA_IMAGE:
            data_url, width, height = await asyncio.to_thread(self._encode_image, content, document.name)
            logger.debug(f"Encoded {document.name} as {width}x{height} JPEG ({len(data_url)} chars)")
            return NormalizedPayload(
                kind=PayloadKind.IMAGE,
                source_name=document.name,
                image_data_url=data_url,
                original_media_type=media_type
            )

        if kind == MEDIA_PDF:
            text = await asyncio.to_thread(self._pdf_text, content, document.name)
        elif kind == MEDIA_TEXT:
            text = self._decode_text(content, document.name)
        else:
            raise NormalizationFailed(f"Unsupported media type {media_type!r} for {document.name}")

        if not text.strip():
            raise NormalizationFailed(f"{document.name} contains no text")

        text, truncated = self._truncate(text)
        if truncated:
            logger.info(f"Truncated {document.name} to {self.config.max_text_chars} characters")

        return NormalizedPayload(
            kind=PayloadKind.TEXT,
            source_name=document.name,
            text=text,
            original_media_type=media_type,
            truncated=truncated
        )

    def _media_type(self, document: RawDocument) -> str:
        declared = base_media_type(document.media_type)
        if declared and declared != 'application/octet-stream':
            return declared
        return get_content_type(document.name)

    def _encode_image(self, content: bytes, name: str) -> Tuple[str, int, int]:
        """Downscale to the width cap and re-encode as an inline JPEG"""
        max_width = self.config.max_image_width
        try:
            with Image.open(io.BytesIO(content)) as source:
                img = ImageOps.exif_transpose(source)
                if img.mode != 'RGB':
                    img = img.convert('RGB')
                if img.width > max_width:
                    height = max(1, round(img.height * max_width / img.width))
                    img = img.resize((max_width, height), Image.Resampling.LANCZOS)
                buffer = io.BytesIO()
                img.save(buffer, format='JPEG', quality=self.config.jpeg_quality)
                width, height = img.size
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
            raise NormalizationFailed(f"Could not decode image {name}: {e}") from e

        encoded = base64.b64encode(buffer.getvalue()).decode('ascii')
        return f"data:image/jpeg;base64,{encoded}", width, height

    def _pdf_text(self, content: bytes, name: str) -> str:
        try:
            text = extract_text(io.BytesIO(content))
        except Exception as e:
            # pdfminer raises a wide family of parser errors
            raise NormalizationFailed(f"Could not read PDF {name}: {e}") from e
        if not text or not text.strip():
            raise NormalizationFailed(f"PDF {name} has no text layer")
        return text

    def _decode_text(self, content: bytes, name: str) -> str:
        try:
            return content.decode('utf-8-sig')
        except UnicodeDecodeError as e:
            raise NormalizationFailed(f"{name} is not valid UTF-8 text: {e}") from e

    def _truncate(self, text: str) -> Tuple[str, bool]:
        limit = self.config.max_text_chars
        if len(text) <= limit:
            return text, False
        return text[:limit] + self.config.truncation_marker, True


async def normalize(document: RawDocument, config: Optional[NormalizerConfig] = None) -> ProcessingResult:
    """Convenience function to normalize a single document"""
    return await ContentNormalizer(config).process(document)
