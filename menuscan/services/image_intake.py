"""
Image intake for menu scans.

Checks an upload before any model call is made: non-empty, within the size
limit, an accepted image MIME type and a supported target language. When
Pillow recognises the format the image must also decode cleanly; formats
Pillow cannot open (HEIC for instance) are accepted on their MIME type.
"""

import io
import logging
import warnings
from typing import List, Optional

from PIL import Image, UnidentifiedImageError

from menuscan.config.settings import IntakeSettings
from menuscan.core.exceptions import (
    CorruptedImageError,
    EmptyImageError,
    ImageTooLargeError,
    UnsupportedImageTypeError,
    UnsupportedLanguageError,
)
from menuscan.models.api_models import SupportedLanguage
from menuscan.models.internal_models import IntakePayload

logger = logging.getLogger(__name__)

# Non-standard spellings some clients send
_CONTENT_TYPE_ALIASES = {
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
    "image/x-png": "image/png",
}


def normalize_content_type(content_type: Optional[str]) -> Optional[str]:
    if not content_type:
        return None
    mime = content_type.split(";", 1)[0].strip().lower()
    return _CONTENT_TYPE_ALIASES.get(mime, mime)


def resolve_language(language: Optional[str], default: SupportedLanguage = SupportedLanguage.ENGLISH) -> SupportedLanguage:
    """
    Resolve a requested language, falling back to ``default`` when blank.

    Raises:
        UnsupportedLanguageError: If a non-blank value matches no supported language
    """
    if language is None or not language.strip():
        return default
    resolved = SupportedLanguage.resolve(language)
    if resolved is None:
        raise UnsupportedLanguageError(language, SupportedLanguage.values())
    return resolved


class ImageIntake:
    """Validates uploads and builds the payload for prompt construction"""

    def __init__(self, config: IntakeSettings):
        self.config = config
        self.logger = logging.getLogger(__name__)

    @property
    def accepted_content_types(self) -> List[str]:
        return [normalize_content_type(t) for t in self.config.accepted_content_types]

    def process(
        self,
        image_bytes: Optional[bytes],
        content_type: Optional[str],
        language: Optional[str],
        request_id: Optional[str] = None
    ) -> IntakePayload:
        """
        Validate an upload.

        Raises:
            InvalidInputError: One of its subclasses, per violated rule
        """
        if not image_bytes:
            raise EmptyImageError()

        size_bytes = len(image_bytes)
        if size_bytes > self.config.max_image_bytes:
            raise ImageTooLargeError(size_bytes, self.config.max_image_bytes)

        mime = normalize_content_type(content_type)
        if mime not in self.accepted_content_types:
            raise UnsupportedImageTypeError(content_type, self.accepted_content_types)

        target_language = resolve_language(language)
        image_format = self._verify_image(image_bytes, request_id)

        self.logger.info(
            "Image intake passed",
            extra={
                'request_id': request_id,
                'content_type': mime,
                'image_format': image_format,
                'size_bytes': size_bytes,
                'target_language': target_language.value,
            }
        )

        return IntakePayload(
            image_bytes=image_bytes,
            content_type=mime,
            size_bytes=size_bytes,
            target_language=target_language,
            image_format=image_format,
        )

    def _verify_image(self, image_bytes: bytes, request_id: Optional[str]) -> Optional[str]:
        """Return the Pillow format name, or None when Pillow cannot identify it."""
        with warnings.catch_warnings():
            # oversized pixel counts are rejected, not just warned about
            warnings.simplefilter("error", Image.DecompressionBombWarning)
            try:
                return self._decode(image_bytes, request_id)
            except (Image.DecompressionBombError, Image.DecompressionBombWarning) as e:
                self.logger.warning(
                    "Image rejected as a decompression bomb",
                    extra={'request_id': request_id, 'size_bytes': len(image_bytes)}
                )
                raise CorruptedImageError({
                    "reason": "image dimensions exceed the decoding limit",
                    "detail": str(e),
                })

    def _decode(self, image_bytes: bytes, request_id: Optional[str]) -> Optional[str]:
        try:
            image = Image.open(io.BytesIO(image_bytes))
        except UnidentifiedImageError:
            self.logger.debug(
                "Image format not identifiable, accepting on MIME type",
                extra={'request_id': request_id}
            )
            return None

        image_format = image.format
        try:
            image.verify()
            # verify() leaves the image unusable; reopen to decode the pixels
            with Image.open(io.BytesIO(image_bytes)) as reopened:
                reopened.load()
        except (OSError, ValueError, SyntaxError) as e:
            raise CorruptedImageError({"image_format": image_format, "reason": str(e)})
        finally:
            image.close()

        return image_format
