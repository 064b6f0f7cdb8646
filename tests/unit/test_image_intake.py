import pytest
from PIL import Image

from menuscan.config.settings import IntakeSettings
from menuscan.core.exceptions import (
    CorruptedImageError,
    EmptyImageError,
    ErrorCode,
    ImageTooLargeError,
    UnsupportedImageTypeError,
    UnsupportedLanguageError,
)
from menuscan.models.api_models import SupportedLanguage
from menuscan.services.image_intake import ImageIntake, normalize_content_type, resolve_language


@pytest.fixture
def intake():
    return ImageIntake(IntakeSettings(max_image_bytes=4096))


def test_valid_png_defaults_to_english(intake, png_bytes):
    payload = intake.process(png_bytes, "image/png", None)
    assert payload.target_language == SupportedLanguage.ENGLISH
    assert payload.image_format == "PNG"
    assert payload.size_bytes == len(png_bytes)
    assert payload.data_url.startswith("data:image/png;base64,")


def test_language_aliases_resolve(intake, png_bytes):
    assert intake.process(png_bytes, "image/png", "日本語").target_language == SupportedLanguage.JAPANESE
    assert intake.process(png_bytes, "image/png", "fr").target_language == SupportedLanguage.FRENCH
    assert intake.process(png_bytes, "image/png", " spanish ").target_language == SupportedLanguage.SPANISH


def test_empty_image_rejected(intake):
    with pytest.raises(EmptyImageError) as exc_info:
        intake.process(b"", "image/png", "English")
    assert exc_info.value.error_code == ErrorCode.EMPTY_IMAGE
    assert exc_info.value.status_code == 400


def test_oversized_image_rejected(intake):
    with pytest.raises(ImageTooLargeError) as exc_info:
        intake.process(b"x" * 4097, "image/png", "English")
    assert exc_info.value.status_code == 413
    assert exc_info.value.details["max_bytes"] == 4096


def test_non_image_content_type_rejected(intake, png_bytes):
    with pytest.raises(UnsupportedImageTypeError):
        intake.process(png_bytes, "application/pdf", "English")
    with pytest.raises(UnsupportedImageTypeError):
        intake.process(png_bytes, None, "English")


def test_unknown_language_rejected(intake, png_bytes):
    with pytest.raises(UnsupportedLanguageError) as exc_info:
        intake.process(png_bytes, "image/png", "Klingon")
    assert "English" in exc_info.value.details["supported_languages"]


def test_size_checked_before_type(intake):
    # an oversized PDF is reported as too large
    with pytest.raises(ImageTooLargeError):
        intake.process(b"x" * 5000, "application/pdf", "English")


def test_corrupted_png_rejected(intake, png_bytes):
    with pytest.raises(CorruptedImageError):
        # cut inside the IDAT chunk, after the header Pillow needs to identify it
        intake.process(png_bytes[:-20], "image/png", "English")


def test_unidentifiable_format_accepted_on_mime(intake):
    payload = intake.process(b"\x00\x00\x00\x18ftypheic" + b"\x00" * 64, "image/heic", None)
    assert payload.image_format is None
    assert payload.content_type == "image/heic"


def test_content_type_normalization():
    assert normalize_content_type("image/JPG; charset=binary") == "image/jpeg"
    assert normalize_content_type("IMAGE/PNG") == "image/png"
    assert normalize_content_type("") is None


def test_resolve_language_blank_uses_default():
    assert resolve_language("   ") == SupportedLanguage.ENGLISH
    assert resolve_language(None, default=SupportedLanguage.KOREAN) == SupportedLanguage.KOREAN


def test_decompression_bomb_rejected(intake, png_bytes, monkeypatch):
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 10)
    with pytest.raises(CorruptedImageError) as exc_info:
        intake.process(png_bytes, "image/png", "English")
    assert exc_info.value.status_code == 400
    assert exc_info.value.details["reason"] == "image dimensions exceed the decoding limit"


def test_decompression_bomb_warning_is_rejected(intake, png_bytes, monkeypatch):
    # 64 pixels sits between the warning and the hard error thresholds
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 40)
    with pytest.raises(CorruptedImageError):
        intake.process(png_bytes, "image/png", "English")
