"""
API request and response models for the menu scan backend.

This module contains the supported-language enumeration and the Pydantic
models for request bodies and the ``{success, data | message}`` envelope
returned by every endpoint.
"""

from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from menuscan.models.menu import ExtractedMenu

T = TypeVar('T')


class SupportedLanguage(str, Enum):
    """Languages a menu can be extracted into or translated to"""
    ENGLISH = "English"
    CHINESE = "Chinese"
    FRENCH = "French"
    JAPANESE = "Japanese"
    KOREAN = "Korean"
    SPANISH = "Spanish"

    @classmethod
    def resolve(cls, value: Optional[str]) -> Optional["SupportedLanguage"]:
        """Map a display name, native name or ISO code to a member, or None"""
        if value is None:
            return None
        key = value.strip().casefold()
        if not key:
            return None
        for member in cls:
            if member.value.casefold() == key:
                return member
        return _LANGUAGE_ALIASES.get(key)

    @classmethod
    def values(cls) -> List[str]:
        return [member.value for member in cls]


_LANGUAGE_ALIASES = {
    "en": SupportedLanguage.ENGLISH,
    "中文": SupportedLanguage.CHINESE,
    "zh": SupportedLanguage.CHINESE,
    "français": SupportedLanguage.FRENCH,
    "francais": SupportedLanguage.FRENCH,
    "fr": SupportedLanguage.FRENCH,
    "日本語": SupportedLanguage.JAPANESE,
    "ja": SupportedLanguage.JAPANESE,
    "한국어": SupportedLanguage.KOREAN,
    "ko": SupportedLanguage.KOREAN,
    "español": SupportedLanguage.SPANISH,
    "espanol": SupportedLanguage.SPANISH,
    "es": SupportedLanguage.SPANISH,
}


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ApiResponse(_ApiModel, Generic[T]):
    """Envelope shared by all endpoints"""
    success: bool
    data: Optional[T] = None
    message: Optional[str] = None


class ErrorResponse(_ApiModel):
    """Failure envelope; raw model output is never part of it"""
    success: bool = False
    message: str
    error_code: str
    request_id: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class DishImageRequest(_ApiModel):
    """Body of POST /generate-dish-image"""
    dish_name: str = Field(default="", validation_alias=AliasChoices("dishName", "dish_name"))
    description: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("description", "dishDescription", "dish_description"),
    )


class DishImageData(_ApiModel):
    image_url: str


class TranslateMenuRequest(_ApiModel):
    """Body of POST /translate-menu"""
    menu: ExtractedMenu
    language: str = ""
