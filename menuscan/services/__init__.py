# Business logic services

from .image_intake import ImageIntake, resolve_language
from .prompt_builder import PromptBuilder, build_dish_image_prompt
from .model_client import ModelApiClient, ExtractionClient
from .menu_parser import MenuParser, normalize_price, repair_json
from .translation_service import TranslationOrchestrator
from .dish_image_service import DishImageCache, DishImageService, dish_image_cache_key
from .response_assembler import assemble_menu, assemble_dish_image, assemble_error

__all__ = [
    "ImageIntake",
    "resolve_language",
    "PromptBuilder",
    "build_dish_image_prompt",
    "ModelApiClient",
    "ExtractionClient",
    "MenuParser",
    "normalize_price",
    "repair_json",
    "TranslationOrchestrator",
    "DishImageCache",
    "DishImageService",
    "dish_image_cache_key",
    "assemble_menu",
    "assemble_dish_image",
    "assemble_error",
]
