"""
Menu translation.

Translates an extracted menu with a single text-only model call and checks
that the reply has exactly the source's shape: same categories, same item
counts, same item ids in the same order. Prices and ids are always taken
from the source. Translation is best effort, so nothing here retries beyond
the model client's own transient-failure policy.
"""

import logging
from typing import List, Optional, Union

from menuscan.config.settings import ModelApiSettings
from menuscan.core.exceptions import (
    ExtractionParseError,
    MissingFieldError,
    TranslationConsistencyError,
)
from menuscan.models.api_models import SupportedLanguage
from menuscan.models.menu import ExtractedMenu, MenuCategory
from menuscan.services.image_intake import resolve_language
from menuscan.services.menu_parser import MenuParser
from menuscan.services.model_client import ModelApiClient
from menuscan.services.prompt_builder import PromptBuilder

logger = logging.getLogger(__name__)


class TranslationOrchestrator:
    """Produces translated copies of a menu that keep item identity"""

    def __init__(
        self,
        api_client: ModelApiClient,
        prompt_builder: PromptBuilder,
        parser: MenuParser,
        config: ModelApiSettings
    ):
        self.api_client = api_client
        self.prompt_builder = prompt_builder
        self.parser = parser
        self.config = config

    async def translate(
        self,
        menu: ExtractedMenu,
        language: Union[str, SupportedLanguage, None],
        request_id: Optional[str] = None
    ) -> ExtractedMenu:
        """
        Translate ``menu`` into ``language``.

        Raises:
            MissingFieldError: If no language was given
            UnsupportedLanguageError: If the language is not supported
            UpstreamTransientError / UpstreamFatalError: From the model call
            TranslationConsistencyError: If the reply does not match the source
        """
        if isinstance(language, SupportedLanguage):
            target = language
        else:
            if language is None or not str(language).strip():
                raise MissingFieldError("Menu and language are required", "language")
            target = resolve_language(language)

        request = self.prompt_builder.build_translation_request(menu, target)
        logger.info(
            f"Translating menu to {target.value}",
            extra={'request_id': request_id, 'items': menu.total_items,
                   'target_language': target.value}
        )

        raw = await self.api_client.chat_completion(
            request,
            timeout_seconds=self.config.translation_timeout_seconds,
            request_id=request_id,
        )

        try:
            translated = self.parser.parse(raw, synthesize_ids=False, request_id=request_id)
        except ExtractionParseError as e:
            logger.warning(
                f"Translation reply could not be parsed: {e.reason}",
                extra={'request_id': request_id}
            )
            raise TranslationConsistencyError("translation reply is not a readable menu")

        self.verify_structure(menu, translated)
        return self.reapply_source_fields(menu, translated)

    @staticmethod
    def verify_structure(source: ExtractedMenu, translated: ExtractedMenu) -> None:
        """Raise TranslationConsistencyError unless shapes and id sequences match."""
        if len(source.categories) != len(translated.categories):
            raise TranslationConsistencyError(
                "category count changed",
                {"expected": len(source.categories), "actual": len(translated.categories)}
            )

        for index, (src, out) in enumerate(zip(source.categories, translated.categories)):
            if len(src.items) != len(out.items):
                raise TranslationConsistencyError(
                    "item count changed",
                    {"category_index": index, "expected": len(src.items), "actual": len(out.items)}
                )

        source_ids = source.item_ids()
        translated_ids = translated.item_ids()
        if source_ids != translated_ids:
            missing = sorted(set(source_ids) - set(translated_ids))
            unexpected = sorted(set(translated_ids) - set(source_ids))
            raise TranslationConsistencyError(
                "item ids changed" if missing or unexpected else "item order changed",
                {"missing_ids": missing, "unexpected_ids": unexpected}
            )

    @staticmethod
    def reapply_source_fields(source: ExtractedMenu, translated: ExtractedMenu) -> ExtractedMenu:
        """Copy ids and prices from the source onto the translated text."""
        categories: List[MenuCategory] = []
        for src_category, out_category in zip(source.categories, translated.categories):
            items = [
                out_item.model_copy(update={"id": src_item.id, "price": src_item.price})
                for src_item, out_item in zip(src_category.items, out_category.items)
            ]
            categories.append(MenuCategory(name=out_category.name, items=items))

        return ExtractedMenu(
            restaurant_name=translated.restaurant_name,
            menu_type=translated.menu_type,
            categories=categories,
        )
