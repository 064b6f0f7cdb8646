import json
from unittest.mock import AsyncMock

import pytest

from menuscan.config.settings import ModelApiSettings
from menuscan.core.exceptions import (
    MissingFieldError,
    TranslationConsistencyError,
    UnsupportedLanguageError,
    UpstreamTransientError,
)
from menuscan.models.menu import ExtractedMenu
from menuscan.services.menu_parser import MenuParser
from menuscan.services.prompt_builder import PromptBuilder
from menuscan.services.translation_service import TranslationOrchestrator

SOURCE = ExtractedMenu.model_validate({
    "restaurantName": "Le Petit Bistro",
    "menuType": "Dinner",
    "categories": [
        {"name": "Entrées", "items": [
            {"id": "item-1-1", "name": "Soupe à l'oignon", "price": "€8,50"},
            {"id": "item-1-2", "name": "Escargots", "price": "€12"},
        ]},
        {"name": "Desserts", "items": [
            {"id": "item-2-1", "name": "Crème brûlée", "price": "€7"},
        ]},
    ],
})


def _reply(**overrides):
    data = {
        "restaurant_name": "Le Petit Bistro",
        "menu_type": "Dinner",
        "categories": [
            {"name": "Starters", "items": [
                {"id": "item-1-1", "name": "Onion soup", "price": "€8,50"},
                {"id": "item-1-2", "name": "Snails", "price": "€12"},
            ]},
            {"name": "Desserts", "items": [
                {"id": "item-2-1", "name": "Crème brûlée", "price": "€7"},
            ]},
        ],
    }
    data.update(overrides)
    return json.dumps(data, ensure_ascii=False)


@pytest.fixture
def api_client():
    client = AsyncMock()
    client.chat_completion = AsyncMock(return_value=_reply())
    return client


@pytest.fixture
def orchestrator(api_client):
    config = ModelApiSettings(api_key="test-key")
    return TranslationOrchestrator(api_client, PromptBuilder(config), MenuParser(), config)


@pytest.mark.asyncio
async def test_translation_preserves_identity(orchestrator):
    translated = await orchestrator.translate(SOURCE, "English")

    assert translated.item_ids() == SOURCE.item_ids()
    assert [c.name for c in translated.categories] == ["Starters", "Desserts"]
    assert translated.categories[0].items[1].name == "Snails"
    assert [i.price for i in translated.iter_items()] == [i.price for i in SOURCE.iter_items()]


@pytest.mark.asyncio
async def test_source_prices_are_reapplied(orchestrator, api_client):
    reply = json.loads(_reply())
    reply["categories"][0]["items"][0]["price"] = "$9.30"
    api_client.chat_completion.return_value = json.dumps(reply)

    translated = await orchestrator.translate(SOURCE, "English")
    assert translated.categories[0].items[0].price == "€8,50"


@pytest.mark.asyncio
async def test_same_language_still_calls_model(orchestrator, api_client):
    api_client.chat_completion.return_value = json.dumps(SOURCE.model_dump(by_alias=False), ensure_ascii=False)

    translated = await orchestrator.translate(SOURCE, "French")

    assert translated == SOURCE
    api_client.chat_completion.assert_awaited_once()


@pytest.mark.asyncio
async def test_blank_source_item_survives_translation(orchestrator, api_client):
    source = ExtractedMenu.model_validate({"categories": [{"name": "Boissons", "items": [
        {"id": "item-1-1", "name": "Café", "price": "€2"},
        {"id": "item-1-2", "name": "", "price": ""},
    ]}]})
    api_client.chat_completion.return_value = json.dumps({"categories": [{"name": "Drinks", "items": [
        {"id": "item-1-1", "name": "Coffee", "price": "€2"},
        {"id": "item-1-2", "name": "", "price": ""},
    ]}]})

    translated = await orchestrator.translate(source, "English")

    assert translated.item_ids() == ["item-1-1", "item-1-2"]
    assert translated.categories[0].items[0].name == "Coffee"


@pytest.mark.asyncio
async def test_changed_id_is_rejected(orchestrator, api_client):
    reply = json.loads(_reply())
    reply["categories"][1]["items"][0]["id"] = "item-9-9"
    api_client.chat_completion.return_value = json.dumps(reply)

    with pytest.raises(TranslationConsistencyError) as exc_info:
        await orchestrator.translate(SOURCE, "English")
    assert exc_info.value.details["missing_ids"] == ["item-2-1"]


@pytest.mark.asyncio
async def test_reordered_items_are_rejected(orchestrator, api_client):
    reply = json.loads(_reply())
    items = reply["categories"][0]["items"]
    items.reverse()
    api_client.chat_completion.return_value = json.dumps(reply)

    with pytest.raises(TranslationConsistencyError) as exc_info:
        await orchestrator.translate(SOURCE, "English")
    assert exc_info.value.reason == "item order changed"


@pytest.mark.asyncio
async def test_dropped_item_is_rejected(orchestrator, api_client):
    reply = json.loads(_reply())
    reply["categories"][0]["items"].pop()
    api_client.chat_completion.return_value = json.dumps(reply)

    with pytest.raises(TranslationConsistencyError) as exc_info:
        await orchestrator.translate(SOURCE, "English")
    assert exc_info.value.reason == "item count changed"


@pytest.mark.asyncio
async def test_merged_category_is_rejected(orchestrator, api_client):
    reply = json.loads(_reply())
    reply["categories"] = reply["categories"][:1]
    api_client.chat_completion.return_value = json.dumps(reply)

    with pytest.raises(TranslationConsistencyError) as exc_info:
        await orchestrator.translate(SOURCE, "English")
    assert exc_info.value.reason == "category count changed"


@pytest.mark.asyncio
async def test_unreadable_reply_is_a_translation_failure(orchestrator, api_client):
    api_client.chat_completion.return_value = "I'm sorry, I can't help with that."

    with pytest.raises(TranslationConsistencyError):
        await orchestrator.translate(SOURCE, "English")


@pytest.mark.asyncio
async def test_language_is_validated_before_calling_model(orchestrator, api_client):
    with pytest.raises(MissingFieldError):
        await orchestrator.translate(SOURCE, "  ")
    with pytest.raises(UnsupportedLanguageError):
        await orchestrator.translate(SOURCE, "Klingon")
    api_client.chat_completion.assert_not_awaited()


@pytest.mark.asyncio
async def test_upstream_errors_propagate(orchestrator, api_client):
    api_client.chat_completion.side_effect = UpstreamTransientError("menu_translation", "timeout")

    with pytest.raises(UpstreamTransientError):
        await orchestrator.translate(SOURCE, "English")
    assert api_client.chat_completion.await_count == 1
