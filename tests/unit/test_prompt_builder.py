import json

from menuscan.config.settings import ModelApiSettings
from menuscan.models.api_models import SupportedLanguage
from menuscan.models.internal_models import IntakePayload
from menuscan.models.menu import ExtractedMenu
from menuscan.services.prompt_builder import (
    EXTRACTION_OPERATION,
    TRANSLATION_OPERATION,
    PromptBuilder,
    build_dish_image_prompt,
)


def _payload(language=SupportedLanguage.CHINESE):
    return IntakePayload(
        image_bytes=b"\x89PNG fake",
        content_type="image/png",
        size_bytes=9,
        target_language=language,
    )


def _menu():
    return ExtractedMenu.model_validate({
        "restaurantName": "Golden Dragon",
        "menuType": "Dinner",
        "categories": [
            {"name": "Appetizers", "items": [
                {"id": "item-1-1", "name": "Spring Rolls", "price": "$6.50", "flavorProfile": "savory"},
            ]},
        ],
    })


def test_extraction_request_shape():
    builder = PromptBuilder(ModelApiSettings(extraction_model="vision-model"))
    request = builder.build_extraction_request(_payload())

    assert request.operation == EXTRACTION_OPERATION
    assert request.model == "vision-model"
    system, user = request.messages
    assert system["role"] == "system"
    assert "Chinese" in system["content"]
    assert "exactly as seen" in system["content"]

    text_part, image_part = user["content"]
    assert '"categories"' in text_part["text"]
    assert image_part["image_url"]["url"].startswith("data:image/png;base64,")
    assert image_part["image_url"]["detail"] == "high"

    payload = request.to_payload()
    assert payload["response_format"] == {"type": "json_object"}
    assert payload["max_tokens"] == builder.config.extraction_max_tokens


def test_extraction_request_is_deterministic():
    builder = PromptBuilder(ModelApiSettings())
    assert builder.build_extraction_request(_payload()) == builder.build_extraction_request(_payload())


def test_translation_request_embeds_menu_with_ids():
    builder = PromptBuilder(ModelApiSettings(translation_temperature=0.1))
    request = builder.build_translation_request(_menu(), SupportedLanguage.FRENCH)

    assert request.operation == TRANSLATION_OPERATION
    assert request.temperature == 0.1
    prompt = request.messages[1]["content"]
    assert "French" in prompt
    assert "Never convert or localize prices" in prompt

    embedded = json.loads(prompt.split("Menu:\n", 1)[1])
    item = embedded["categories"][0]["items"][0]
    assert item["id"] == "item-1-1"
    assert item["price"] == "$6.50"
    assert item["flavor_profile"] == "savory"

    # text only
    assert all(isinstance(m["content"], str) for m in request.messages)


def test_dish_image_prompt_with_and_without_description():
    with_description = build_dish_image_prompt("Pad Thai", "stir-fried rice noodles.")
    assert '"Pad Thai"' in with_description
    assert "The dish description: stir-fried rice noodles." in with_description
    assert "No text, no watermarks" in with_description

    bare = build_dish_image_prompt("  Pad Thai ")
    assert '"Pad Thai"' in bare
    assert "description" not in bare
