"""
Prompt construction for the extraction, translation and dish image calls.

All builders are pure: the same inputs always produce the same request.
"""

import json
from typing import Optional

from menuscan.config.settings import ModelApiSettings
from menuscan.models.api_models import SupportedLanguage
from menuscan.models.internal_models import IntakePayload, ModelRequest
from menuscan.models.menu import ExtractedMenu

EXTRACTION_OPERATION = "menu_extraction"
TRANSLATION_OPERATION = "menu_translation"
IMAGE_OPERATION = "dish_image_generation"

EXTRACTION_SYSTEM_PROMPT = """You are a restaurant menu expert that can analyze menu images accurately.
When analyzing restaurant menu images:
1. Organize menu items by categories (appetizers, main dishes, desserts, etc.)
2. Keep the JSON keys in English but provide all content in {language}
3. Extract item names, descriptions and prices accurately
4. IMPORTANT: Keep the original price and currency symbol exactly as seen in the image. Do NOT localize or convert currencies. If the price is "$12.99" or "NT$150" it must appear exactly as such.
5. Include spiciness level and vegetarian/vegan options as attributes when available
6. List potential allergens for each dish (e.g. nuts, dairy, gluten, shellfish, soy)
7. Describe flavor profiles (e.g. sweet, savory, spicy, umami, sour)
8. Describe texture characteristics when possible (e.g. crispy, tender, creamy, crunchy)
9. Be comprehensive but concise
10. CRITICAL: The response MUST be a single valid JSON object:
   - All property names and strings in double quotes
   - No comma after the last element of an array or object
   - Every array closed with ] and every object closed with }}
   - All categories inside the same categories array
   - No text before or after the JSON object"""

MENU_JSON_CONTRACT = """{
    "restaurant_name": "Name of the restaurant if visible",
    "menu_type": "Breakfast/Lunch/Dinner/Special menu type if specified",
    "categories": [
        {
            "name": "Category name (e.g. Appetizers, Main Dishes)",
            "items": [
                {
                    "name": "Item name in specified language",
                    "description": "Item description in specified language",
                    "price": "Price and currency symbol exactly as in the image",
                    "attributes": ["spicy", "vegetarian", "vegan", "gluten-free"],
                    "allergens": ["dairy", "nuts", "gluten", "shellfish", "eggs", "soy"],
                    "flavor_profile": "Description of flavors in specified language",
                    "texture": "Description of texture in specified language"
                }
            ]
        }
    ]
}"""

EXTRACTION_USER_PROMPT = (
    "Analyze this restaurant menu image and organize the menu items.\n"
    "Return the response in this EXACT JSON format (do not modify the structure):\n"
    + MENU_JSON_CONTRACT
)

TRANSLATION_SYSTEM_PROMPT = "You are a professional translator specialising in restaurant menus."

TRANSLATION_USER_PROMPT = """Translate the following restaurant menu to {language}.
Rules:
- Translate only these text fields: restaurant_name, menu_type, category "name", item "name", "description", "flavor_profile", "texture", "attributes" and "allergens".
- Copy every "id" and every "price" exactly as given. Never convert or localize prices.
- Keep every category and every item, in the same order. Do not add, merge or remove entries.
- If a text is already in {language}, leave it unchanged.
- Keep the JSON keys in English and return only the JSON object, with the same structure as the input.

Menu:
{menu_json}"""

DISH_IMAGE_PROMPT = (
    'A professional, appetizing food photography image of "{dish_name}". '
    "{description_sentence}"
    "High-quality, realistic photograph with good lighting, on a restaurant table setting. "
    "No text, no watermarks, photorealistic style."
)


class PromptBuilder:
    """Builds model requests from validated inputs"""

    def __init__(self, config: ModelApiSettings):
        self.config = config

    def build_extraction_request(self, payload: IntakePayload) -> ModelRequest:
        language = payload.target_language.value
        messages = [
            {
                "role": "system",
                "content": EXTRACTION_SYSTEM_PROMPT.format(language=language),
            },
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": EXTRACTION_USER_PROMPT},
                    {
                        "type": "image_url",
                        "image_url": {
                            "url": payload.data_url,
                            "detail": self.config.image_detail,
                        },
                    },
                ],
            },
        ]
        return ModelRequest(
            operation=EXTRACTION_OPERATION,
            model=self.config.extraction_model,
            messages=messages,
            json_output=True,
            max_tokens=self.config.extraction_max_tokens,
        )

    def build_translation_request(self, menu: ExtractedMenu, language: SupportedLanguage) -> ModelRequest:
        menu_json = json.dumps(
            menu.model_dump(mode="json", by_alias=False),
            ensure_ascii=False,
            indent=2,
        )
        messages = [
            {"role": "system", "content": TRANSLATION_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": TRANSLATION_USER_PROMPT.format(language=language.value, menu_json=menu_json),
            },
        ]
        return ModelRequest(
            operation=TRANSLATION_OPERATION,
            model=self.config.translation_model,
            messages=messages,
            json_output=True,
            temperature=self.config.translation_temperature,
        )


def build_dish_image_prompt(dish_name: str, description: Optional[str] = None) -> str:
    description = (description or "").strip()
    description_sentence = f"The dish description: {description.rstrip('.')}. " if description else ""
    return DISH_IMAGE_PROMPT.format(
        dish_name=dish_name.strip(),
        description_sentence=description_sentence,
    )
