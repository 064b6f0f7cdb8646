import json
from decimal import Decimal

import pytest

from menuscan.core.exceptions import ErrorCode, ExtractionParseError
from menuscan.services.menu_parser import (
    MenuParser,
    extract_json_block,
    normalize_price,
    repair_json,
)


@pytest.fixture
def parser():
    return MenuParser()


SPRING_ROLLS = json.dumps({
    "restaurant_name": "Golden Dragon",
    "categories": [
        {"name": "Appetizers", "items": [{"name": "Spring Rolls", "price": "$8.99"}]},
    ],
})


def test_spring_rolls_gets_deterministic_id(parser):
    menu = parser.parse(SPRING_ROLLS)
    assert menu.restaurant_name == "Golden Dragon"
    assert menu.menu_type == ""
    category = menu.categories[0]
    assert category.name == "Appetizers"
    item = category.items[0]
    assert item.id == "item-1-1"
    assert item.name == "Spring Rolls"
    assert item.price == "$8.99"
    assert item.attributes == []


def test_parsing_is_idempotent(parser):
    raw = json.dumps({"categories": [
        {"name": "Mains", "items": [{"name": "Pho"}, {"name": "Bun Cha", "price": 9}]},
        {"name": "Drinks", "items": [{"name": "Tea", "price": "2"}]},
    ]})
    first = parser.parse(raw)
    second = parser.parse(raw)
    assert first == second
    assert first.item_ids() == ["item-1-1", "item-1-2", "item-2-1"]


def test_code_fence_and_prose_are_ignored(parser):
    raw = "Here is the menu:\n```json\n" + SPRING_ROLLS + "\n```\nEnjoy!"
    assert parser.parse(raw).categories[0].items[0].name == "Spring Rolls"


@pytest.mark.parametrize("printed", ["$9.99", "9.99", "9,99", "Market Price", "NT$150", "€ 8,50"])
def test_price_text_passes_through(parser, printed):
    raw = json.dumps({"categories": [{"name": "A", "items": [{"name": "Dish", "price": printed}]}]})
    assert parser.parse(raw).categories[0].items[0].price == printed


def test_numeric_and_missing_prices_become_strings(parser):
    raw = json.dumps({"categories": [{"name": "A", "items": [
        {"name": "One", "price": 12.5},
        {"name": "Two"},
    ]}]})
    items = parser.parse(raw).categories[0].items
    assert items[0].price == "12.5"
    assert items[1].price == ""


def test_trailing_commas_and_unterminated_arrays_are_repaired(parser):
    raw = '{"categories": [{"name": "Mains", "items": [{"name": "Pad Thai", "price": "$12",},]'
    menu = parser.parse(raw)
    assert menu.categories[0].name == "Mains"
    assert menu.categories[0].items[0].name == "Pad Thai"
    assert menu.categories[0].items[0].price == "$12"


def test_truncated_string_is_closed(parser):
    raw = '{"categories": [{"name": "Mains", "items": [{"name": "Pad Thai"}, {"name": "Green Cur'
    items = parser.parse(raw).categories[0].items
    assert [item.name for item in items] == ["Pad Thai", "Green Cur"]


def test_dangling_key_is_dropped(parser):
    raw = '{"categories": [{"name": "Mains", "items": [{"name": "Pad Thai", "pri'
    item = parser.parse(raw).categories[0].items[0]
    assert item.name == "Pad Thai"
    assert item.price == ""


def test_repair_is_deterministic(parser):
    raw = '{"categories": [{"name": "Soups", "items": [{"name": "Pho", "price": "8"}, {"name": "Laksa"'
    assert parser.parse(raw).item_ids() == parser.parse(raw).item_ids() == ["item-1-1", "item-1-2"]


def test_unreadable_output_raises_parse_error(parser):
    with pytest.raises(ExtractionParseError) as exc_info:
        parser.parse("Sorry, I cannot read this menu.")
    error = exc_info.value
    assert error.error_code == ErrorCode.MENU_UNREADABLE
    assert error.raw_response == "Sorry, I cannot read this menu."
    assert "raw_response" not in error.details


def test_refusal_with_braces_raises_parse_error(parser):
    with pytest.raises(ExtractionParseError) as exc_info:
        parser.parse("Sorry, I {cannot} read this menu.")
    assert exc_info.value.error_code == ErrorCode.MENU_UNREADABLE


def test_object_without_menu_fields_raises_parse_error(parser):
    with pytest.raises(ExtractionParseError):
        parser.parse('{"note": "the photo is too blurry"}')


def test_unrepairable_output_raises_parse_error(parser):
    with pytest.raises(ExtractionParseError):
        parser.parse('{"categories":: []}')


def test_prose_braces_before_repairable_menu(parser):
    raw = (
        'Here is the menu {as requested}:\n'
        '{"categories": [{"name": "Mains", "items": [{"name": "Pad Thai", "price": "$12"},]}]}'
    )
    menu = parser.parse(raw)
    assert [item.name for item in menu.iter_items()] == ["Pad Thai"]
    assert menu.categories[0].items[0].price == "$12"


def test_unrelated_object_before_menu_is_skipped(parser):
    raw = '{"note": "x"}\n' + SPRING_ROLLS
    menu = parser.parse(raw)
    assert menu.restaurant_name == "Golden Dragon"
    assert menu.categories[0].items[0].name == "Spring Rolls"


def test_duplicate_category_names_get_suffixes(parser):
    raw = json.dumps({"categories": [
        {"name": "Drinks", "items": [{"name": "Tea"}]},
        {"name": "drinks", "items": [{"name": "Coffee"}]},
        {"name": "Drinks", "items": []},
    ]})
    names = [c.name for c in parser.parse(raw).categories]
    assert names == ["Drinks", "drinks (2)", "Drinks (3)"]


def test_duplicate_and_missing_ids_are_synthesized(parser):
    raw = json.dumps({"categories": [{"name": "A", "items": [
        {"id": "x", "name": "One"},
        {"id": "x", "name": "Two"},
        {"name": "Three"},
    ]}]})
    assert parser.parse(raw).item_ids() == ["x", "item-1-2", "item-1-3"]


def test_missing_fields_are_defaulted(parser):
    raw = json.dumps({"categories": [
        {"items": [
            "Green Tea",
            {"description": "no name, no price"},
            {"name": "Mapo Tofu", "attributes": "spicy, vegetarian", "texture": ["silky", "soft"]},
        ]},
        {"name": "Empty"},
    ]})
    menu = parser.parse(raw)
    first, second = menu.categories
    assert first.name == "Untitled"
    assert [item.name for item in first.items] == ["Green Tea", "Mapo Tofu"]
    assert first.items[1].id == "item-1-2"
    assert first.items[1].attributes == ["spicy", "vegetarian"]
    assert first.items[1].texture == "silky, soft"
    assert second.items == []


def test_missing_categories_gives_empty_menu(parser):
    assert parser.parse('{"restaurant_name": "Nowhere"}').categories == []


def test_wrapped_and_keyed_categories(parser):
    raw = json.dumps({"menu": {"categories": {"Soups": [{"name": "Pho"}]}}})
    menu = parser.parse(raw)
    assert menu.categories[0].name == "Soups"
    assert menu.categories[0].items[0].name == "Pho"


def test_ids_required_when_not_synthesizing(parser):
    raw = json.dumps({"categories": [{"name": "A", "items": [{"name": "One"}]}]})
    with pytest.raises(ExtractionParseError):
        parser.parse(raw, synthesize_ids=False)


def test_blank_item_with_id_is_kept_when_not_synthesizing(parser):
    raw = json.dumps({"categories": [{"name": "A", "items": [
        {"id": "item-1-1", "name": "One", "price": "$1"},
        {"id": "item-1-2", "name": "", "price": ""},
    ]}]})
    menu = parser.parse(raw, synthesize_ids=False)
    assert menu.item_ids() == ["item-1-1", "item-1-2"]
    assert menu.categories[0].items[1].name == ""


def test_repair_json_rules():
    assert repair_json('{"a": [1, 2,],}') == '{"a": [1, 2]}'
    assert json.loads(repair_json('{"a": {"b": [true, nul')) == {"a": {"b": [True]}}


def test_extract_json_block_skips_braces_in_strings():
    block, balanced = extract_json_block('noise {"a": "}{"} tail')
    assert balanced
    assert block == '{"a": "}{"}'
    block, balanced = extract_json_block('{"a": [1\n```')
    assert not balanced
    assert block == '{"a": [1'


@pytest.mark.parametrize("value,symbol,amount", [
    ("$9.99", "$", Decimal("9.99")),
    ("NT$150", "NT$", Decimal("150")),
    ("€ 8,50", "€", Decimal("8.50")),
    ("1,200", None, Decimal("1200")),
    ("USD 5", "USD", Decimal("5")),
    ("Market Price", None, None),
    (12, None, Decimal("12")),
])
def test_normalize_price(value, symbol, amount):
    info = normalize_price(value)
    assert info.currency_symbol == symbol
    assert info.amount == amount
    assert info.raw == str(value)
