"""
Canonical menu schema.

Attribute names are snake_case; the public JSON contract is camelCase through
the alias generator, and either spelling is accepted on input. Instances are
frozen: a menu is never edited in place once the parser has produced it, a
translation produces a new one.
"""

from typing import Iterator, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class _MenuModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class MenuItem(_MenuModel):
    """A single dish or drink."""
    id: str = Field(min_length=1)
    name: str
    description: Optional[str] = None
    price: str = Field(default="", description="Price exactly as printed, currency included")
    attributes: List[str] = Field(default_factory=list)
    allergens: List[str] = Field(default_factory=list)
    flavor_profile: Optional[str] = None
    texture: Optional[str] = None

    @field_validator('price', mode='before')
    @classmethod
    def coerce_price(cls, v):
        """Price is always a string, whatever the model emitted"""
        if v is None:
            return ""
        if isinstance(v, bool):
            return str(v).lower()
        if isinstance(v, (int, float)):
            return f"{v}"
        return v


class MenuCategory(_MenuModel):
    """A named group of items; item order is the order printed on the menu."""
    name: str
    items: List[MenuItem] = Field(default_factory=list)


class ExtractedMenu(_MenuModel):
    """Structured menu produced from a photograph (or translated from one)."""
    restaurant_name: Optional[str] = None
    menu_type: str = ""
    categories: List[MenuCategory] = Field(default_factory=list)

    @model_validator(mode='after')
    def check_identity_invariants(self):
        seen_names = set()
        for category in self.categories:
            folded = category.name.casefold()
            if folded in seen_names:
                raise ValueError(f"Duplicate category name: {category.name!r}")
            seen_names.add(folded)

        seen_ids = set()
        for item in self.iter_items():
            if item.id in seen_ids:
                raise ValueError(f"Duplicate item id: {item.id!r}")
            seen_ids.add(item.id)
        return self

    def iter_items(self) -> Iterator[MenuItem]:
        for category in self.categories:
            yield from category.items

    def item_ids(self) -> List[str]:
        """Item ids in category/item order."""
        return [item.id for item in self.iter_items()]

    @property
    def total_items(self) -> int:
        return sum(len(category.items) for category in self.categories)
