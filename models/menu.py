"""Menu document model — the final pipeline artifact.

Field aliases carry the Polish wire keys of ``output/menu.json``:

    { "menu": [ { "kategoria": ..., "dania": [ { "nazwa", "opis", "cena", "waluta" } ] } ] }

Only the wire keys validate. The same models generate the JSON schema sent to
the extraction model, so the schema and the validator can never drift apart.
"""
from pydantic import BaseModel, ConfigDict, Field

from utils.openai_utils import strict_schema


class Dish(BaseModel):
    """One priced menu position.

    A dish offered in several sizes is stored as several Dish records, each with
    its own variant in ``description`` and its own scalar ``price``.
    """

    model_config = ConfigDict(json_schema_extra=strict_schema)

    name: str = Field(alias="nazwa")
    description: str = Field(alias="opis")
    price: float = Field(alias="cena", allow_inf_nan=False)
    currency: str = Field(alias="waluta")


class Category(BaseModel):
    model_config = ConfigDict(json_schema_extra=strict_schema)

    name: str = Field(alias="kategoria", description="Nazwa kategorii, np. 'Przystawki'.")
    dishes: list[Dish] = Field(alias="dania", description="Lista dań w danej kategorii.")


class MenuDocument(BaseModel):
    model_config = ConfigDict(json_schema_extra=strict_schema)

    categories: list[Category] = Field(alias="menu", description="Lista kategorii dań w menu.")

    @property
    def dish_count(self) -> int:
        return sum(len(c.dishes) for c in self.categories)

    def to_json(self) -> str:
        """Serialize with the wire keys, pretty-printed, non-ASCII kept as-is."""
        return self.model_dump_json(by_alias=True, indent=2)

    @classmethod
    def json_schema(cls) -> dict:
        return cls.model_json_schema(by_alias=True)
