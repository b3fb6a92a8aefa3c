"""
==============================================================================
Product Models Module
==============================================================================

Pydantic models for products returned by Open Food Facts.

==============================================================================
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field


class Nutriments(BaseModel):
    """Per-100g nutrition values (subset)."""

    model_config = ConfigDict(extra="ignore")

    energy_kcal: Optional[float] = Field(default=None, alias="energy-kcal_100g")
    fat: Optional[float] = Field(default=None, alias="fat_100g")
    carbohydrates: Optional[float] = Field(default=None, alias="carbohydrates_100g")
    proteins: Optional[float] = Field(default=None, alias="proteins_100g")
    sugars: Optional[float] = Field(default=None, alias="sugars_100g")
    salt: Optional[float] = Field(default=None, alias="salt_100g")


class ProductInfo(BaseModel):
    """
    Product record keyed by barcode.

    Attributes:
        code: Barcode the product is registered under
        product_name: Display name
        brands: Comma-separated brand names
        nutriscore_grade: Nutri-Score letter (a-e)
        ecoscore_grade: Eco-Score letter (a-e)
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    code: str = Field(..., description="Barcode")
    product_name: Optional[str] = None
    brands: Optional[str] = None
    quantity: Optional[str] = None
    categories: Optional[str] = None
    ingredients_text: Optional[str] = None
    image_url: Optional[str] = None
    countries: Optional[str] = None
    packaging: Optional[str] = None
    nutriscore_grade: Optional[str] = None
    ecoscore_grade: Optional[str] = None
    nutriments: Nutriments = Field(default_factory=Nutriments)

    @classmethod
    def from_payload(cls, barcode: str, product: Dict[str, Any]) -> "ProductInfo":
        """Build from the `product` object of an Open Food Facts response."""
        data = dict(product)
        data["code"] = str(data.get("code") or barcode)
        data["nutriments"] = Nutriments.model_validate(data.get("nutriments") or {})
        return cls.model_validate(data)
