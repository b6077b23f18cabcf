# refurb_hub/domain.py
"""
Inventory domain models: classified specs, serialized units, variant buckets
and the sellable product groups built from them.

All models serialize with camelCase aliases so the upload response can be
posted back unchanged to the sync endpoint.
"""
from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

GRADES: Tuple[str, ...] = ("A", "B", "C", "D")
DEFAULT_COLOR = "Space Gray"
DEFAULT_GRADE = "A"
KEYBOARD_ENGLISH = "English"
KEYBOARD_FRENCH = "French Canadian"

# Fields that identify a listing; color/condition/keyboard are variant axes.
GROUP_KEY_FIELDS: Tuple[str, ...] = (
    "product_type", "display_size", "processor", "storage", "memory", "year",
)
SPEC_FIELDS = frozenset(GROUP_KEY_FIELDS + ("model_number", "category", "device_family"))


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProductSpec(CamelModel):
    """Classification result for one physical unit."""
    product_type: str
    display_size: str = ""
    processor: str = ""
    storage: str = ""
    memory: str = ""
    year: str = ""
    model_number: str = ""
    category: str = ""
    device_family: str = ""


class StockItem(CamelModel):
    model_config = ConfigDict(frozen=True)

    stock_id: str = ""
    serial_number: str = ""
    color: str = DEFAULT_COLOR
    condition: str = DEFAULT_GRADE
    keyboard_layout: str = KEYBOARD_ENGLISH
    comments: str = ""
    date_added: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def variant_key(color: str, condition: str, keyboard_layout: str) -> str:
    return f"{color}|{condition}|{keyboard_layout}"


class VariantBucket(CamelModel):
    """Units of one group sharing color, condition grade and keyboard layout."""
    color: str
    condition: str
    keyboard_layout: str
    condition_description: str = ""
    quantity: int = 0
    stock_items: List[StockItem] = Field(default_factory=list)
    sku: str = ""
    price: int = 0
    compare_at_price: int = 0

    @property
    def key(self) -> str:
        return variant_key(self.color, self.condition, self.keyboard_layout)

    @property
    def options(self) -> Tuple[str, str, str]:
        """Remote option triple (option1, option2, option3)."""
        return (self.color, f"Grade {self.condition}", self.keyboard_layout)

    def add(self, item: StockItem) -> None:
        self.stock_items.append(item)
        self.quantity += 1

    @model_validator(mode="after")
    def _quantity_matches_members(self) -> "VariantBucket":
        if self.quantity != len(self.stock_items):
            raise ValueError(
                f"variant {self.key}: quantity {self.quantity} != {len(self.stock_items)} stock items"
            )
        return self


class ImageAvailability(CamelModel):
    has_images: bool = False
    match_count: int = 0
    best_match: Optional[Dict[str, Any]] = None


class ProductGroup(ProductSpec):
    """
    A sellable listing: every unit sharing the same non-variant spec.

    Invariant: total_units == sum(v.quantity) == len(stock_items).
    """
    key: str = ""

    # Generated content
    seo_title: str = ""
    seo_description: str = ""
    seo_handle: str = ""
    product_description: str = ""
    base_price: int = 0
    retail_price: int = 0
    collections: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)

    # Inventory
    total_units: int = 0
    variants: Dict[str, VariantBucket] = Field(default_factory=dict)
    stock_items: List[StockItem] = Field(default_factory=list)

    # Remote catalog back-reference
    shopify_product_id: Optional[int] = None
    image_availability: Optional[ImageAvailability] = None
    last_updated: Optional[datetime] = None

    @model_validator(mode="after")
    def _units_are_conserved(self) -> "ProductGroup":
        problem = conservation_problem(self)
        if problem:
            raise ValueError(problem)
        return self

    @property
    def spec(self) -> ProductSpec:
        return ProductSpec(**{f: getattr(self, f) for f in SPEC_FIELDS})

    @property
    def variant_count(self) -> int:
        return len(self.variants)

    def diagnostic_context(self) -> Dict[str, Any]:
        return {
            "productType": self.product_type,
            "processor": self.processor,
            "storage": self.storage,
            "memory": self.memory,
            "totalUnits": self.total_units,
            "variantCount": self.variant_count,
        }


def conservation_problem(group: ProductGroup) -> Optional[str]:
    """Describe a broken unit-count invariant, or None when the group is consistent."""
    bucket_total = sum(v.quantity for v in group.variants.values())
    if bucket_total == len(group.stock_items) == group.total_units:
        return None
    return (
        f"group {group.key or group.product_type}: totalUnits={group.total_units}, "
        f"variant quantities={bucket_total}, stockItems={len(group.stock_items)}"
    )


class RejectedRow(CamelModel):
    row_number: int
    model: str = ""
    category: str = ""
    processor: str = ""
    reason: str = "unrecognized product"


class GroupingResult(CamelModel):
    product_groups: Dict[str, ProductGroup] = Field(default_factory=dict)
    categories: Dict[str, int] = Field(default_factory=dict)
    total_items: int = 0
    group_count: int = 0
    total_unique_units: int = 0
    rejected_count: int = 0
    rejected_samples: List[RejectedRow] = Field(default_factory=list)
