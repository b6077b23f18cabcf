from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List, Literal
from pydantic import Field

from refurb_hub.domain import CamelModel, ProductGroup

class GroupSyncState(str, Enum):
    PENDING = "PENDING"
    MATCHING = "MATCHING"
    CREATING = "CREATING"
    UPDATING = "UPDATING"
    DONE = "DONE"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"

TERMINAL_STATES = frozenset({GroupSyncState.DONE, GroupSyncState.FAILED, GroupSyncState.SKIPPED})

class GroupOutcome(CamelModel):
    key: str
    title: str
    state: GroupSyncState = GroupSyncState.PENDING
    action: Optional[Literal["create", "update"]] = None
    remote_product_id: Optional[int] = None
    variants_created: int = 0
    variants_updated: int = 0
    stock_items: int = 0
    images_uploaded: int = 0
    error: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)

class SyncRequest(CamelModel):
    store_url: str = ""
    api_token: str = ""
    product_groups: Dict[str, ProductGroup] = Field(default_factory=dict)
    batch_guard: Optional[bool] = None
    upload_images: bool = True

class SyncResult(CamelModel):
    created: int = 0
    updated: int = 0
    errors: int = 0
    skipped: int = 0
    details: List[str] = Field(default_factory=list)
    collections_created: int = 0
    variants_created: int = 0
    variants_updated: int = 0
    stock_items_processed: int = 0
    outcomes: List[GroupOutcome] = Field(default_factory=list)

class FindImagesIn(CamelModel):
    product_specs: Dict[str, Any] = Field(default_factory=dict)

class RecordSaleIn(CamelModel):
    stock_id: str
    sale_price: float = Field(gt=0)
    payment_method: Literal["cash", "interac"]
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    notes: Optional[str] = None
    sale_date: Optional[datetime] = None

class AddCostIn(CamelModel):
    stock_id: str
    cost_type: Literal["repair", "charger", "taxes", "shipping", "other"]
    amount: float = Field(gt=0)
    description: Optional[str] = None
    date: Optional[datetime] = None

class CostOut(CamelModel):
    id: int
    stock_id: str
    cost_type: str
    amount: float
    description: Optional[str] = None
    date: datetime

class ProductOut(CamelModel):
    stock_id: str
    serial_number: Optional[str] = None
    product_type: str
    display_size: Optional[str] = None
    processor: Optional[str] = None
    storage: Optional[str] = None
    memory: Optional[str] = None
    year: Optional[str] = None
    color: Optional[str] = None
    condition: Optional[str] = None
    keyboard_layout: Optional[str] = None
    supplier_cost: float = 0
    additional_costs: float = 0
    remote_product_id: Optional[int] = None
    sold: bool = False
    date_added: Optional[datetime] = None
    comments: Optional[str] = None

class DashboardStats(CamelModel):
    total_products: int = 0
    available_products: int = 0
    sold_products: int = 0
    total_sales: float = 0
