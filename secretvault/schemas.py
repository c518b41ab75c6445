"""
SecretVault records - merchant profiles, products and sales.

Plain documents: generate an id, validate, hand to the vault. Python field
names are snake_case; on the wire they use the camelCase keys the node
schemas define, plus `_id` and `created_at`.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from core.formatting import truncate_words


def _new_id() -> str:
    return str(uuid.uuid4())


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class VaultRecord(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=_new_id, alias="_id")
    created_at: str = Field(default_factory=_now_iso, alias="created_at")

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class MerchantProfile(VaultRecord):
    owner: str = Field(..., min_length=1)
    store_name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    location: str = ""


class Product(VaultRecord):
    product_code: str = Field(..., min_length=1)
    product_name: str = Field(..., min_length=1)
    product_description: str = ""
    initial_stock: int = Field(0, ge=0)
    sale_price: float = Field(0.0, ge=0)
    sales: int = Field(0, ge=0)
    returns: int = Field(0, ge=0)
    store_id: Optional[str] = None

    @field_validator("product_description")
    @classmethod
    def _clamp_description(cls, value: str) -> str:
        return truncate_words(value)

    @property
    def current_stock(self) -> int:
        return self.initial_stock - self.sales + self.returns


class Sale(VaultRecord):
    product_id: str = Field(..., min_length=1)
    store_id: Optional[str] = None
    quantity: int = Field(..., gt=0)
    price: float = Field(0.0, ge=0)
    timestamp: str = Field(default_factory=_now_iso)
