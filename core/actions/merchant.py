"""
Merchant Actions - store profiles, product registration, inventory and sales

Without a vault only store_profile and register_product are exposed; they
build the record, log it and return its id. With a MerchantVault the records
are written to SecretVault and the inventory/sales actions are added.

Stock arithmetic: current = initial_stock - sales + returns.
"""

import json
import logging
from typing import Optional

from pydantic import BaseModel, Field

from core.actions.base import Action, ActionProvider, create_action
from core.formatting import truncate_words
from secretvault.schemas import MerchantProfile, Product, Sale
from secretvault.store import MerchantVault

logger = logging.getLogger("merchant.actions.merchant")

VAULT_ACTIONS = frozenset({
    "get_store", "get_store_profile", "get_inventory",
    "record_sale", "record_return", "get_stock_report", "get_inventory_report",
})


# ============================================================
# SCHEMAS
# ============================================================

class StoreProfileArgs(BaseModel):
    owner: str = Field(..., min_length=1, description="Owner's name")
    store_name: str = Field(..., min_length=1, description="Store name")
    description: str = Field(..., min_length=1, description="Brief store description")
    location: str = Field("", description="Store location (optional)")


class RegisterProductArgs(BaseModel):
    product_code: str = Field(..., min_length=1, description="Product code")
    product_name: str = Field(..., min_length=1, description="Product name")
    product_description: str = Field(..., min_length=1, description="Brief description (max 4 words)")
    initial_stock: int = Field(0, ge=0, description="Units in stock at registration")
    sale_price: float = Field(0.0, ge=0, description="Sale price per unit")
    store_id: Optional[str] = Field(None, description="Id of the store selling this product")


class GetStoreArgs(BaseModel):
    store_name: Optional[str] = Field(None, description="Filter by store name")


class StoreIdArgs(BaseModel):
    store_id: str = Field(..., min_length=1, description="Store id")


class ProductFilterArgs(BaseModel):
    product_code: Optional[str] = Field(None, description="Filter by product code")


class StoreFilterArgs(BaseModel):
    store_id: Optional[str] = Field(None, description="Filter by store id")


class RecordSaleArgs(BaseModel):
    product_code: str = Field(..., min_length=1, description="Product code")
    quantity: int = Field(..., gt=0, description="Units sold")
    store_id: Optional[str] = Field(None, description="Store where the sale happened")


class RecordReturnArgs(BaseModel):
    product_code: str = Field(..., min_length=1, description="Product code")
    quantity: int = Field(..., gt=0, description="Units returned")


def _stock_row(product: Product, with_price: bool = False) -> dict:
    row = {
        "productCode": product.product_code,
        "productName": product.product_name,
        "initialStock": product.initial_stock,
        "currentStock": product.current_stock,
        "totalSales": product.sales,
        "returns": product.returns,
    }
    if with_price:
        row["salePrice"] = product.sale_price
    return row


# ============================================================
# PROVIDER
# ============================================================

class MerchantActionProvider(ActionProvider):
    def __init__(self, vault: Optional[MerchantVault] = None):
        super().__init__("merchant")
        self.vault = vault

    def get_actions(self, wallet=None) -> list[Action]:
        actions = super().get_actions(wallet)
        if self.vault is None:
            actions = [a for a in actions if a.name not in VAULT_ACTIONS]
        return actions

    # ── registration ─────────────────────────────────────────

    @create_action(
        name="store_profile",
        description="Store merchant profile: owner's name, store name, and a brief description.",
        schema=StoreProfileArgs,
    )
    async def store_profile(self, wallet, args: StoreProfileArgs) -> str:
        profile = MerchantProfile(
            owner=args.owner,
            store_name=args.store_name,
            description=args.description,
            location=args.location,
        )
        logger.info(f"Registering merchant profile: {profile.to_document()}")
        if self.vault is not None:
            await self.vault.merchants.write([profile])
        return f"Profile registered: {profile.id}"

    @create_action(
        name="register_product",
        description="Register product in inventory: product code, product name, and a brief description (max 4 words).",
        schema=RegisterProductArgs,
    )
    async def register_product(self, wallet, args: RegisterProductArgs) -> str:
        product = Product(
            product_code=args.product_code,
            product_name=args.product_name,
            product_description=truncate_words(args.product_description),
            initial_stock=args.initial_stock,
            sale_price=args.sale_price,
            store_id=args.store_id,
        )
        logger.info(f"Registering product: {product.to_document()}")
        if self.vault is not None:
            await self.vault.products.write([product])
        return f"Product registered: {product.id}"

    # ── stores ───────────────────────────────────────────────

    @create_action(
        name="get_store",
        description="Retrieve store information, optionally filtered by store name.",
        schema=GetStoreArgs,
    )
    async def get_store(self, wallet, args: GetStoreArgs) -> str:
        filter = {"storeName": args.store_name} if args.store_name else {}
        stores = await self.vault.merchants.read(filter)
        return json.dumps([s.to_document() for s in stores], indent=2)

    @create_action(
        name="get_store_profile",
        description="Retrieve a store profile by its id.",
        schema=StoreIdArgs,
    )
    async def get_store_profile(self, wallet, args: StoreIdArgs) -> str:
        stores = await self.vault.merchants.read({"_id": args.store_id})
        if not stores:
            return "Store not found"
        return json.dumps(stores[0].to_document(), indent=2)

    # ── inventory ────────────────────────────────────────────

    @create_action(
        name="get_inventory",
        description="Retrieve inventory records, optionally filtered by product code.",
        schema=ProductFilterArgs,
    )
    async def get_inventory(self, wallet, args: ProductFilterArgs) -> str:
        filter = {"productCode": args.product_code} if args.product_code else {}
        products = await self.vault.products.read(filter)
        return json.dumps([p.to_document() for p in products], indent=2)

    async def _find_product(self, product_code: str) -> Optional[Product]:
        products = await self.vault.products.read({"productCode": product_code})
        return products[0] if products else None

    @create_action(
        name="record_sale",
        description="Record a product sale and decrease its available stock.",
        schema=RecordSaleArgs,
    )
    async def record_sale(self, wallet, args: RecordSaleArgs) -> str:
        product = await self._find_product(args.product_code)
        if product is None:
            return f"Product {args.product_code} not found"

        current = product.current_stock
        if current < args.quantity:
            return f"Insufficient stock. Only {current} units available"

        await self.vault.products.update(
            {"productCode": args.product_code},
            {"sales": product.sales + args.quantity},
        )
        sale = Sale(
            product_id=product.id,
            store_id=args.store_id or product.store_id,
            quantity=args.quantity,
            price=product.sale_price,
        )
        await self.vault.sales.write([sale])
        return f"Successfully recorded sale of {args.quantity} units of {product.product_name}"

    @create_action(
        name="record_return",
        description="Record returned units of a product, adding them back to stock.",
        schema=RecordReturnArgs,
    )
    async def record_return(self, wallet, args: RecordReturnArgs) -> str:
        product = await self._find_product(args.product_code)
        if product is None:
            return f"Product {args.product_code} not found"

        await self.vault.products.update(
            {"productCode": args.product_code},
            {"returns": product.returns + args.quantity},
        )
        return f"Successfully recorded return of {args.quantity} units of {product.product_name}"

    @create_action(
        name="get_stock_report",
        description="Get current stock levels, optionally for a single product code.",
        schema=ProductFilterArgs,
    )
    async def get_stock_report(self, wallet, args: ProductFilterArgs) -> str:
        filter = {"productCode": args.product_code} if args.product_code else {}
        products = await self.vault.products.read(filter)
        return json.dumps([_stock_row(p) for p in products], indent=2)

    @create_action(
        name="get_inventory_report",
        description="Generate a detailed inventory report with prices, optionally for one store.",
        schema=StoreFilterArgs,
    )
    async def get_inventory_report(self, wallet, args: StoreFilterArgs) -> str:
        filter = {"storeId": args.store_id} if args.store_id else {}
        products = await self.vault.products.read(filter)
        return json.dumps([_stock_row(p, with_price=True) for p in products], indent=2)
