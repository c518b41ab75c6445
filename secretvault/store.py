"""
SecretVault collections - schema-validated access on top of the API client.
"""

import logging
from typing import Generic, Optional, Type, TypeVar

from pydantic import ValidationError

from secretvault.client import SecretVaultApiClient
from secretvault.config import SecretVaultConfig
from secretvault.schemas import MerchantProfile, Product, Sale, VaultRecord

logger = logging.getLogger("merchant.secretvault.store")

R = TypeVar("R", bound=VaultRecord)


class SecretVaultCollection(Generic[R]):
    """One schema id bound to one record model."""

    def __init__(self, client: SecretVaultApiClient, schema_id: str, model: Type[R]):
        self.client = client
        self.schema_id = schema_id
        self.model = model

    async def write(self, records: list[R]) -> list[str]:
        documents = []
        for record in records:
            # Re-validate: callers may have mutated the model after construction
            validated = self.model.model_validate(record.model_dump(by_alias=True))
            documents.append(validated.to_document())
        await self.client.create_records(self.schema_id, documents)
        ids = [doc["_id"] for doc in documents]
        logger.info(f"Wrote {len(ids)} {self.model.__name__} record(s) to schema {self.schema_id[:8]}...")
        return ids

    async def read(self, filter: Optional[dict] = None) -> list[R]:
        rows = await self.client.read_records(self.schema_id, filter or {})
        records = []
        for row in rows:
            try:
                records.append(self.model.model_validate(row))
            except ValidationError as e:
                logger.warning(f"Skipping malformed {self.model.__name__} record {row.get('_id', '?')}: {e}")
        return records

    async def update(self, filter: dict, fields: dict) -> None:
        await self.client.update_records(self.schema_id, filter, fields)

    async def delete(self, filter: dict) -> None:
        await self.client.delete_records(self.schema_id, filter)


class MerchantVault:
    """Merchant, product and sales collections sharing one client."""

    def __init__(self, client: SecretVaultApiClient, config: SecretVaultConfig):
        self.client = client
        self.merchants: SecretVaultCollection[MerchantProfile] = SecretVaultCollection(
            client, config.schema_ids.merchant, MerchantProfile
        )
        self.products: SecretVaultCollection[Product] = SecretVaultCollection(
            client, config.schema_ids.product, Product
        )
        self.sales: SecretVaultCollection[Sale] = SecretVaultCollection(
            client, config.schema_ids.sales, Sale
        )

    @classmethod
    async def connect(cls, config: SecretVaultConfig) -> "MerchantVault":
        client = SecretVaultApiClient(config)
        await client.init()
        return cls(client, config)

    async def close(self):
        await self.client.close()
