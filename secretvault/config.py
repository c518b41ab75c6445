"""
SecretVault configuration - org credentials, node list and collection schema ids.
"""

import os
import logging
from typing import Optional

from pydantic import BaseModel, Field, HttpUrl, ValidationError

from core.config import ConfigError
from core.formatting import format_private_key

logger = logging.getLogger("merchant.secretvault.config")

NODE_COUNT = 3
DEFAULT_TOKEN_EXPIRY_SECONDS = 3600


class NodeConfig(BaseModel):
    url: HttpUrl
    did: str = Field(..., min_length=1)

    @property
    def base_url(self) -> str:
        return str(self.url).rstrip("/")


class OrgCredentials(BaseModel):
    org_did: str = Field(..., min_length=1)
    secret_key: str = Field(..., min_length=1)


class SchemaIds(BaseModel):
    merchant: str = ""
    product: str = ""
    sales: str = ""


class SecretVaultConfig(BaseModel):
    org_credentials: OrgCredentials
    nodes: list[NodeConfig]
    schema_ids: SchemaIds = Field(default_factory=SchemaIds)
    token_expiry_seconds: int = DEFAULT_TOKEN_EXPIRY_SECONDS

    @classmethod
    def from_env(cls) -> "SecretVaultConfig":
        """
        Read SV_* variables. NILLION_ORG_DID / NILLION_ORG_SECRET_KEY are
        accepted in place of SV_ORG_DID / SV_PRIVATE_KEY.

        Raises ConfigError naming every missing variable, or on invalid values.
        """
        org_did = os.getenv("SV_ORG_DID") or os.getenv("NILLION_ORG_DID")
        secret_key = format_private_key(os.getenv("SV_PRIVATE_KEY") or os.getenv("NILLION_ORG_SECRET_KEY"))

        missing = []
        if not org_did:
            missing.append("SV_ORG_DID")
        if not secret_key:
            missing.append("SV_PRIVATE_KEY")
        for i in range(1, NODE_COUNT + 1):
            for suffix in ("URL", "DID"):
                name = f"SV_NODE{i}_{suffix}"
                if not os.getenv(name):
                    missing.append(name)
        for name in ("SCHEMA_ID_MERCHANT", "SCHEMA_ID_PRODUCT", "SCHEMA_ID_SALES"):
            if not os.getenv(name):
                missing.append(name)

        if missing:
            raise ConfigError(f"Missing required environment variables: {', '.join(missing)}", missing)

        try:
            expiry = int(os.getenv("SV_TOKEN_EXPIRY_SECONDS", str(DEFAULT_TOKEN_EXPIRY_SECONDS)))
        except ValueError:
            raise ConfigError("SV_TOKEN_EXPIRY_SECONDS must be an integer")

        try:
            return cls(
                org_credentials=OrgCredentials(org_did=org_did, secret_key=secret_key),
                nodes=[
                    NodeConfig(url=os.getenv(f"SV_NODE{i}_URL"), did=os.getenv(f"SV_NODE{i}_DID"))
                    for i in range(1, NODE_COUNT + 1)
                ],
                schema_ids=SchemaIds(
                    merchant=os.getenv("SCHEMA_ID_MERCHANT"),
                    product=os.getenv("SCHEMA_ID_PRODUCT"),
                    sales=os.getenv("SCHEMA_ID_SALES"),
                ),
                token_expiry_seconds=expiry,
            )
        except ValidationError as e:
            raise ConfigError(f"Invalid SecretVault configuration: {e}") from e


def load_secret_vault_config() -> Optional[SecretVaultConfig]:
    """Config if fully set, else None (vault-backed actions stay disabled)."""
    try:
        return SecretVaultConfig.from_env()
    except ConfigError as e:
        logger.info(f"SecretVault disabled: {e}")
        return None
