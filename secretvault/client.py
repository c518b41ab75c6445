"""
SecretVault API Client - REST + JWT access to the storage nodes

Each node gets its own ES256K JWT (iss = org DID, aud = node DID) signed with
the org's secp256k1 key. Writes, updates and deletes go to every node
concurrently; reads and admin calls go to the first node.

Usage:
    client = SecretVaultApiClient(config)
    await client.init()
    await client.create_records(schema_id, [record])
    rows = await client.read_records(schema_id, {"productCode": "A1"})
"""

import json
import time
import uuid
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import aiohttp
import jwt
from cryptography.hazmat.primitives.asymmetric import ec

from secretvault.config import SecretVaultConfig

logger = logging.getLogger("merchant.secretvault.client")

# Node tokens are re-minted once they are this close to expiring
TOKEN_REFRESH_MARGIN = 60


class SecretVaultError(Exception):
    """A node rejected a request or could not be reached."""

    def __init__(self, message: str, status: int = 0, node_url: str = "", body: Any = None):
        super().__init__(message)
        self.status = status
        self.node_url = node_url
        self.body = body


def load_signing_key(secret_key_hex: str) -> ec.EllipticCurvePrivateKey:
    """secp256k1 private key from a hex string (0x prefix optional)."""
    key = secret_key_hex.strip()
    if key.startswith("0x"):
        key = key[2:]
    try:
        return ec.derive_private_key(int(key, 16), ec.SECP256K1())
    except ValueError as e:
        raise SecretVaultError(f"Invalid SecretVault secret key: {e}") from e


class _Node:
    def __init__(self, url: str, did: str):
        self.url = url
        self.did = did
        self.jwt = ""
        self.expires_at = 0


class SecretVaultApiClient:
    def __init__(self, config: SecretVaultConfig, session: Optional[aiohttp.ClientSession] = None):
        if not config.nodes:
            raise SecretVaultError("SecretVault config has no nodes")
        self._org_did = config.org_credentials.org_did
        self._signing_key = load_signing_key(config.org_credentials.secret_key)
        self._token_expiry = config.token_expiry_seconds
        self._nodes = [_Node(node.base_url, node.did) for node in config.nodes]
        self._session = session
        self._timeout = aiohttp.ClientTimeout(total=30)

    # ============================================================
    # AUTH
    # ============================================================

    def generate_node_token(self, node_did: str, now: Optional[int] = None) -> str:
        if now is None:
            now = int(time.time())
        payload = {
            "iss": self._org_did,
            "aud": node_did,
            "iat": now,
            "exp": now + self._token_expiry,
        }
        return jwt.encode(payload, self._signing_key, algorithm="ES256K")

    async def init(self) -> None:
        """Mint a JWT for every node."""
        for node in self._nodes:
            self._mint(node)
        logger.info(f"SecretVault client ready: {len(self._nodes)} nodes, org={self._org_did[:24]}...")

    @property
    def nodes(self) -> list[_Node]:
        return self._nodes

    def _mint(self, node: _Node) -> None:
        now = int(time.time())
        node.jwt = self.generate_node_token(node.did, now)
        node.expires_at = now + self._token_expiry

    def _headers(self, node: _Node) -> dict:
        if time.time() >= node.expires_at - TOKEN_REFRESH_MARGIN:
            self._mint(node)
            logger.debug(f"Refreshed SecretVault token for {node.url}")
        return {
            "Authorization": f"Bearer {node.jwt}",
            "Content-Type": "application/json",
        }

    # ============================================================
    # TRANSPORT
    # ============================================================

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def _request(self, node: _Node, method: str, path: str, json_body: Any = None, auth: bool = True) -> Any:
        session = await self._get_session()
        url = f"{node.url}{path}"
        headers = self._headers(node) if auth else None
        try:
            async with session.request(method, url, json=json_body, headers=headers) as resp:
                text = await resp.text()
                status = resp.status
        except aiohttp.ClientError as e:
            raise SecretVaultError(f"{method} {url} failed: {e}", node_url=node.url) from e

        try:
            body = json.loads(text) if text else None
        except ValueError:
            if status < 400:
                raise SecretVaultError(
                    f"{method} {url} returned a non-JSON body", status=status, node_url=node.url, body=text,
                )
            body = text

        if status >= 400:
            raise SecretVaultError(
                f"{method} {url} failed with HTTP {status}: {body}",
                status=status, node_url=node.url, body=body,
            )
        return body

    async def _all_nodes(self, method: str, path: str, json_body: Any) -> Any:
        """Send to every node concurrently; return the first node's body."""
        results = await asyncio.gather(
            *(self._request(node, method, path, json_body) for node in self._nodes)
        )
        return results[0]

    # ============================================================
    # NODE INFO
    # ============================================================

    async def get_health(self) -> Any:
        return await self._request(self._nodes[0], "GET", "/health", auth=False)

    async def get_node_details(self) -> Any:
        return await self._request(self._nodes[0], "GET", "/about", auth=False)

    # ============================================================
    # SCHEMAS
    # ============================================================

    async def create_schema(self, schema: dict) -> Any:
        """schema: {"_id", "name", "keys", "schema"}"""
        return await self._all_nodes("POST", "/api/v1/schemas", schema)

    async def delete_schema(self, schema_id: str) -> Any:
        return await self._request(self._nodes[0], "DELETE", "/api/v1/schemas", {"id": schema_id})

    # ============================================================
    # DATA
    # ============================================================

    async def create_records(self, schema_id: str, data: list[dict]) -> Any:
        now = datetime.now(timezone.utc).isoformat()
        records = [
            {
                **record,
                "_id": record.get("_id") or str(uuid.uuid4()),
                "created_at": record.get("created_at") or now,
            }
            for record in data
        ]
        return await self._all_nodes("POST", "/api/v1/data/create", {"schema": schema_id, "data": records})

    async def read_records(self, schema_id: str, filter: Optional[dict] = None) -> list[dict]:
        body = await self._request(
            self._nodes[0], "POST", "/api/v1/data/read",
            {"schema": schema_id, "filter": filter or {}},
        )
        return (body or {}).get("data", [])

    async def update_records(self, schema_id: str, filter: dict, update: dict) -> Any:
        return await self._all_nodes(
            "POST", "/api/v1/data/update",
            {"schema": schema_id, "filter": filter, "update": {"$set": update}},
        )

    async def delete_records(self, schema_id: str, filter: dict) -> Any:
        return await self._all_nodes("POST", "/api/v1/data/delete", {"schema": schema_id, "filter": filter})

    async def flush_schema(self, schema_id: str) -> Any:
        return await self._request(self._nodes[0], "POST", "/api/v1/data/flush", {"schema": schema_id})

    # ============================================================
    # QUERIES
    # ============================================================

    async def list_queries(self) -> Any:
        return await self._request(self._nodes[0], "GET", "/api/v1/queries")

    async def create_query(self, query: dict) -> Any:
        """query: {"_id", "name", "schema", "variables", "pipeline"}"""
        return await self._request(self._nodes[0], "POST", "/api/v1/queries", query)

    async def delete_query(self, query_id: str) -> Any:
        return await self._request(self._nodes[0], "DELETE", "/api/v1/queries", {"id": query_id})

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()
