import asyncio
import logging
import random
from enum import Enum
from typing import Optional

import aiohttp
import base58
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from .exceptions import RelayError, SendTransactionError

logger = logging.getLogger(__name__)


class RelayRegion(str, Enum):
    MAINNET = "mainnet"
    AMSTERDAM = "amsterdam"
    FRANKFURT = "frankfurt"
    NEW_YORK = "ny"
    TOKYO = "tokyo"


RELAY_ENDPOINTS = {
    RelayRegion.MAINNET: "https://mainnet.block-engine.jito.wtf",
    RelayRegion.AMSTERDAM: "https://amsterdam.mainnet.block-engine.jito.wtf",
    RelayRegion.FRANKFURT: "https://frankfurt.mainnet.block-engine.jito.wtf",
    RelayRegion.NEW_YORK: "https://ny.mainnet.block-engine.jito.wtf",
    RelayRegion.TOKYO: "https://tokyo.mainnet.block-engine.jito.wtf",
}

TIP_ACCOUNTS = [
    "96gYZGLnJYVFmbjzopPSU6QiEV5fGqZNyN9nmNhvrZU5",
    "HFqU5x63VTqvQss8hp11i4bVmkdzGHb67ETqsnjhJZeK",
    "Cw8CFyM9FkoMi7K7Crf6HNQqf4uEMzpKw6QNghXLvLkY",
    "ADaUMid9yfUytqMBgopwjb2DTLSokTSzL1zt6iGPaS49",
    "DfXygSm4jCyNCybVYYK6DwvWqjKee8pbDmJGcLWNDXjh",
    "ADuUkR4vqLUMWXxW9gh6D6L8pMSawimctcNZ5pGwDcEt",
    "DttWaMuVvTiduZRnguLF7jNxTgiMBZ1hyAumKUiL2KRL",
    "3AVi9Tg9Uo68tJfuvoKvqKNWKkC5wPdSSdeBnizKZ6jT",
]

DEFAULT_TIP_ACCOUNT = Pubkey.from_string("DttWaMuVvTiduZRnguLF7jNxTgiMBZ1hyAumKUiL2KRL")

TRANSACTIONS_PATH = "/api/v1/transactions"


def random_tip_account() -> Pubkey:
    return Pubkey.from_string(random.choice(TIP_ACCOUNTS))


class RelayClient:
    """JSON-RPC client for a block-engine relay's transaction endpoint."""

    def __init__(
        self,
        endpoint: str = RELAY_ENDPOINTS[RelayRegion.MAINNET],
        api_key: Optional[str] = None,
        timeout: float = 10
    ):
        self.endpoint = endpoint.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def for_region(cls, region: RelayRegion, api_key: Optional[str] = None) -> "RelayClient":
        return cls(RELAY_ENDPOINTS[region], api_key=api_key)

    @property
    def transactions_url(self) -> str:
        return f"{self.endpoint}{TRANSACTIONS_PATH}"

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._session = aiohttp.ClientSession(headers=headers)
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()

    async def send_transaction(self, tx: VersionedTransaction) -> str:
        """Submit signed bytes; returns the identifier the relay assigned."""
        session = await self._get_session()

        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "sendTransaction",
            "params": [
                base58.b58encode(bytes(tx)).decode(),
                {
                    "maxRetries": 0,
                    "skipPreflight": True,
                    "preflightCommitment": "processed",
                },
            ],
        }

        try:
            async with session.post(
                self.transactions_url,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as response:
                if response.status >= 400 and response.content_type != "application/json":
                    text = await response.text()
                    raise RelayError(
                        f"Relay rejected transaction: HTTP {response.status} {text}",
                        endpoint=self.transactions_url,
                        operation="sendTransaction",
                        status_code=response.status,
                    )
                try:
                    data = await response.json()
                except ValueError as e:
                    raise RelayError(
                        f"Relay returned a malformed response: {e}",
                        endpoint=self.transactions_url,
                        operation="sendTransaction",
                        status_code=response.status,
                    ) from e

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RelayError(
                f"Network error sending transaction to relay: {e}",
                endpoint=self.transactions_url,
                operation="sendTransaction",
            ) from e

        if "error" in data:
            error = data["error"]
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            logs = None
            if isinstance(error, dict) and isinstance(error.get("data"), dict):
                logs = error["data"].get("logs")
            if logs:
                raise SendTransactionError(message, logs=logs)
            raise RelayError(
                f"Relay transaction submission failed: {message}",
                endpoint=self.transactions_url,
                operation="sendTransaction",
                status_code=response.status,
            )

        result = data.get("result")
        if not result:
            raise RelayError(
                f"Relay returned no transaction id: {data}",
                endpoint=self.transactions_url,
                operation="sendTransaction",
                status_code=response.status,
            )

        logger.info(f"Relay accepted transaction {result}")
        return result


__all__ = [
    "RelayRegion",
    "RELAY_ENDPOINTS",
    "TIP_ACCOUNTS",
    "DEFAULT_TIP_ACCOUNT",
    "RelayClient",
    "random_tip_account",
]
