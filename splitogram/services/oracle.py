import logging
from typing import Optional, Protocol

import httpx

from splitogram.core.errors import OracleUnavailable

logger = logging.getLogger(__name__)


class VerificationOracle(Protocol):
    """Anything that can broadcast a transfer and tell whether it landed."""

    async def submit(self, boc: str) -> Optional[str]:
        ...

    async def check_confirmed(self, tx_reference: str) -> bool:
        ...


class TonApiOracle:
    """
    TONAPI-backed oracle.

    Every request is bounded by ``timeout``; network errors, timeouts and
    server errors surface as OracleUnavailable so the caller can keep the
    settlement pending and retry later.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
            transport=self.transport,
        )

    async def submit(self, boc: str) -> Optional[str]:
        try:
            async with self._client() as client:
                res = await client.post("/v2/blockchain/message", json={"boc": boc})
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise OracleUnavailable(f"Broadcast failed: {e!r}") from e

        if res.status_code >= 400:
            raise OracleUnavailable(f"Broadcast rejected with HTTP {res.status_code}")

        # TONAPI accepts the message without naming the resulting transaction
        if not res.content:
            return None
        try:
            body = res.json()
        except ValueError:
            return None
        return body.get("hash") if isinstance(body, dict) else None

    async def check_confirmed(self, tx_reference: str) -> bool:
        try:
            async with self._client() as client:
                res = await client.get(f"/v2/blockchain/transactions/{tx_reference}")
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise OracleUnavailable(f"Lookup failed: {e!r}") from e

        if res.status_code == 404:
            return False
        if res.status_code >= 500:
            raise OracleUnavailable(f"Lookup failed with HTTP {res.status_code}")
        if res.status_code >= 400:
            logger.warning("TONAPI rejected lookup of %s: HTTP %s", tx_reference, res.status_code)
            return False

        try:
            tx = res.json()
        except ValueError as e:
            raise OracleUnavailable("Malformed TONAPI response") from e

        # TODO: match sender, recipient, amount and the splitogram:<id> comment
        # from the jetton transfer message instead of only the hash
        return isinstance(tx, dict) and tx.get("hash") == tx_reference
