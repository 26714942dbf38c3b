import asyncio
import logging

import httpx

from levelsync.domain.constants import REACHABILITY_TIMEOUT, REQUEST_TIMEOUT, SIMULATED_DELAY
from levelsync.domain.errors import DeliveryFailure
from levelsync.domain.models import ChangeRecord
from levelsync.domain.ports import RemoteSyncClient


class HttpSyncClient(RemoteSyncClient):
    """Delivers change records to a remote endpoint over HTTP (JSON POST)."""

    def __init__(
        self,
        url: str,
        timeout: float = REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.url = url
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def deliver(self, record: ChangeRecord) -> bool:
        try:
            resp = await self._get_client().post(
                self.url,
                json=record.to_payload(),
                headers={"Idempotency-Key": record.id},
            )
        except httpx.HTTPError as e:
            raise DeliveryFailure(f"{record.id}: {e}") from e

        # 409 means the remote side already applied this id.
        if resp.is_success or resp.status_code == 409:
            self.logger.debug(f"Delivered {record.id} (HTTP {resp.status_code})")
            return True

        self.logger.warning(f"Remote rejected {record.id}: HTTP {resp.status_code}")
        return False

    async def is_reachable(self) -> bool:
        """Check if the sync endpoint answers at all."""
        try:
            resp = await self._get_client().get(self.url, timeout=REACHABILITY_TIMEOUT)
            return resp.status_code < 500
        except httpx.HTTPError:
            return False

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class SimulatedSyncClient(RemoteSyncClient):
    """
    Stand-in remote that answers ``succeed`` after ``delay`` seconds.

    Used when no sync URL is configured.
    """

    def __init__(self, delay: float = SIMULATED_DELAY, succeed: bool = True):
        self.delay = delay
        self.succeed = succeed
        self.delivered: list[ChangeRecord] = []

    async def deliver(self, record: ChangeRecord) -> bool:
        await asyncio.sleep(self.delay)
        if self.succeed:
            self.delivered.append(record)
        return self.succeed
