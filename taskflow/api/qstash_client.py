"""
QStash API client for background task publication
"""

from typing import Dict, Optional
from urllib.parse import quote
import httpx
from taskflow.api.base_client import BaseAPIClient
from taskflow.config.constants import QSTASH_API_BASE_URL, QUEUE_SECRET_HEADER
from taskflow.models.queue import PublishResult
from taskflow.services.queue import QueueClient


class QStashClient(BaseAPIClient, QueueClient):
    """Publishes queue tasks to QStash, which delivers them to POST /api/queue"""

    def __init__(
        self,
        token: str,
        public_url: str,
        queue_secret: str = "",
        base_url: str = QSTASH_API_BASE_URL,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize QStash client

        Args:
            token: QStash API token
            public_url: Public base URL of this service
            queue_secret: Shared secret forwarded to the queue endpoint
            base_url: QStash API base URL
            client: Optional preconfigured httpx client
        """
        super().__init__(base_url, client=client)
        self.token = token
        self.destination = f"{public_url.rstrip('/')}/api/queue"
        self.queue_secret = queue_secret

    def _get_headers(self, dedup_key: str) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
            "Upstash-Deduplication-Id": dedup_key,
        }
        if self.queue_secret:
            headers[f"Upstash-Forward-{QUEUE_SECRET_HEADER}"] = self.queue_secret
        return headers

    async def publish(self, task) -> PublishResult:
        """
        Publish a task with its deduplication key

        Args:
            task: Queue task model

        Returns:
            PublishResult with the QStash message id
        """
        response = await self.post(
            f"/v2/publish/{quote(self.destination, safe=':/')}",
            headers=self._get_headers(task.key),
            json_data=task.model_dump(mode="json"),
        )
        result = PublishResult(
            message_id=response.get("messageId", ""),
            deduplicated=bool(response.get("deduplicated", False)),
        )
        self.logger.info(
            f"[Queue] Published {task.type} key={task.key} id={result.message_id}"
            + (" (deduplicated)" if result.deduplicated else "")
        )
        return result
