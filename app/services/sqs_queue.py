"""SQS queue client used by the report producer and the worker."""
import logging
from dataclasses import dataclass
from typing import List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.core.errors import StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueMessage:
    message_id: str
    receipt_handle: str
    body: Optional[str]


class SqsQueueClient:
    """Thin wrapper over an SQS queue addressed by name.

    The queue URL is resolved lazily, once, and cached.
    """

    def __init__(
        self,
        queue_name: str,
        region: str,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        client=None,
    ):
        if not queue_name:
            raise ValueError("SQS queue name is required")
        self.queue_name = queue_name
        self._queue_url: Optional[str] = None
        if client is not None:
            self.client = client
        else:
            self.client = boto3.client(
                "sqs",
                region_name=region or None,
                aws_access_key_id=access_key or None,
                aws_secret_access_key=secret_key or None,
                endpoint_url=endpoint_url or None,
            )

    def resolve_url(self) -> str:
        if self._queue_url is None:
            try:
                resp = self.client.get_queue_url(QueueName=self.queue_name)
            except (ClientError, BotoCoreError) as e:
                logger.error(f"Failed to get queue URL for {self.queue_name}: {e}")
                raise StorageError(f"failed to get queue URL: {e}") from e
            self._queue_url = resp["QueueUrl"]
        return self._queue_url

    def send(self, body: str) -> str:
        try:
            resp = self.client.send_message(QueueUrl=self.resolve_url(), MessageBody=body)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to send message to {self.queue_name}: {e}")
            raise StorageError(f"failed to send message to SQS: {e}") from e
        return resp.get("MessageId", "")

    def receive(self, max_messages: int = 10, wait_seconds: int = 20) -> List[QueueMessage]:
        try:
            resp = self.client.receive_message(
                QueueUrl=self.resolve_url(),
                MaxNumberOfMessages=max_messages,
                WaitTimeSeconds=wait_seconds,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"failed to receive messages: {e}") from e
        return [
            QueueMessage(
                message_id=m.get("MessageId", ""),
                receipt_handle=m["ReceiptHandle"],
                body=m.get("Body"),
            )
            for m in resp.get("Messages", [])
        ]

    def delete(self, receipt_handle: str) -> None:
        try:
            self.client.delete_message(QueueUrl=self.resolve_url(), ReceiptHandle=receipt_handle)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"failed to delete message: {e}") from e

    def list_queues(self) -> List[str]:
        try:
            resp = self.client.list_queues()
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"failed to list queues: {e}") from e
        return list(resp.get("QueueUrls", []))
