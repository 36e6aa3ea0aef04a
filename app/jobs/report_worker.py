"""Queue consumer feeding report builds to a bounded pool of worker threads.

One poller (the thread calling :meth:`ReportQueueWorker.run`) long-polls SQS
and offers each message to an intake queue whose capacity equals the pool
size. The poller never blocks on busy workers: a message that does not fit is
left undeleted and SQS redelivers it once its visibility timeout lapses.

A message is deleted only after its report was built (or found already
claimed). A failed build leaves the message in place; redelivery is the
retry mechanism.
"""

import logging
import queue
import threading
from typing import List, Optional

from app.core.errors import MalformedMessageError, ReportError, StorageError
from app.services.report_schema import parse_report_message
from app.services.sqs_queue import QueueMessage

# How often idle workers re-check the stop flag
_IDLE_POLL_SECONDS = 0.5
# Back-off after a failed receive call
_RECEIVE_RETRY_SECONDS = 5.0


class ReportQueueWorker:
    def __init__(
        self,
        message_queue,
        builder,
        max_concurrency: int = 5,
        batch_size: int = 10,
        wait_seconds: int = 20,
        builder_timeout: Optional[float] = 10.0,
        logger: Optional[logging.Logger] = None,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.message_queue = message_queue
        self.builder = builder
        self.max_concurrency = max_concurrency
        self.batch_size = batch_size
        self.wait_seconds = wait_seconds
        self.builder_timeout = builder_timeout
        self.intake: "queue.Queue[QueueMessage]" = queue.Queue(maxsize=max_concurrency)
        self._logger = logger or logging.getLogger(__name__)
        self._threads: List[threading.Thread] = []

    def run(self, stop: threading.Event) -> None:
        """Poll until ``stop`` is set, then wait for in-flight builds to finish."""
        queue_url = self.message_queue.resolve_url()
        self._logger.info(
            "worker.starting",
            extra={"queue_url": queue_url, "max_concurrency": self.max_concurrency},
        )
        self.start_workers(stop)
        try:
            while not stop.is_set():
                try:
                    self.poll_once()
                except StorageError as e:
                    if stop.is_set():
                        break
                    self._logger.error("worker.receive_failed", extra={"error": str(e)})
                    stop.wait(_RECEIVE_RETRY_SECONDS)
        finally:
            self._logger.info("worker.stopping")
            self.join()

    def start_workers(self, stop: threading.Event) -> List[threading.Thread]:
        for worker_id in range(self.max_concurrency):
            t = threading.Thread(
                target=self._worker_loop,
                args=(worker_id, stop),
                name=f"report-worker-{worker_id}",
            )
            t.start()
            self._threads.append(t)
        return list(self._threads)

    def join(self, timeout: Optional[float] = None) -> None:
        for t in self._threads:
            t.join(timeout)
        self._threads = [t for t in self._threads if t.is_alive()]

    def poll_once(self) -> int:
        """Receive one batch and hand it to the workers; return how many were accepted."""
        messages = self.message_queue.receive(
            max_messages=self.batch_size, wait_seconds=self.wait_seconds
        )
        if not messages:
            self._logger.debug("worker.no_messages")
            return 0

        accepted = 0
        for msg in messages:
            try:
                self.intake.put_nowait(msg)
            except queue.Full:
                # Left undeleted; SQS will redeliver after the visibility timeout
                self._logger.warning("worker.intake_full", extra={"message_id": msg.message_id})
                continue
            accepted += 1
        self._logger.debug(
            "worker.batch_received", extra={"received": len(messages), "accepted": accepted}
        )
        return accepted

    def _worker_loop(self, worker_id: int, stop: threading.Event) -> None:
        self._logger.info("worker.thread_started", extra={"worker_id": worker_id})
        while not stop.is_set():
            try:
                msg = self.intake.get(timeout=_IDLE_POLL_SECONDS)
            except queue.Empty:
                continue
            try:
                self.handle_message(msg)
            except Exception:
                # Message stays queued for redelivery
                self._logger.exception(
                    "worker.unexpected_error",
                    extra={"worker_id": worker_id, "message_id": msg.message_id},
                )
            finally:
                self.intake.task_done()
        self._logger.info("worker.thread_stopped", extra={"worker_id": worker_id})

    def handle_message(self, msg: QueueMessage) -> bool:
        """Process one message; return True when it was acknowledged."""
        try:
            payload = parse_report_message(msg.body)
        except MalformedMessageError as e:
            # Acknowledged, never retried
            self._logger.warning(
                "worker.malformed_message", extra={"message_id": msg.message_id, "error": str(e)}
            )
            return self._acknowledge(msg)

        log_ctx = {
            "message_id": msg.message_id,
            "report_id": str(payload.report_id),
            "user_id": str(payload.user_id),
        }
        try:
            report = self.builder.build_report(
                payload.user_id, payload.report_id, timeout=self.builder_timeout
            )
        except ReportError as e:
            self._logger.error("worker.build_failed", extra={**log_ctx, "error": str(e)})
            return False

        self._logger.info("worker.build_done", extra={**log_ctx, "report": repr(report)})
        return self._acknowledge(msg)

    def _acknowledge(self, msg: QueueMessage) -> bool:
        try:
            self.message_queue.delete(msg.receipt_handle)
        except StorageError as e:
            # A redelivery finds the report already claimed
            self._logger.error(
                "worker.delete_failed", extra={"message_id": msg.message_id, "error": str(e)}
            )
            return False
        self._logger.info("worker.message_deleted", extra={"message_id": msg.message_id})
        return True
