import pytest

from app.core.errors import StorageError
from app.services.s3_storage import S3StorageService, client_config, worst_case_call_seconds
from app.services.sqs_queue import SqsQueueClient
from tests.fakes import client_error


def test_storage_requires_bucket(s3_client):
    with pytest.raises(ValueError):
        S3StorageService(region="us-east-1", bucket="", client=s3_client)


def test_upload_stores_encrypted_object(storage, s3_client):
    key = storage.upload_file(b"data", "users/u/reports/r.csv.gz", "application/gzip")
    assert key == "users/u/reports/r.csv.gz"
    assert s3_client.objects[("reports-test", key)] == {"Body": b"data", "ContentType": "application/gzip"}


def test_upload_failure_raises_storage_error(storage, s3_client):
    s3_client.fail_put = True
    with pytest.raises(StorageError, match="upload"):
        storage.upload_file(b"data", "k")


def test_presign_failure_raises_storage_error(storage, s3_client, monkeypatch):
    def boom(ClientMethod, Params, ExpiresIn):
        raise client_error("GeneratePresignedUrl")

    monkeypatch.setattr(s3_client, "generate_presigned_url", boom)
    with pytest.raises(StorageError):
        storage.generate_presigned_url("k")


def test_list_buckets(storage):
    storage.upload_file(b"x", "k")
    assert storage.list_buckets() == ["reports-test"]


def test_queue_requires_name(sqs_client):
    with pytest.raises(ValueError):
        SqsQueueClient(queue_name="", region="us-east-1", client=sqs_client)


def test_queue_url_is_resolved_once(message_queue, sqs_client, monkeypatch):
    calls = []
    original = sqs_client.get_queue_url

    def counting(QueueName):
        calls.append(QueueName)
        return original(QueueName=QueueName)

    monkeypatch.setattr(sqs_client, "get_queue_url", counting)
    message_queue.send("a")
    message_queue.send("b")
    assert calls == ["reports-test"]


def test_unknown_queue_raises_storage_error(message_queue, sqs_client, monkeypatch):
    def missing(QueueName):
        raise client_error("GetQueueUrl", "AWS.SimpleQueueService.NonExistentQueue")

    monkeypatch.setattr(sqs_client, "get_queue_url", missing)
    with pytest.raises(StorageError, match="queue URL"):
        message_queue.resolve_url()


def test_send_receive_delete(message_queue, sqs_client):
    message_queue.send('{"hello": 1}')

    (msg,) = message_queue.receive(max_messages=10, wait_seconds=0)
    assert msg.body == '{"hello": 1}'
    assert msg.receipt_handle == "rh-1"

    message_queue.delete(msg.receipt_handle)
    assert sqs_client.deleted == ["rh-1"]
    assert message_queue.receive(wait_seconds=0) == []


def test_receive_failure_raises_storage_error(message_queue, sqs_client):
    sqs_client.fail_receive = True
    with pytest.raises(StorageError):
        message_queue.receive()


def test_list_queues(message_queue, sqs_client):
    assert message_queue.list_queues() == [sqs_client.QUEUE_URL]


def test_client_config_bounds_timeouts_and_retries():
    config = client_config(connect_timeout=2, read_timeout=7, max_attempts=3)
    assert config.connect_timeout == 2
    assert config.read_timeout == 7
    assert config.retries == {"max_attempts": 3, "mode": "standard"}
    assert config.s3 is None
    assert worst_case_call_seconds(2, 7, 3) == 27


def test_client_config_uses_path_style_for_custom_endpoint():
    config = client_config("http://localhost:4566")
    assert config.s3 == {"addressing_style": "path"}
    assert config.read_timeout == 10.0


def test_storage_client_carries_bounded_config():
    storage = S3StorageService(
        region="us-east-1",
        bucket="reports-test",
        access_key="test",
        secret_key="test",
        endpoint_url="http://localhost:4566",
        connect_timeout=1,
        read_timeout=4,
        max_attempts=2,
    )
    config = storage.client.meta.config
    assert config.connect_timeout == 1
    assert config.read_timeout == 4
    assert config.retries["max_attempts"] == 2
