"""
Unit tests for DynamoDBBackend against a mocked boto3 client.
"""

from unittest.mock import Mock

import pytest
from botocore.exceptions import ClientError

from restaurant_import.backends.dynamodb import DynamoDBBackend
from restaurant_import.errors import BackendError, TransientBackendError


def _client(response=None):
    client = Mock()
    client.batch_write_item.return_value = response or {"UnprocessedItems": {}}
    return client


@pytest.mark.asyncio
async def test_put_requests_serialized():
    client = _client()
    backend = DynamoDBBackend(client)

    rejected = await backend.batch_write(
        "restaurants-dev", [{"id": "r1", "rating": 4.5, "seats": 40, "open": True}]
    )

    assert rejected == []
    request_items = client.batch_write_item.call_args.kwargs["RequestItems"]
    put = request_items["restaurants-dev"][0]["PutRequest"]["Item"]
    assert put["id"] == {"S": "r1"}
    assert put["rating"] == {"N": "4.5"}
    assert put["seats"] == {"N": "40"}
    assert put["open"] == {"BOOL": True}


@pytest.mark.asyncio
async def test_unprocessed_items_deserialized():
    client = _client(
        {
            "UnprocessedItems": {
                "restaurants-dev": [
                    {"PutRequest": {"Item": {"id": {"S": "r2"}, "rating": {"N": "3.5"}, "seats": {"N": "12"}}}}
                ]
            }
        }
    )
    backend = DynamoDBBackend(client)

    rejected = await backend.batch_write(
        "restaurants-dev", [{"id": "r1"}, {"id": "r2", "rating": 3.5, "seats": 12}]
    )

    assert rejected == [{"id": "r2", "rating": 3.5, "seats": 12}]


@pytest.mark.asyncio
async def test_throttling_maps_to_transient_error():
    client = _client()
    client.batch_write_item.side_effect = ClientError(
        {"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow down"}},
        "BatchWriteItem",
    )
    backend = DynamoDBBackend(client)

    with pytest.raises(TransientBackendError):
        await backend.batch_write("restaurants-dev", [{"id": "r1"}])


@pytest.mark.asyncio
async def test_missing_table_maps_to_backend_error():
    client = _client()
    client.batch_write_item.side_effect = ClientError(
        {"Error": {"Code": "ResourceNotFoundException", "Message": "no table"}},
        "BatchWriteItem",
    )
    backend = DynamoDBBackend(client)

    with pytest.raises(BackendError) as exc_info:
        await backend.batch_write("restaurants-dev", [{"id": "r1"}])
    assert not isinstance(exc_info.value, TransientBackendError)


@pytest.mark.asyncio
async def test_request_ceiling_enforced():
    backend = DynamoDBBackend(_client())
    with pytest.raises(ValueError, match="at most 25"):
        await backend.batch_write("restaurants-dev", [{"id": str(i)} for i in range(26)])


@pytest.mark.asyncio
async def test_empty_slice_skips_call():
    client = _client()
    assert await DynamoDBBackend(client).batch_write("restaurants-dev", []) == []
    client.batch_write_item.assert_not_called()
