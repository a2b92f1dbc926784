"""Tests for re-wrapping record keys on transfer."""

import json

import httpx
import pytest

from conftest import (
    OUTSIDER_PRIVATE_KEY,
    RECEIVER_PRIVATE_KEY,
    SENDER_PRIVATE_KEY,
    SYMMETRIC_KEY,
    record_payload,
)
from retrieval.exceptions import KeyUnwrapFailure, MissingKeyMaterial
from retrieval.key_unwrapper import public_key_bytes, unwrap
from retrieval.record_service import RecordServiceClient
from retrieval.schemas import MedicalRecord
from retrieval.transfer import rewrap_for_transfer, transfer_record


@pytest.fixture
def received_record(wrapped_for_sender, wrapped_for_receiver):
    return MedicalRecord.model_validate(record_payload(
        encryptedAesKeyForSender=wrapped_for_sender,
        encryptedAesKeyForReceiver=wrapped_for_receiver,
    ))


def test_rewrap_opens_for_both_new_parties(received_record):
    # The receiver forwards the record to an outside doctor.
    forwarder_public = '0x' + public_key_bytes(RECEIVER_PRIVATE_KEY).hex()
    outsider_public = public_key_bytes(OUTSIDER_PRIVATE_KEY).hex()

    for_sender, for_receiver = rewrap_for_transfer(
        received_record, 'Dr. Receiver', RECEIVER_PRIVATE_KEY, forwarder_public, outsider_public
    )

    assert unwrap(for_sender, RECEIVER_PRIVATE_KEY) == SYMMETRIC_KEY
    assert unwrap(for_receiver, OUTSIDER_PRIVATE_KEY) == SYMMETRIC_KEY
    with pytest.raises(KeyUnwrapFailure):
        unwrap(for_receiver, SENDER_PRIVATE_KEY)


@pytest.mark.parametrize('sender_key,receiver_key', [(None, 'x'), ('x', None), ('', 'x')])
def test_missing_public_key(received_record, sender_key, receiver_key):
    with pytest.raises(MissingKeyMaterial):
        rewrap_for_transfer(received_record, 'Dr. Receiver', RECEIVER_PRIVATE_KEY, sender_key, receiver_key)


def test_caller_without_matching_private_key(received_record):
    outsider_public = public_key_bytes(OUTSIDER_PRIVATE_KEY).hex()
    with pytest.raises(KeyUnwrapFailure):
        rewrap_for_transfer(received_record, 'Dr. Receiver', SENDER_PRIVATE_KEY, outsider_public, outsider_public)


@pytest.mark.asyncio
async def test_transfer_record_posts_new_keys(received_record):
    posted = []

    def handler(request):
        posted.append(json.loads(request.content))
        assert request.url.path == '/records/42/transfer'
        return httpx.Response(200, json={'id': 77})

    client = RecordServiceClient(base_url='http://records.test', max_retries=0)
    client.session = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url='http://records.test')
    async with client:
        new_id = await transfer_record(
            received_record,
            'Dr. Receiver',
            'receiver@clinic.org',
            RECEIVER_PRIVATE_KEY,
            public_key_bytes(RECEIVER_PRIVATE_KEY).hex(),
            'outsider@elsewhere.org',
            public_key_bytes(OUTSIDER_PRIVATE_KEY).hex(),
            client,
        )

    body = posted[0]
    assert new_id == 77
    assert body['fromEmail'] == 'receiver@clinic.org'
    assert body['toEmail'] == 'outsider@elsewhere.org'
    assert unwrap(body['encryptedAesKeyForReceiver'], OUTSIDER_PRIVATE_KEY) == SYMMETRIC_KEY
    assert unwrap(body['encryptedAesKeyForSender'], RECEIVER_PRIVATE_KEY) == SYMMETRIC_KEY
