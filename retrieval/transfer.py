"""Re-wraps a record's archive key for a new sender/receiver pair."""

import asyncio
from typing import Optional, Tuple, Union

from common.logging_config import get_logger
from retrieval.exceptions import MissingKeyMaterial
from retrieval.key_unwrapper import unwrap, wrap
from retrieval.record_service import RecordServiceClient
from retrieval.schemas import MedicalRecord

logger = get_logger(__name__)


def rewrap_for_transfer(
    record: MedicalRecord,
    doctor_name: str,
    private_key: Union[bytes, str],
    sender_public_key: Optional[str],
    receiver_public_key: Optional[str],
) -> Tuple[str, str]:
    """
    Unwrap the caller's copy of a record key and wrap it for two new recipients.

    The archive itself is not touched: the transferred record points at the
    same content identifier with freshly wrapped keys.

    Args:
        record: Record being transferred
        doctor_name: Caller's name (selects the caller's wrapped key)
        private_key: Caller's raw private key
        sender_public_key: Public key of the transferring doctor (hex, 0x optional)
        receiver_public_key: Public key of the receiving doctor (hex, 0x optional)

    Returns:
        Tuple of (wrapped_for_sender_json, wrapped_for_receiver_json)

    Raises:
        MissingKeyMaterial: If a public key, the wrapped key or the private key is absent
        KeyUnwrapFailure: If the caller's wrapped key cannot be opened or a
            public key is not a valid curve point
    """
    if not sender_public_key:
        raise MissingKeyMaterial("Current user has no registered public key")
    if not receiver_public_key:
        raise MissingKeyMaterial("Receiving doctor has no registered public key")

    wrapped = record.wrapped_key_for(record.role_for(doctor_name))
    symmetric_key = unwrap(wrapped, private_key)

    for_sender = wrap(symmetric_key, sender_public_key)
    for_receiver = wrap(symmetric_key, receiver_public_key)
    return for_sender.to_json(), for_receiver.to_json()


async def transfer_record(
    record: MedicalRecord,
    doctor_name: str,
    doctor_email: str,
    private_key: Union[bytes, str],
    sender_public_key: Optional[str],
    receiver_email: str,
    receiver_public_key: Optional[str],
    client: RecordServiceClient,
) -> int:
    """
    Transfer a record to another doctor.

    Args:
        record: Record being transferred
        doctor_name: Caller's name
        doctor_email: Caller's email
        private_key: Caller's raw private key
        sender_public_key: Caller's public key
        receiver_email: Receiving doctor's email
        receiver_public_key: Receiving doctor's public key
        client: Record service client

    Returns:
        Id of the newly created record
    """
    wrapped_for_sender, wrapped_for_receiver = await asyncio.to_thread(
        rewrap_for_transfer, record, doctor_name, private_key, sender_public_key, receiver_public_key
    )

    new_record_id = await client.transfer_medical_record(
        record.id, doctor_email, receiver_email, wrapped_for_sender, wrapped_for_receiver
    )
    logger.info(f"Transferred record {record.id} from {doctor_email} to {receiver_email} as {new_record_id}")
    return new_record_id
