"""Pydantic schemas for record service and referral feed payloads."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from retrieval.types import RecipientRole


class RecordStatus(str, Enum):
    """Lifecycle status of a record or referral."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    TRANSFERRED = "TRANSFERRED"
    EXPIRED = "EXPIRED"


_STATUS_ALIASES = {
    "PENDING_APPROVAL": RecordStatus.PENDING,
    "PENDING": RecordStatus.PENDING,
    "APPROVED": RecordStatus.APPROVED,
    "REJECTED": RecordStatus.REJECTED,
    "TRANSFERRED": RecordStatus.TRANSFERRED,
    "EXPIRED": RecordStatus.EXPIRED,
}


def normalize_status(value: Any) -> RecordStatus:
    """Map backend status spellings onto RecordStatus; unknown values are PENDING."""
    if isinstance(value, RecordStatus):
        return value
    return _STATUS_ALIASES.get(str(value).upper(), RecordStatus.PENDING)


class CamelModel(BaseModel):
    """Base model accepting the backend's camelCase field names."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MedicalRecord(CamelModel):
    """Record metadata as returned by the record service."""
    id: int
    date: int = 0
    phone: str = ""
    patient_phone: str = ""
    patient_name: str = ""
    title: str = ""
    description: str = ""
    from_doctor: str = ""
    from_email: str = ""
    from_hospital: str = ""
    from_department: str = ""
    from_phone: str = ""
    to_doctor: str = ""
    to_email: str = ""
    to_hospital: str = ""
    to_department: str = ""
    to_phone: str = ""
    cid: str
    encrypted_aes_key_for_sender: Optional[str] = None
    encrypted_aes_key_for_receiver: Optional[str] = None
    status: RecordStatus = RecordStatus.PENDING
    original_record_id: Optional[int] = None
    transferred_doctors: List[str] = []

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> RecordStatus:
        return normalize_status(value)

    @field_validator("original_record_id", mode="before")
    @classmethod
    def _unwrap_optional(cls, value: Any) -> Any:
        # Optional values may arrive as an empty or one-element list.
        if isinstance(value, list):
            return value[0] if value else None
        return value

    @property
    def recorded_at(self) -> datetime:
        """Record date (backend stores nanoseconds since epoch)."""
        return datetime.fromtimestamp(self.date / 1_000_000_000, tz=timezone.utc)

    def role_for(self, doctor_name: str) -> RecipientRole:
        """Sender if the doctor authored the record, receiver otherwise."""
        return RecipientRole.SENDER if doctor_name == self.from_doctor else RecipientRole.RECEIVER

    def wrapped_key_for(self, role: RecipientRole) -> Optional[str]:
        """Wrapped key JSON for the given role."""
        if role == RecipientRole.SENDER:
            return self.encrypted_aes_key_for_sender
        return self.encrypted_aes_key_for_receiver


class RecordPage(CamelModel):
    """One page of records."""
    items: List[MedicalRecord]
    total: int = 0


class Doctor(CamelModel):
    """Registered doctor."""
    id: int
    name: str
    email: str
    phone: str = ""
    hospital: str = ""
    department: str = ""
    role: str = ""
    public_key: Optional[str] = None

    @field_validator("public_key", mode="before")
    @classmethod
    def _first_public_key(cls, value: Any) -> Any:
        if isinstance(value, list):
            return value[0] if value else None
        return value or None


class DoctorPage(CamelModel):
    """One page of doctors."""
    items: List[Doctor]
    total: int = 0


class TransferResult(CamelModel):
    """Result of a record transfer."""
    id: int


class ReferralNotification(CamelModel):
    """Referral entry as stored in the referral feed."""
    referral_id: str
    status: RecordStatus
    doctor_name: str
    hospital_name: str
    department: str
    patient_name: str
    patient_phone: str
    created_at: str
    updated_at: str
    from_email: str
    to_email: str

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> RecordStatus:
        return normalize_status(value)
