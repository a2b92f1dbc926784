"""Shared pytest fixtures for all tests."""

import io
import zipfile

import pytest

from cli.config import Config
from retrieval.ciphertext_cache import CiphertextCache
from retrieval.key_unwrapper import public_key_bytes, wrap

SENDER_PRIVATE_KEY = "0x" + "11" * 32
RECEIVER_PRIVATE_KEY = "22" * 32
OUTSIDER_PRIVATE_KEY = "33" * 32

SYMMETRIC_KEY = "a3f1" * 16


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def build_zip(entries) -> bytes:
    """
    Build a zip archive in memory.

    Args:
        entries: Iterable of (name, bytes) pairs; names ending in '/' become directories

    Returns:
        Archive bytes
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as archive:
        for name, data in entries:
            if name.endswith('/'):
                archive.writestr(zipfile.ZipInfo(name), b'')
            else:
                archive.writestr(name, data)
    return buffer.getvalue()


@pytest.fixture
def temp_config_dir(tmp_path):
    """
    Create temporary config directory.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        Path to temporary .medlink directory
    """
    config_dir = tmp_path / '.medlink'
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def temp_config(temp_config_dir):
    """
    Create temporary config instance.

    Args:
        temp_config_dir: Temporary config directory fixture

    Returns:
        Config instance with temp config file
    """
    return Config(temp_config_dir / 'config.json')


@pytest.fixture
def sender_public_key():
    """Uncompressed public key of SENDER_PRIVATE_KEY."""
    return public_key_bytes(SENDER_PRIVATE_KEY)


@pytest.fixture
def receiver_public_key():
    """Uncompressed public key of RECEIVER_PRIVATE_KEY."""
    return public_key_bytes(RECEIVER_PRIVATE_KEY)


@pytest.fixture
def wrapped_for_receiver(receiver_public_key):
    """SYMMETRIC_KEY wrapped for the receiver, as stored JSON."""
    return wrap(SYMMETRIC_KEY, receiver_public_key).to_json()


@pytest.fixture
def wrapped_for_sender(sender_public_key):
    """SYMMETRIC_KEY wrapped for the sender, as stored JSON."""
    return wrap(SYMMETRIC_KEY, sender_public_key).to_json()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(tmp_path, clock):
    """
    Create an initialized cache in a temporary SQLite file.

    Args:
        tmp_path: pytest tmp_path fixture
        clock: Fake clock fixture

    Returns:
        CiphertextCache instance
    """
    cache = CiphertextCache(db_path=str(tmp_path / 'cache.db'), clock=clock)
    cache.init()
    return cache


@pytest.fixture
def sample_archive():
    """Archive with one entry per bucket plus macOS noise."""
    return build_zip([
        ('scan/', b''),
        ('scan/ct_001.dcm', b'DICM' + b'\x00' * 64),
        ('scan/ct_002.DCM', b'DICM' + b'\x01' * 64),
        ('photo.JPG', b'\xff\xd8\xff\xe0jpeg'),
        ('report.pdf', b'%PDF-1.4 report'),
        ('notes.txt', b'free text'),
        ('__MACOSX/report.pdf', b'resource fork'),
        ('scan/._ct_001.dcm', b'appledouble'),
    ])


def record_payload(record_id: int = 42, **overrides) -> dict:
    """Record service JSON for a record, camelCase as the backend sends it."""
    payload = {
        'id': record_id,
        'date': 1_700_000_000_000_000_000,
        'patientName': 'Kim Minji',
        'patientPhone': '010-1234-5678',
        'title': 'CT follow-up',
        'description': 'Chest CT',
        'fromDoctor': 'Dr. Sender',
        'fromEmail': 'sender@hospital.org',
        'fromHospital': 'Seoul General',
        'toDoctor': 'Dr. Receiver',
        'toEmail': 'receiver@clinic.org',
        'toHospital': 'Busan Clinic',
        'cid': 'cid-1',
        'encryptedAesKeyForSender': None,
        'encryptedAesKeyForReceiver': None,
        'status': 'APPROVED',
        'originalRecordId': [],
        'transferredDoctors': [],
    }
    payload.update(overrides)
    return payload
