"""Tests for CLI configuration module."""

import json

from cli.config import Config


def test_config_creates_default_file(tmp_path):
    """Test that config file is created with defaults if missing."""
    config_path = tmp_path / '.medlink' / 'config.json'
    config = Config(config_path)

    assert config_path.exists()

    assert config.data['record_service_url'] == Config.DEFAULT_CONFIG['record_service_url']
    assert config.data['content_store_mode'] == Config.DEFAULT_CONFIG['content_store_mode']
    assert config.data['timeout'] == 30
    assert config.data['max_retries'] == 3
    assert config.data['retry_backoff_multiplier'] == 2
    assert 'doctor_name' not in config.data


def test_config_loads_existing_file(tmp_path):
    """Test loading existing config file."""
    config_path = tmp_path / '.medlink' / 'config.json'
    config_path.parent.mkdir(parents=True)

    existing_data = {
        'doctor_name': 'Dr. Sender',
        'doctor_email': 'sender@hospital.org',
        'record_service_url': 'http://records.example.com',
    }
    with open(config_path, 'w') as f:
        json.dump(existing_data, f)

    config = Config(config_path)

    assert config.get_identity() == ('Dr. Sender', 'sender@hospital.org')
    assert config.get_record_service_url() == 'http://records.example.com'

    assert config.data['timeout'] == 30
    assert config.data['max_retries'] == 3


def test_private_key_in_file_is_ignored(tmp_path, monkeypatch):
    """Test that a private key written to the config file is never used or re-saved."""
    monkeypatch.delenv('MEDLINK_PRIVATE_KEY', raising=False)
    config_path = tmp_path / '.medlink' / 'config.json'
    config_path.parent.mkdir(parents=True)
    config_path.write_text(json.dumps({'private_key': '0x' + '11' * 32}))

    config = Config(config_path)
    assert config.get_private_key() is None

    config.set_identity('Dr. Sender', 'sender@hospital.org')
    assert 'private_key' not in json.loads(config_path.read_text())


def test_private_key_from_environment(temp_config, monkeypatch):
    """Test that the private key comes from MEDLINK_PRIVATE_KEY."""
    monkeypatch.setenv('MEDLINK_PRIVATE_KEY', 'abcd')
    assert temp_config.get_private_key() == 'abcd'

    monkeypatch.setenv('MEDLINK_PRIVATE_KEY', '')
    assert temp_config.get_private_key() is None


def test_config_save_and_get_identity(temp_config):
    """Test saving and retrieving the doctor identity."""
    assert temp_config.get_identity() == (None, None)

    temp_config.set_identity('Dr. Receiver', 'receiver@clinic.org')

    assert temp_config.get_identity() == ('Dr. Receiver', 'receiver@clinic.org')
    with open(temp_config.config_path, 'r') as f:
        data = json.load(f)
    assert data['doctor_name'] == 'Dr. Receiver'
    assert data['doctor_email'] == 'receiver@clinic.org'


def test_config_handles_corrupted_file(tmp_path):
    """Test recovery from corrupted config file."""
    config_path = tmp_path / '.medlink' / 'config.json'
    config_path.parent.mkdir(parents=True)

    with open(config_path, 'w') as f:
        f.write('{ invalid json content')

    config = Config(config_path)
    assert config.data['timeout'] == 30

    backup_path = config_path.with_suffix('.json.bak')
    assert backup_path.exists()


def test_config_get_content_store(temp_config):
    """Test content store settings."""
    temp_config.data['content_store_url'] = 'https://ipfs.infura.io:5001'
    temp_config.data['content_store_mode'] = 'api'

    assert temp_config.get_content_store() == {'base_url': 'https://ipfs.infura.io:5001', 'mode': 'api'}


def test_config_get_timeout(temp_config):
    """Test timeout retrieval."""
    assert temp_config.get_timeout() == 30

    temp_config.data['timeout'] = 60
    assert temp_config.get_timeout() == 60


def test_config_get_retry_config(temp_config):
    """Test retry configuration retrieval."""
    retry_config = temp_config.get_retry_config()

    assert retry_config['max_retries'] == 3
    assert retry_config['retry_backoff_multiplier'] == 2

    temp_config.data['max_retries'] = 5
    temp_config.data['retry_backoff_multiplier'] = 3

    retry_config = temp_config.get_retry_config()
    assert retry_config['max_retries'] == 5
    assert retry_config['retry_backoff_multiplier'] == 3


def test_config_directory_created_if_missing(tmp_path):
    """Test that config directory is created if it doesn't exist."""
    config_path = tmp_path / 'nested' / 'deep' / '.medlink' / 'config.json'

    assert not config_path.parent.exists()

    Config(config_path)
    assert config_path.parent.exists()
    assert config_path.exists()
