"""Tests for VAPID key loading and the once-per-process provider."""

import json
import threading
import time

import pytest

from herald.config import settings
from herald.core.exceptions import ConfigurationError
from herald.services.vapid import VapidKeyProvider, VapidKeys, load_vapid_keys


@pytest.fixture()
def vapid_settings(monkeypatch):
    monkeypatch.setattr(settings, "VAPID_KEYS_FILE", "")
    monkeypatch.setattr(settings, "VAPID_PUBLIC_KEY", "BRealPublicKey")
    monkeypatch.setattr(settings, "VAPID_PRIVATE_KEY", "real-private-key")
    monkeypatch.setattr(settings, "VAPID_CLAIMS_EMAIL", "mailto:ops@example.com")
    return settings


def test_load_from_settings(vapid_settings):
    keys = load_vapid_keys()
    assert keys == VapidKeys("BRealPublicKey", "real-private-key", "mailto:ops@example.com")


def test_placeholder_public_key_is_rejected(vapid_settings, monkeypatch):
    monkeypatch.setattr(settings, "VAPID_PUBLIC_KEY", "PLACEHOLDER_REPLACE_ME")
    with pytest.raises(ConfigurationError):
        load_vapid_keys()


def test_missing_private_key_is_rejected(vapid_settings, monkeypatch):
    monkeypatch.setattr(settings, "VAPID_PRIVATE_KEY", "")
    with pytest.raises(ConfigurationError):
        load_vapid_keys()


def test_load_from_keys_file(vapid_settings, monkeypatch, tmp_path):
    path = tmp_path / "vapid.json"
    path.write_text(json.dumps({"publicKey": "BFilePublic", "privateKey": "file-private", "subject": "mailto:file@example.com"}))
    monkeypatch.setattr(settings, "VAPID_KEYS_FILE", str(path))

    keys = load_vapid_keys()
    assert keys.public_key == "BFilePublic"
    assert keys.private_key == "file-private"
    assert keys.subject == "mailto:file@example.com"


def test_placeholder_in_keys_file_is_rejected(vapid_settings, monkeypatch, tmp_path):
    path = tmp_path / "vapid.json"
    path.write_text(json.dumps({"publicKey": "PLACEHOLDER", "privateKey": "PLACEHOLDER", "subject": "mailto:x@example.com"}))
    monkeypatch.setattr(settings, "VAPID_KEYS_FILE", str(path))

    with pytest.raises(ConfigurationError):
        load_vapid_keys()


def test_unreadable_keys_file_is_configuration_error(vapid_settings, monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "VAPID_KEYS_FILE", str(tmp_path / "missing.json"))
    with pytest.raises(ConfigurationError):
        load_vapid_keys()


def test_provider_loads_once_under_concurrency():
    calls: list[int] = []

    def slow_loader():
        calls.append(1)
        time.sleep(0.05)
        return VapidKeys("BPub", "priv", "mailto:a@example.com")

    provider = VapidKeyProvider(loader=slow_loader)
    results: list[VapidKeys] = []
    threads = [threading.Thread(target=lambda: results.append(provider.get())) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(calls) == 1
    assert len(results) == 8
    assert all(r is results[0] for r in results)


def test_provider_does_not_cache_failures():
    attempts: list[int] = []

    def flaky_loader():
        attempts.append(1)
        if len(attempts) == 1:
            raise ConfigurationError("not yet")
        return VapidKeys("BPub", "priv", "mailto:a@example.com")

    provider = VapidKeyProvider(loader=flaky_loader)
    with pytest.raises(ConfigurationError):
        provider.get()
    assert provider.get().public_key == "BPub"
    assert provider.get().public_key == "BPub"
    assert len(attempts) == 2
