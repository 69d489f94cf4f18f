"""Tests for config loading."""

import json

import pytest

from config import DEFAULTS, auth_headers, load_config, storage_endpoint


def _write(tmp_path, data):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


def test_load_config_fills_defaults(tmp_path):
    cfg = load_config(_write(tmp_path, {"supabase_url": "https://x.supabase.co", "api_key": "k", "bucket": "b",
                                        "chunk_size": 1024}))

    assert cfg["chunk_size"] == 1024
    assert cfg["max_attempts"] == DEFAULTS["max_attempts"]
    assert cfg["retry_delay"] == 1.0


def test_load_config_missing_file(tmp_path):
    with pytest.raises(RuntimeError, match="Missing config.json"):
        load_config(str(tmp_path / "nope.json"))


def test_load_config_missing_keys(tmp_path):
    with pytest.raises(RuntimeError, match="api_key, bucket"):
        load_config(_write(tmp_path, {"supabase_url": "https://x.supabase.co"}))


def test_load_config_rejects_bad_chunk_size(tmp_path):
    with pytest.raises(RuntimeError):
        load_config(_write(tmp_path, {"supabase_url": "u", "api_key": "k", "bucket": "b", "chunk_size": 0}))


def test_auth_headers_prefers_access_token():
    assert auth_headers({"api_key": "anon"}) == {"apikey": "anon", "Authorization": "Bearer anon"}
    assert auth_headers({"api_key": "anon", "access_token": "jwt"})["Authorization"] == "Bearer jwt"


def test_storage_endpoint():
    assert storage_endpoint({"supabase_url": "https://x.supabase.co/"}) == "https://x.supabase.co/storage/v1"


@pytest.mark.parametrize("overrides, message", [
    ({"max_attempts": 0}, "max_attempts"),
    ({"retry_delay": -1}, "retry_delay"),
])
def test_load_config_rejects_bad_retry_settings(tmp_path, overrides, message):
    data = {"supabase_url": "u", "api_key": "k", "bucket": "b"}
    data.update(overrides)

    with pytest.raises(RuntimeError, match=message):
        load_config(_write(tmp_path, data))
