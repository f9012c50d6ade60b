from wishdraw.core.config import settings
from wishdraw.core.security import create_access_token, decode_access_token, verify_cron_secret


def test_access_token_roundtrip():
    payload = decode_access_token(create_access_token("42"))
    assert payload["sub"] == "42"
    assert payload["type"] == "access"


def test_tampered_token_is_rejected():
    token = create_access_token("42")
    assert decode_access_token(token[:-2] + "xx") is None


def test_cron_secret_accepts_bearer_match():
    assert verify_cron_secret("Bearer test-cron-secret") is True


def test_cron_secret_rejects_mismatch():
    assert verify_cron_secret("Bearer test-cron-secreT") is False
    assert verify_cron_secret("test-cron-secret") is False
    assert verify_cron_secret(None) is False


def test_unset_cron_secret_only_allowed_locally():
    prev_secret = settings.cron_secret
    prev_env = settings.environment
    settings.cron_secret = ""
    try:
        settings.environment = "local"
        assert verify_cron_secret(None) is True
        settings.environment = "prod"
        assert verify_cron_secret(None) is False
        assert verify_cron_secret("Bearer ") is False
    finally:
        settings.cron_secret = prev_secret
        settings.environment = prev_env
