import pytest

from blockhaven.settings import DEFAULT_RATE_POLICIES, RatePolicy, Settings


def test_defaults():
    settings = Settings(_env_file=None)
    assert settings.AWS_REGION == "us-east-2"
    assert settings.RATE_LIMIT_POLICIES == DEFAULT_RATE_POLICIES
    assert settings.default_rate_policy == RatePolicy(window_ms=60000, max_requests=60)
    assert settings.RCON_MAX_ATTEMPTS == 10


def test_admin_usernames_normalized():
    settings = Settings(_env_file=None, ADMIN_GITHUB_USERNAMES=" Steve, alex ,,")
    assert settings.admin_usernames == ["steve", "alex"]


def test_policies_from_env(monkeypatch):
    monkeypatch.setenv("RATE_LIMIT_POLICIES", '{"/api/admin/rcon": {"window_ms": 1000, "max_requests": 1}}')
    settings = Settings(_env_file=None)
    assert settings.RATE_LIMIT_POLICIES == {"/api/admin/rcon": RatePolicy(window_ms=1000, max_requests=1)}


def test_prod_requires_instance_and_secret():
    with pytest.raises(RuntimeError, match="EC2_INSTANCE_ID, AUTH_SECRET"):
        Settings(_env_file=None, MODE="prod").validate_for_startup()

    Settings(_env_file=None, MODE="prod", EC2_INSTANCE_ID="i-1", AUTH_SECRET="s").validate_for_startup()
    # Dev never fails
    Settings(_env_file=None, MODE="dev").validate_for_startup()
