import bcrypt
import pytest

from eventdesk.security.passwords import hash_password, verify_password


def test_hash_accepts_passwords_past_the_bcrypt_input_limit():
    password = "é" * 60
    hashed = hash_password(password)

    assert hashed.startswith("bcrypt_sha256$")
    assert verify_password(password, hashed)
    assert not verify_password("é" * 59, hashed)


@pytest.mark.parametrize("password", ["short-pass", "with spaces and ünïcode"])
def test_verify_password_success(password):
    assert verify_password(password, hash_password(password))


def test_same_password_hashes_differently():
    assert hash_password("repeatable") != hash_password("repeatable")


def test_plain_bcrypt_hashes_from_the_previous_platform_still_verify():
    legacy_hash = bcrypt.hashpw(b"legacy-secret", bcrypt.gensalt()).decode()

    assert verify_password("legacy-secret", legacy_hash)
    assert not verify_password("legacy-secret-wrong", legacy_hash)


@pytest.mark.parametrize("stored", [None, "", "not-a-hash", "bcrypt_sha256$garbage"])
def test_unusable_stored_hash_never_verifies(stored):
    assert verify_password("anything", stored) is False
