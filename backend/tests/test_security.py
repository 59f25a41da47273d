import pytest
from bank_admin.core.logging_config import mask_email
from bank_admin.core.security import (
    decode_session_token, generate_secure_token, get_password_hash, is_strong_password, verify_password,
)


def test_password_hash_round_trip():
    hashed = get_password_hash("P@ssw0rd1")
    assert hashed != "P@ssw0rd1"
    assert verify_password("P@ssw0rd1", hashed)
    assert not verify_password("P@ssw0rd2", hashed)


def test_short_password_is_refused():
    with pytest.raises(ValueError):
        get_password_hash("abc")


def test_verify_password_with_bad_hash():
    assert verify_password("P@ssw0rd1", "not-a-bcrypt-hash") is False
    assert verify_password("", "anything") is False


@pytest.mark.parametrize("password, valid", [
    ("P@ssw0rd1", True),
    ("Sh0rt!", False),
    ("alllowercase1!", False),
    ("NoDigits!!", False),
    ("NoSpecial123", False),
])
def test_password_strength(password, valid):
    assert is_strong_password(password)[0] is valid


def test_decode_rejects_tampered_token():
    assert decode_session_token("a.b.c") is None
    assert decode_session_token("") is None


def test_secure_tokens_are_random_hex():
    token = generate_secure_token()
    assert len(token) == 64
    assert token != generate_secure_token()
    int(token, 16)


def test_mask_email():
    assert mask_email("someone@example.com") == "som...example.com"
    assert mask_email(None) == "not-provided"
