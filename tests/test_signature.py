from conftest import CHANNEL_SECRET, sign
from line_bot.security import validate_signature

BODY = b'{"events":[]}'


def test_valid_signature():
    assert validate_signature(CHANNEL_SECRET, BODY, sign(BODY))


def test_tampered_body():
    assert not validate_signature(CHANNEL_SECRET, BODY + b" ", sign(BODY))


def test_wrong_secret():
    assert not validate_signature(CHANNEL_SECRET, BODY, sign(BODY, secret="other"))


def test_missing_values():
    assert not validate_signature(CHANNEL_SECRET, BODY, None)
    assert not validate_signature(CHANNEL_SECRET, BODY, "")
    assert not validate_signature(None, BODY, sign(BODY))


def test_length_mismatch():
    assert not validate_signature(CHANNEL_SECRET, BODY, "short")
