import re
import uuid

from combattracker.backend.security import (
    generate_join_code,
    generate_token,
    hash_token,
    normalize_join_code,
    verify_token,
)


def test_hash_token_is_deterministic_for_same_inputs() -> None:
    token = "player-token"
    salt = "local-dev-salt"

    hashed_first = hash_token(token, salt)
    hashed_second = hash_token(token, salt)

    assert hashed_first == hashed_second
    assert len(hashed_first) == 64


def test_verify_token_accepts_valid_and_rejects_invalid_token() -> None:
    salt = "local-dev-salt"
    stored_hash = hash_token("dm-token", salt)

    assert verify_token("dm-token", stored_hash, salt) is True
    assert verify_token("wrong-token", stored_hash, salt) is False


def test_verify_token_never_matches_missing_values() -> None:
    salt = "local-dev-salt"

    assert verify_token(None, hash_token("dm-token", salt), salt) is False
    assert verify_token("", hash_token("", salt), salt) is False
    assert verify_token("dm-token", None, salt) is False


def test_generate_token_returns_distinct_uuid_strings() -> None:
    first = generate_token()
    second = generate_token()

    assert first != second
    assert str(uuid.UUID(first)) == first


def test_generate_join_code_is_six_upper_alphanumerics() -> None:
    codes = {generate_join_code() for _ in range(50)}

    assert all(re.fullmatch(r"[A-Z0-9]{6}", code) for code in codes)
    assert len(codes) > 1


def test_normalize_join_code_uppercases_and_strips() -> None:
    assert normalize_join_code(" ab12cd ") == "AB12CD"
