from app.core.ids import pair_id
from app.core.security import generate_session_token, hash_password, hash_session_token, verify_password


def test_password_hash_verifies_only_the_right_password():
    encoded = hash_password("correct horse", iterations=1000)

    assert encoded.startswith("pbkdf2_sha256$1000$")
    assert verify_password("correct horse", encoded)
    assert not verify_password("wrong horse", encoded)
    assert not verify_password("correct horse", "garbage")


def test_session_token_hash_is_stable():
    token = generate_session_token()

    assert token.plain.startswith(f"st_{token.prefix}_")
    assert hash_session_token(token.plain) == token.hashed
    assert hash_session_token(token.plain + "x") != token.hashed


def test_pair_id_ignores_argument_order():
    assert pair_id("usr_b", "usr_a") == pair_id("usr_a", "usr_b") == "usr_a_usr_b"
