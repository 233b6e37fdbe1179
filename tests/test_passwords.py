import pytest

from core.errors import ValidationError
from core.security.passwords import dummy_verify, hash_password, validate_password_strength, verify_password


@pytest.mark.parametrize(
    "password",
    [
        "short1!",  # too short
        "alllowercase1!",  # no uppercase
        "ALLUPPERCASE1!",  # no lowercase
        "NoDigitsHere!",  # no digit
        "NoSymbols123",  # no symbol
        "Aa1!" + "x" * 80,  # over 72 bytes
    ],
)
def test_weak_passwords_rejected(password):
    with pytest.raises(ValidationError):
        validate_password_strength(password)


def test_strong_password_accepted(strong_password):
    validate_password_strength(strong_password)


def test_hash_is_salted_and_verifies(strong_password):
    first = hash_password(strong_password)
    second = hash_password(strong_password)

    assert first != second
    assert first.startswith("$2")
    assert verify_password(strong_password, first)
    assert verify_password(strong_password, second)


def test_wrong_password_does_not_verify(strong_password):
    hashed = hash_password(strong_password)

    assert not verify_password("Wr0ng!Password", hashed)
    assert not verify_password("", hashed)


def test_malformed_hash_is_false_not_error(strong_password):
    assert verify_password(strong_password, "not-a-bcrypt-hash") is False
    assert verify_password(strong_password, None) is False


def test_hash_uses_configured_cost(strong_password, settings):
    hashed = hash_password(strong_password)

    assert hashed.split("$")[2] == f"{settings.bcrypt_rounds:02d}"


def test_dummy_verify_always_fails(strong_password):
    assert dummy_verify(strong_password) is False
    assert dummy_verify("") is False


MUTATED = "Str0ng!Passw0rd"


@pytest.fixture(scope="module")
def mutated_hash():
    return hash_password(MUTATED)


@pytest.mark.parametrize("position", range(len(MUTATED)))
def test_single_character_change_does_not_verify(mutated_hash, position):
    original = MUTATED[position]
    replaced = MUTATED[:position] + chr(ord(original) ^ 1) + MUTATED[position + 1 :]
    dropped = MUTATED[:position] + MUTATED[position + 1 :]

    assert verify_password(MUTATED, mutated_hash)
    assert not verify_password(replaced, mutated_hash)
    assert not verify_password(dropped, mutated_hash)
