"""Unit tests for auth/models.py -- validated value types.

Covers:
- Email rejects empty and @-less strings, normalizes the domain
- Credential length boundary (7 fails, 8 passes), masked repr
- ChallengeId / TwoFactorCode parsing and generation
- Value types cannot be constructed around validation
"""

import pytest

from auth.errors import CredentialTooShort, InvalidChallenge, InvalidEmail, ValidationError
from auth.models import ChallengeId, Credential, Email, LoginResult, TwoFactorCode


class TestEmail:
    @pytest.mark.parametrize("raw", ["", "   ", "invalidemail.com", "no-at-sign", "@example.com", "user@"])
    def test_malformed_addresses_rejected(self, raw: str) -> None:
        with pytest.raises(InvalidEmail):
            Email.parse(raw)

    @pytest.mark.parametrize("raw", ["a@x.com", "first.last@example.com", "user+tag@sub.example.org", "ops@intranet"])
    def test_plausible_addresses_accepted(self, raw: str) -> None:
        assert Email.parse(raw).value == raw

    def test_domain_is_normalized(self) -> None:
        assert Email.parse("alice@EXAMPLE.COM") == Email.parse("alice@example.com")
        assert hash(Email.parse("alice@EXAMPLE.COM")) == hash(Email.parse("alice@example.com"))

    def test_surrounding_whitespace_stripped(self) -> None:
        assert Email.parse("  alice@example.com ").value == "alice@example.com"

    def test_non_string_rejected(self) -> None:
        with pytest.raises(InvalidEmail):
            Email(None)  # type: ignore[arg-type]

    def test_direct_construction_validates(self) -> None:
        with pytest.raises(InvalidEmail):
            Email("not-an-email")

    def test_masked_hides_local_part(self) -> None:
        assert Email.parse("alice@example.com").masked() == "a***@example.com"

    def test_invalid_email_is_validation_error(self) -> None:
        with pytest.raises(ValidationError):
            Email.parse("nope")


class TestCredential:
    def test_exactly_seven_characters_fails(self) -> None:
        with pytest.raises(CredentialTooShort):
            Credential.parse("a" * 7)

    def test_exactly_eight_characters_succeeds(self) -> None:
        assert Credential.parse("a" * 8).value == "a" * 8

    @pytest.mark.parametrize("length", [0, 1, 5, 7])
    def test_short_credentials_fail(self, length: int) -> None:
        with pytest.raises(CredentialTooShort):
            Credential.parse("x" * length)

    @pytest.mark.parametrize("length", [8, 9, 64, 500])
    def test_long_credentials_succeed(self, length: int) -> None:
        assert len(Credential.parse("x" * length).value) == length

    def test_no_character_class_rules(self) -> None:
        Credential.parse("        ")
        Credential.parse("12345678")

    def test_repr_is_masked(self) -> None:
        credential = Credential.parse("password123")
        assert "password123" not in repr(credential)
        assert "password123" not in str(credential)

    def test_equality_is_by_value(self) -> None:
        assert Credential.parse("password123") == Credential.parse("password123")
        assert Credential.parse("password123") != Credential.parse("password124")


class TestChallengeValues:
    def test_generated_ids_are_unique(self) -> None:
        assert ChallengeId.generate() != ChallengeId.generate()

    def test_id_round_trips_through_parse(self) -> None:
        challenge_id = ChallengeId.generate()
        assert ChallengeId.parse(challenge_id.value) == challenge_id

    @pytest.mark.parametrize("raw", ["", "123456", "not-a-uuid"])
    def test_malformed_id_rejected(self, raw: str) -> None:
        with pytest.raises(InvalidChallenge):
            ChallengeId.parse(raw)

    def test_generated_code_has_requested_length(self) -> None:
        assert len(TwoFactorCode.generate().value) == 6
        assert len(TwoFactorCode.generate(8).value) == 8
        assert TwoFactorCode.generate().value.isdigit()

    @pytest.mark.parametrize("raw", ["", "12a456", "１２３４５６", " 123456"])
    def test_non_numeric_code_rejected(self, raw: str) -> None:
        with pytest.raises(InvalidChallenge):
            TwoFactorCode.parse(raw)

    def test_code_repr_is_masked(self) -> None:
        assert "123456" not in repr(TwoFactorCode.parse("123456"))


def test_login_result_requires_two_factor_flag() -> None:
    email = Email.parse("a@x.com")
    assert LoginResult(email=email, challenge_id=ChallengeId.generate()).requires_two_factor
    assert not LoginResult(email=email, token="t").requires_two_factor
