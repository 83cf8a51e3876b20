"""
Tests for submission validation.

Tests cover:
- E.164 phone format
- Age range, personality length, category enum
- Strict-true consent flags
- All violations reported in one pass
"""

import pytest

from companion.errors import SubmissionValidationError
from companion.models import MessageCategory
from companion.schemas import is_e164, validate_submission

from conftest import submission_payload


def error_fields(exc_info) -> set:
    return {detail.field for detail in exc_info.value.details}


class TestPhoneFormat:
    """Test the E.164 rule."""

    @pytest.mark.parametrize("phone", ["+1234567890", "+14155550100", "+919876543210", "+12", "+123456789012345"])
    def test_accepts_e164(self, phone):
        assert is_e164(phone)

    @pytest.mark.parametrize(
        "phone",
        [
            "123-456-7890",
            "1234567890",
            "+0123456789",
            "+1",
            "+1234567890123456",
            "+1 415 555 0100",
            "+1415555010a",
            "",
        ],
    )
    def test_rejects_non_e164(self, phone):
        assert not is_e164(phone)

    def test_invalid_phone_reported_on_field(self):
        with pytest.raises(SubmissionValidationError) as exc_info:
            validate_submission(submission_payload(elder_phone="123-456-7890"))

        assert error_fields(exc_info) == {"elder_phone"}
        assert exc_info.value.details[0].message == "Phone must be in E.164 format"


class TestFieldRules:
    """Test range, length and enum rules."""

    def test_valid_submission(self):
        submission = validate_submission(submission_payload())

        assert submission.elder_name == "Margaret"
        assert submission.message_type == MessageCategory.BIRTHDAY
        assert submission.consent_elder_confirmed is True

    def test_negative_age_rejected(self):
        with pytest.raises(SubmissionValidationError) as exc_info:
            validate_submission(submission_payload(elder_age=-1))

        assert error_fields(exc_info) == {"elder_age"}

    def test_zero_age_accepted(self):
        submission = validate_submission(submission_payload(elder_age=0))
        assert submission.elder_age == 0

    def test_numeric_string_age_coerced(self):
        submission = validate_submission(submission_payload(elder_age="72"))
        assert submission.elder_age == 72

    def test_fractional_age_rejected(self):
        with pytest.raises(SubmissionValidationError) as exc_info:
            validate_submission(submission_payload(elder_age=72.5))

        assert error_fields(exc_info) == {"elder_age"}

    def test_short_personality_rejected(self):
        with pytest.raises(SubmissionValidationError) as exc_info:
            validate_submission(submission_payload(elder_personality="Kind"))

        assert error_fields(exc_info) == {"elder_personality"}

    def test_personality_of_ten_characters_accepted(self):
        submission = validate_submission(submission_payload(elder_personality="0123456789"))
        assert submission.elder_personality == "0123456789"

    def test_unknown_category_rejected(self):
        with pytest.raises(SubmissionValidationError) as exc_info:
            validate_submission(submission_payload(message_type="anniversary"))

        assert error_fields(exc_info) == {"message_type"}

    def test_other_category_without_qualifier_accepted(self):
        submission = validate_submission(submission_payload(message_type="other"))

        assert submission.message_type == MessageCategory.OTHER
        assert submission.message_type_other is None

    @pytest.mark.parametrize("field", ["requester_name", "elder_name", "requester_contact", "verification_token"])
    def test_empty_required_text_rejected(self, field):
        with pytest.raises(SubmissionValidationError) as exc_info:
            validate_submission(submission_payload(**{field: ""}))

        assert error_fields(exc_info) == {field}

    def test_missing_field_rejected(self):
        payload = submission_payload()
        del payload["verification_token"]

        with pytest.raises(SubmissionValidationError) as exc_info:
            validate_submission(payload)

        assert error_fields(exc_info) == {"verification_token"}

    def test_unknown_fields_ignored(self):
        submission = validate_submission(submission_payload(favourite_colour="green"))
        assert not hasattr(submission, "favourite_colour")


class TestConsentFlags:
    """Both consent flags must be exactly true."""

    @pytest.mark.parametrize("field", ["consent_elder_confirmed", "consent_no_impersonation"])
    def test_false_consent_rejected(self, field):
        with pytest.raises(SubmissionValidationError) as exc_info:
            validate_submission(submission_payload(**{field: False}))

        assert error_fields(exc_info) == {field}
        assert exc_info.value.details[0].message == f"{field} must be true"

    @pytest.mark.parametrize("value", ["true", 1, "yes"])
    def test_truthy_non_boolean_rejected(self, value):
        with pytest.raises(SubmissionValidationError) as exc_info:
            validate_submission(submission_payload(consent_no_impersonation=value))

        assert error_fields(exc_info) == {"consent_no_impersonation"}


class TestErrorAccumulation:
    """All violations come back together."""

    def test_every_violation_reported(self):
        payload = submission_payload(
            elder_phone="555-0100",
            elder_age=-5,
            elder_personality="short",
            consent_elder_confirmed=False,
            consent_no_impersonation=False,
            verification_token="",
        )

        with pytest.raises(SubmissionValidationError) as exc_info:
            validate_submission(payload)

        assert error_fields(exc_info) == {
            "elder_phone",
            "elder_age",
            "elder_personality",
            "consent_elder_confirmed",
            "consent_no_impersonation",
            "verification_token",
        }

    def test_non_object_body_reported_as_body(self):
        with pytest.raises(SubmissionValidationError) as exc_info:
            validate_submission(["not", "an", "object"])

        assert error_fields(exc_info) == {"body"}

    def test_validation_is_deterministic(self):
        payload = submission_payload(elder_age=-1, elder_phone="bad")

        with pytest.raises(SubmissionValidationError) as first:
            validate_submission(payload)
        with pytest.raises(SubmissionValidationError) as second:
            validate_submission(payload)

        assert first.value.details == second.value.details
