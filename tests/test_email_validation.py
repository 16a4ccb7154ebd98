"""Tests for email validation in the lead tool inputs."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from src.tools.validation import CreateLeadInput, validate_email


class TestValidateEmail:
    """Unit tests for the validate_email helper."""

    @pytest.mark.parametrize(
        "email",
        [
            "alice@example.com",
            "bob.jones@sales.co.uk",
            "jane+tag@gmail.com",
            "user@sub.domain.org",
            "UPPER@CASE.COM",
            "digits123@test456.io",
        ],
    )
    def test_accepts_valid_emails(self, email: str):
        assert validate_email(email) is None

    @pytest.mark.parametrize(
        "email",
        [
            "",
            "   ",
            "not-an-email",
            "missing@",
            "@no-local.com",
            "spaces in@email.com",
            "double@@at.com",
            "no-tld@localhost",
            "user@.leading-dot.com",
        ],
    )
    def test_rejects_invalid_emails(self, email: str):
        result = validate_email(email)
        assert result is not None
        assert "does not look like a valid email" in result or "No email" in result


class TestCreateLeadInput:
    def test_strips_whitespace(self):
        lead = CreateLeadInput(name="  Ana ", email="  ana@acme.com  ")
        assert lead.name == "Ana"
        assert lead.email == "ana@acme.com"

    def test_invalid_email_raises(self):
        with pytest.raises(ValidationError, match="does not look like a valid email"):
            CreateLeadInput(name="Ana", email="ana-at-acme")

    def test_source_is_optional(self):
        assert CreateLeadInput(name="Ana", email="ana@acme.com").source is None
