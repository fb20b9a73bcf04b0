"""Tests for failure classification."""

import asyncio

import pytest

from selfheal.healing.classifier import FailureClassifier
from selfheal.models.healing_models import FailureType
from tests.stubs import make_failure


class TestFailureClassifier:
    """Test FailureClassifier rules."""

    @pytest.fixture
    def classifier(self):
        """Create classifier instance."""
        return FailureClassifier()

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("Timeout 30000ms exceeded", FailureType.TIMEOUT),
            ("Element NOT FOUND: #submit", FailureType.ELEMENT_NOT_FOUND),
            ("waiting for selector '.btn'", FailureType.ELEMENT_NOT_FOUND),
            ("Network request failed", FailureType.NETWORK_ERROR),
            ("Failed to fetch /api/users", FailureType.NETWORK_ERROR),
            ("AssertionError: 1 != 2", FailureType.ASSERTION_FAILED),
            ("expect(received).toBe(expected)", FailureType.ASSERTION_FAILED),
            ("Segmentation fault", FailureType.UNKNOWN),
        ],
    )
    def test_classify(self, classifier, message, expected):
        """Test each rule matches case-insensitively."""
        assert classifier.classify(message) == expected

    def test_first_rule_wins(self, classifier):
        """Test rule order decides between several matching keywords."""
        assert classifier.classify("network timeout while fetching") == FailureType.TIMEOUT
        assert classifier.classify("selector not found after fetch") == (
            FailureType.ELEMENT_NOT_FOUND
        )
        assert classifier.classify("expected network to respond") == (
            FailureType.NETWORK_ERROR
        )

    def test_empty_message_is_unknown(self, classifier):
        """Test missing messages stay unknown."""
        assert classifier.classify("") == FailureType.UNKNOWN
        assert classifier.classify(None) == FailureType.UNKNOWN

    def test_classify_exception(self, classifier):
        """Test exception types take priority over message rules."""
        assert classifier.classify_exception(asyncio.TimeoutError()) == FailureType.TIMEOUT
        assert classifier.classify_exception(AssertionError("x")) == (
            FailureType.ASSERTION_FAILED
        )
        assert classifier.classify_exception(ConnectionResetError()) == (
            FailureType.NETWORK_ERROR
        )
        assert classifier.classify_exception(RuntimeError("selector missing")) == (
            FailureType.ELEMENT_NOT_FOUND
        )

    def test_resolve_classifies_unknown_failure_as_copy(self, classifier):
        """Test unknown failures are classified without mutating the original."""
        failure = make_failure(FailureType.UNKNOWN, "Timeout waiting for page")

        resolved = classifier.resolve(failure)

        assert resolved.failure_type == FailureType.TIMEOUT
        assert resolved.id == failure.id
        assert failure.failure_type == FailureType.UNKNOWN

    def test_resolve_never_overrides_explicit_type(self, classifier):
        """Test a pre-classified failure is returned unchanged."""
        failure = make_failure(FailureType.ASSERTION_FAILED, "Timeout in assertion")

        assert classifier.resolve(failure) is failure

    def test_resolve_without_message(self, classifier):
        """Test unknown failure without message stays unknown."""
        failure = make_failure(FailureType.UNKNOWN, "")

        assert classifier.resolve(failure) is failure

    def test_custom_rules(self):
        """Test rules can be replaced."""
        classifier = FailureClassifier(rules=[(("ECONNREFUSED",), FailureType.NETWORK_ERROR)])

        assert classifier.classify("connect econnrefused") == FailureType.NETWORK_ERROR
        assert classifier.classify("Timeout") == FailureType.UNKNOWN
