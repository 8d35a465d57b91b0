"""
Custom exception hierarchy for the owner parser.

Parsing problems in a single name are never raised; they are recorded as
ParseErrorCode values on the record. These exceptions cover the faults that
make the parser itself unusable: broken marker configuration or a missing
given-name dictionary.
"""

from __future__ import annotations


class OwnerParserError(Exception):
    """Base exception for all owner parser failures."""

    def __init__(self, code: str, message: str, details: dict | None = None):
        self.code = code
        self.details = details or {}
        super().__init__(message)


class RuleConfigError(OwnerParserError):
    """A marker rule file is missing, malformed, or has an empty alias list."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("RULE_CONFIG_INVALID", message, details)


class DictionaryLoadError(OwnerParserError):
    """The given-name dictionary could not be loaded."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("DICTIONARY_LOAD_FAILED", message, details)
