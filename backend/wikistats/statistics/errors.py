"""
Statistics Errors
=================

**Status**: Active

Error classification for the statistics pipeline.

WHY THIS FILE EXISTS
--------------------
Two things can go wrong once a request has been parsed:

    1. Configuration
       - Service-award ladder file is not valid JSON
       - Ladder or known-wikis file violates its schema

    2. Execution
       - The database rejects or fails the compiled query

Request shape errors never reach this module: they are raised as
pydantic.ValidationError while the request is parsed.

Callers show `user_message()` to end users and log `to_dict()`. The SQL
text and join aliases only ever go to the logs.

RELATED FILES
-------------
- wikistats/statistics/compiler.py: Wraps SQLAlchemy failures
- wikistats/configuration/service_award.py: Raises ConfigurationError
"""

from __future__ import annotations

from dataclasses import dataclass, field as dataclass_field
from enum import Enum
from typing import Any, Dict, Optional


# =============================================================================
# ERROR CLASSIFICATION ENUMS
# =============================================================================

class ErrorCategory(Enum):
    """
    Broad error families.

    WHAT: Separates operator mistakes (bad files) from runtime failures.

    WHY: Configuration errors need someone to fix a file; database errors
         may be transient and are worth alerting on.
    """
    CONFIGURATION = "configuration"
    RESOURCE = "resource"


class ErrorSeverity(Enum):
    ERROR = "error"


class ErrorCode(Enum):
    """Machine-readable codes for monitoring."""
    CONFIGURATION_ERROR = "STATS_001"
    DATABASE_ERROR = "STATS_031"


# =============================================================================
# EXCEPTIONS
# =============================================================================

@dataclass
class StatisticsError(Exception):
    """
    Base exception of the statistics pipeline.

    ATTRIBUTES:
        code: ErrorCode (machine-readable)
        message: Technical message for logs
        category: Error family
        severity: How serious the error is
        wiki_id: Wiki the request targeted, if known
        details: Additional debug information (logs only)
    """
    code: ErrorCode
    message: str
    category: ErrorCategory
    severity: ErrorSeverity = ErrorSeverity.ERROR
    wiki_id: Optional[str] = None
    details: Dict[str, Any] = dataclass_field(default_factory=dict)

    def __str__(self) -> str:
        if self.wiki_id:
            return f"[{self.code.value}] {self.wiki_id}: {self.message}"
        return f"[{self.code.value}] {self.message}"

    def user_message(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Structured representation for logs."""
        result = {
            "code": self.code.value,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
        }
        if self.wiki_id:
            result["wiki"] = self.wiki_id
        if self.details:
            result["details"] = self.details
        return result


@dataclass
class StatisticsQueryError(StatisticsError):
    """
    The compiled statistics query failed to execute.

    Raised `from` the original SQLAlchemy exception. `user_message()` is
    deliberately opaque.
    """
    code: ErrorCode = ErrorCode.DATABASE_ERROR
    message: str = "Statistics query failed"
    category: ErrorCategory = ErrorCategory.RESOURCE

    def user_message(self) -> str:
        return "Unable to compute statistics."


@dataclass
class ConfigurationError(StatisticsError):
    """A configuration file exists but cannot be used."""
    code: ErrorCode = ErrorCode.CONFIGURATION_ERROR
    message: str = "Invalid configuration"
    category: ErrorCategory = ErrorCategory.CONFIGURATION
    path: Optional[str] = None

    def __str__(self) -> str:
        base = super().__str__()
        return f"{base} ({self.path})" if self.path else base
