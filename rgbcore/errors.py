"""Error taxonomy for strict encoding, type identity and consignment checks.

Every error carries the dotted path of the offending field. Composite codecs
prefix the path as an error propagates outwards, so a failure deep inside a
consignment reports e.g. ``bundles[3].bundle.known_transitions``.

Validators that must report every problem at once (schema conformance, the
consignment graph checker) collect errors into a ``ValidationResult`` rather
than raising on the first one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List


# =============================================================================
# ENCODING ERRORS
# =============================================================================

class StrictError(Exception):
    """Base exception for all encoding and validation failures."""

    code = "strict_error"

    def __init__(self, message: str, field: str = ""):
        self.message = message
        self.field = field
        super().__init__(self._render())

    def _render(self) -> str:
        if self.field:
            return f"{self.field}: {self.message}"
        return self.message

    def at(self, segment: str) -> "StrictError":
        """Prefix the field path with an outer segment."""
        if not segment:
            return self
        if not self.field:
            self.field = segment
        elif self.field.startswith("["):
            self.field = f"{segment}{self.field}"
        else:
            self.field = f"{segment}.{self.field}"
        self.args = (self._render(),)
        return self


class MalformedEncoding(StrictError):
    """Byte stream is truncated, has trailing data or an invalid marker."""
    code = "malformed_encoding"


class IntegerOverflow(MalformedEncoding):
    """Integer does not fit the declared width."""
    code = "integer_overflow"


class LengthOutOfRange(StrictError):
    """String or byte length outside its declared bounds."""
    code = "length_out_of_range"


class CardinalityViolation(StrictError):
    """Collection size outside its declared bounds."""
    code = "cardinality_violation"


class InvalidCharset(StrictError):
    """Character not permitted by the declared charset class."""
    code = "invalid_charset"


class OrderingViolation(StrictError):
    """Set elements or map keys are not in ascending canonical order."""
    code = "ordering_violation"


class DuplicateKey(StrictError):
    """Set element or map key occurs more than once."""
    code = "duplicate_key"


class UnknownTag(StrictError):
    """Union or enum discriminant is not declared."""
    code = "unknown_tag"


# =============================================================================
# TYPE SYSTEM AND SCHEMA ERRORS
# =============================================================================

class UnresolvedTypeReference(StrictError):
    """A type id is referenced before it is present in the type system."""
    code = "unresolved_type_reference"


class TypeLibError(StrictError):
    """An authored type library document is not well-formed."""
    code = "invalid_type_lib"


class SchemaViolation(StrictError):
    """An operation does not match the bound declared by its schema."""

    code = "schema_violation"

    def __init__(self, field: str, expected: Any, actual: Any, message: str = ""):
        self.expected = expected
        self.actual = actual
        super().__init__(message or f"expected {expected}, found {actual}", field)


class UndeclaredField(StrictError):
    """A field is present in an operation but absent from its schema."""
    code = "undeclared_field"


class DanglingReference(StrictError):
    """An identifier points at nothing known to the consignment."""
    code = "dangling_reference"


class IdentifierMismatch(StrictError):
    """A carried identifier differs from the one recomputed from content."""
    code = "identifier_mismatch"


class MergeRevealError(ValueError):
    """Two records with different identities cannot be merged."""


# =============================================================================
# COLLECTED RESULTS
# =============================================================================

class ConsignmentRejected(Exception):
    """Consignment failed validation; ``errors`` holds every violation found."""

    def __init__(self, errors: List[StrictError]):
        self.errors = list(errors)
        messages = "; ".join(str(e) for e in self.errors)
        super().__init__(f"Consignment rejected ({len(self.errors)} violations): {messages}")


@dataclass
class ValidationResult:
    """Result of a validation pass."""
    errors: List[StrictError] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def add(self, error: StrictError) -> None:
        self.errors.append(error)

    def extend(self, other: "ValidationResult") -> None:
        self.errors.extend(other.errors)

    def raise_if_invalid(self) -> None:
        """Raise ConsignmentRejected if validation failed."""
        if self.errors:
            raise ConsignmentRejected(self.errors)

    def codes(self) -> List[str]:
        return [e.code for e in self.errors]
