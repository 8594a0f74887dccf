"""
Typed Error Hierarchy for the Kapan Kernel.

===============================================================================
WHY TYPED ERRORS
===============================================================================

A rejected scan or entry has to tell the floor operator exactly which field
or rule failed. Generic exceptions force callers to parse messages, so every
failure here is:
  1. A TYPED class (catch or match by type, not message)
  2. Carrying a CODE attribute (machine-readable, stable)
  3. Carrying structured DATA (field, rule, bound, identifiers)

Engines and services do NOT raise these for expected outcomes. Malformed
input, rule violations and unknown identifiers are first-class results: the
error instance travels inside an ``Outcome`` (see ``kapan_kernel.domain.outcome``)
so the caller can render it inline. ``Outcome.unwrap()`` raises the carried
error for callers that prefer exceptions.

===============================================================================
ERROR HIERARCHY
===============================================================================

    KapanKernelError (base)
    |
    +-- ParseError
    |   +-- BarcodeFormatError
    |   +-- FieldCountError
    |   +-- MissingFieldError
    |   +-- FieldValueError
    |   +-- AmbiguousDelimiterError
    |
    +-- ValidationError
    |   +-- DuplicateLotError
    |   +-- PrerequisiteNotReturnedError
    |   +-- QuantityOutOfRangeError
    |   +-- InvalidSplitError
    |   +-- MissingOperatorError
    |   +-- SameOperatorError
    |   +-- OperatorMismatchError
    |   +-- EmptySelectionError
    |   +-- LotAlreadyReturnedError
    |   +-- DuplicateScanError
    |   +-- PacketAlreadyAssignedError
    |   +-- DuplicateReturnError
    |   +-- KapanMismatchError
    |   +-- ConfirmationRequiredError
    |   +-- NoMatchingRangeError
    |
    +-- NotFoundError
    |   +-- RecordNotFoundError
    |   +-- PacketNotFoundError
    |
    +-- IntegrityRisk
    |   +-- UnregisteredCollectionError
    |
    +-- StoreError
        +-- RemoteWriteError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category    | Code                        | When
------------|-----------------------------|---------------------------------------
Parse       | BARCODE_FORMAT              | Barcode does not match the shape in use
            | FIELD_COUNT                 | Delimited row has the wrong field count
            | MISSING_FIELD               | Required text field is blank
            | FIELD_VALUE                 | Numeric field is not a number / serial
            | AMBIGUOUS_DELIMITER         | Row mixes more than one accepted delimiter
------------|-----------------------------|---------------------------------------
Validation  | DUPLICATE_LOT               | (kapan, lot) already in the collection
            | PREREQUISITE_NOT_RETURNED   | Upstream lot missing or still running
            | QUANTITY_OUT_OF_RANGE       | Counter outside its lower/upper bound
            | INVALID_SPLIT               | Split quantity/operator rule violated
            | MISSING_OPERATOR            | Operator identity not supplied
            | SAME_OPERATOR               | From/to (or primary/secondary) equal
            | OPERATOR_MISMATCH           | Record not held by the source operator
            | EMPTY_SELECTION             | Nothing selected for a batch operation
            | LOT_ALREADY_RETURNED        | Return (or mutation) of a returned lot
            | DUPLICATE_SCAN              | Identifier already scanned this session
            | PACKET_ALREADY_ASSIGNED     | Packet still held by an operator
            | DUPLICATE_RETURN            | Packet already returned, no re-entry
            | KAPAN_MISMATCH              | Packet kapan differs from the lot kapan
            | CONFIRMATION_REQUIRED       | Irreversible action not confirmed
            | NO_MATCHING_RANGE           | Weight outside every configured range
------------|-----------------------------|---------------------------------------
NotFound    | RECORD_NOT_FOUND            | Record id not in the collection
            | PACKET_NOT_FOUND            | Scanned barcode has no record
------------|-----------------------------|---------------------------------------
Integrity   | INTEGRITY_RISK              | Cascading deletion executed
            | UNREGISTERED_COLLECTION     | Store slot missing from the registry
------------|-----------------------------|---------------------------------------
Store       | STORE_ERROR                 | Local store failure
            | REMOTE_WRITE_FAILED         | Mirrored remote write failed
"""

from __future__ import annotations


class KapanKernelError(Exception):
    """
    Base error for the kapan kernel.

    All subclasses carry a ``code`` class attribute for machine-readable
    identification.
    """

    code: str = "KAPAN_KERNEL_ERROR"


# Parse errors


class ParseError(KapanKernelError):
    """Base error for malformed scanned or pasted input."""

    code: str = "PARSE_ERROR"

    def __init__(self, raw: str, field: str, reason: str):
        self.raw = raw
        self.field = field
        self.reason = reason
        super().__init__(f"Cannot parse {field!s}: {reason}")


class BarcodeFormatError(ParseError):
    """Barcode does not match the expected shape."""

    code: str = "BARCODE_FORMAT"

    def __init__(self, raw: str, shape: str, expected: str):
        self.shape = shape
        self.expected = expected
        super().__init__(raw, "barcode", f"expected {shape} format {expected}, got {raw!r}")


class FieldCountError(ParseError):
    """Delimited row has too few (or too many) fields."""

    code: str = "FIELD_COUNT"

    def __init__(self, raw: str, expected: int, actual: int, exact: bool = False):
        self.expected = expected
        self.actual = actual
        self.exact = exact
        qualifier = "exactly" if exact else "at least"
        super().__init__(
            raw, "field_count", f"expected {qualifier} {expected} fields, got {actual}"
        )


class MissingFieldError(ParseError):
    """A required text field is blank."""

    code: str = "MISSING_FIELD"

    def __init__(self, raw: str, field: str, position: int):
        self.position = position
        super().__init__(raw, field, f"position {position} is empty")


class FieldValueError(ParseError):
    """A numeric field holds a non-numeric or out-of-format value."""

    code: str = "FIELD_VALUE"

    def __init__(self, raw: str, field: str, value: str, expected: str):
        self.value = value
        self.expected = expected
        super().__init__(raw, field, f"{value!r} is not a valid {expected}")


class AmbiguousDelimiterError(ParseError):
    """Row contains more than one of the accepted delimiters."""

    code: str = "AMBIGUOUS_DELIMITER"

    def __init__(self, raw: str, found: tuple[str, ...]):
        self.found = found
        super().__init__(
            raw, "delimiter", f"row mixes delimiters {', '.join(repr(d) for d in found)}"
        )


# Validation errors


class ValidationError(KapanKernelError):
    """Base error for business-rule violations (rejected before mutation)."""

    code: str = "VALIDATION_ERROR"


class DuplicateLotError(ValidationError):
    """Lot number already used within the kapan for this collection."""

    code: str = "DUPLICATE_LOT"

    def __init__(self, collection: str, kapan_id: str, lot_number: str, is_returned: bool):
        self.collection = collection
        self.kapan_id = kapan_id
        self.lot_number = lot_number
        self.is_returned = is_returned
        state = "returned" if is_returned else "running"
        super().__init__(
            f"Lot {lot_number} already exists for kapan {kapan_id} in {collection} "
            f"({state}); lot numbers cannot be reused within a kapan"
        )


class PrerequisiteNotReturnedError(ValidationError):
    """Upstream stage lot is missing or has not been returned yet."""

    code: str = "PREREQUISITE_NOT_RETURNED"

    def __init__(self, prerequisite: str, kapan_id: str, lot_number: str, found: bool):
        self.prerequisite = prerequisite
        self.kapan_id = kapan_id
        self.lot_number = lot_number
        self.found = found
        why = "is not returned yet" if found else "does not exist"
        super().__init__(
            f"{prerequisite} lot {lot_number} of kapan {kapan_id} {why}"
        )


class QuantityOutOfRangeError(ValidationError):
    """Counter value falls outside its allowed range."""

    code: str = "QUANTITY_OUT_OF_RANGE"

    def __init__(self, field: str, value: int, bound: str, limit: int):
        self.field = field
        self.value = value
        self.bound = bound
        self.limit = limit
        relation = "below the lower" if bound == "lower" else "above the upper"
        super().__init__(f"{field}={value} is {relation} bound {limit}")


class InvalidSplitError(ValidationError):
    """Split return request violates the allocation rules."""

    code: str = "INVALID_SPLIT"

    def __init__(self, field: str, rule: str):
        self.field = field
        self.rule = rule
        super().__init__(f"Invalid split ({field}): {rule}")


class MissingOperatorError(ValidationError):
    """Operator identity was not supplied."""

    code: str = "MISSING_OPERATOR"

    def __init__(self, role: str):
        self.role = role
        super().__init__(f"An operator is required: {role}")


class SameOperatorError(ValidationError):
    """Source and destination operators are the same."""

    code: str = "SAME_OPERATOR"

    def __init__(self, operator: str, context: str):
        self.operator = operator
        self.context = context
        super().__init__(f"{context}: operators must differ (both are {operator})")


class OperatorMismatchError(ValidationError):
    """Record is not currently held by the expected operator."""

    code: str = "OPERATOR_MISMATCH"

    def __init__(self, record_id: str, expected: str, actual: str):
        self.record_id = record_id
        self.expected = expected
        self.actual = actual
        super().__init__(f"Record {record_id} is held by {actual}, not {expected}")


class EmptySelectionError(ValidationError):
    """Batch operation invoked with nothing selected."""

    code: str = "EMPTY_SELECTION"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Select at least one item for {operation}")


class LotAlreadyReturnedError(ValidationError):
    """Lot has already been returned; returns are one-way."""

    code: str = "LOT_ALREADY_RETURNED"

    def __init__(self, record_id: str, kapan_id: str, lot_number: str, returned_by: str | None):
        self.record_id = record_id
        self.kapan_id = kapan_id
        self.lot_number = lot_number
        self.returned_by = returned_by
        super().__init__(
            f"Lot {lot_number} of kapan {kapan_id} was already returned by {returned_by}"
        )


class DuplicateScanError(ValidationError):
    """Identifier was already scanned in this session or collection."""

    code: str = "DUPLICATE_SCAN"

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"{identifier} has already been scanned")


class PacketAlreadyAssignedError(ValidationError):
    """Packet is currently held by an operator and not returned."""

    code: str = "PACKET_ALREADY_ASSIGNED"

    def __init__(self, barcode: str, operator: str):
        self.barcode = barcode
        self.operator = operator
        super().__init__(f"Packet {barcode} is already assigned to {operator}")


class DuplicateReturnError(ValidationError):
    """Packet was already returned and re-entry was not confirmed."""

    code: str = "DUPLICATE_RETURN"

    def __init__(self, barcode: str, returned_at: str | None):
        self.barcode = barcode
        self.returned_at = returned_at
        super().__init__(f"Packet {barcode} was already returned at {returned_at}")


class KapanMismatchError(ValidationError):
    """Scanned packet belongs to a different kapan than the lot."""

    code: str = "KAPAN_MISMATCH"

    def __init__(self, barcode: str, expected_kapan: str, actual_kapan: str):
        self.barcode = barcode
        self.expected_kapan = expected_kapan
        self.actual_kapan = actual_kapan
        super().__init__(
            f"Packet {barcode} belongs to kapan {actual_kapan}, lot is kapan {expected_kapan}"
        )


class ConfirmationRequiredError(ValidationError):
    """Irreversible operation requested without explicit confirmation."""

    code: str = "CONFIRMATION_REQUIRED"

    def __init__(self, operation: str, subject: str):
        self.operation = operation
        self.subject = subject
        super().__init__(f"{operation} of {subject} requires explicit confirmation")


class NoMatchingRangeError(ValidationError):
    """Weight is not covered by any configured range."""

    code: str = "NO_MATCHING_RANGE"

    def __init__(self, weight: str, table: str):
        self.weight = weight
        self.table = table
        super().__init__(f"No {table} range configured for weight {weight}")


# Not-found errors


class NotFoundError(KapanKernelError):
    """Base error for identifiers with no matching record."""

    code: str = "NOT_FOUND"


class RecordNotFoundError(NotFoundError):
    """Record id is not present in the collection."""

    code: str = "RECORD_NOT_FOUND"

    def __init__(self, collection: str, record_id: str):
        self.collection = collection
        self.record_id = record_id
        super().__init__(f"Record {record_id} not found in {collection}")


class PacketNotFoundError(NotFoundError):
    """Scanned barcode has no record in the collection."""

    code: str = "PACKET_NOT_FOUND"

    def __init__(self, collection: str, barcode: str):
        self.collection = collection
        self.barcode = barcode
        super().__init__(f"Barcode {barcode!r} was not found in {collection}")


# Integrity


class IntegrityRisk(KapanKernelError):
    """
    Irreversible cross-collection deletion.

    Emitted (logged and returned) when a cascading deletion executes.
    """

    code: str = "INTEGRITY_RISK"

    def __init__(self, kapan_id: str, removed: dict[str, int] | None = None):
        self.kapan_id = kapan_id
        self.removed = dict(removed or {})
        total = sum(self.removed.values())
        super().__init__(
            f"Kapan {kapan_id} purged: {total} record(s) removed irreversibly"
        )


class UnregisteredCollectionError(IntegrityRisk):
    """Store holds a collection the deletion registry does not know."""

    code: str = "UNREGISTERED_COLLECTION"

    def __init__(self, kapan_id: str, collections: tuple[str, ...]):
        self.collections = collections
        super().__init__(kapan_id)
        self.args = (
            f"Cannot purge kapan {kapan_id}: collection(s) "
            f"{', '.join(collections)} are not registered for deletion",
        )


# Store


class StoreError(KapanKernelError):
    """Base error for persistence failures."""

    code: str = "STORE_ERROR"


class RemoteWriteError(StoreError):
    """Write to the mirrored remote store failed (local state kept)."""

    code: str = "REMOTE_WRITE_FAILED"

    def __init__(self, collection: str, reason: str):
        self.collection = collection
        self.reason = reason
        super().__init__(f"Remote write of {collection} failed: {reason}")
