"""
Typed Exception Hierarchy for the Invoice Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A ledger that guards against double submission needs callers to tell
"this already happened" apart from "this failed".  Parsing messages for that
distinction is fragile, so every error here:
  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA naming the violated invariant (which field,
     which entity) rather than just a message string

Example:
    try:
        ledger.add_relationship(description, payee=shop, payor=client)
    except DuplicateDescriptionError as e:
        # Already submitted -- do NOT retry with a new description.
        relationship = ledger.relationships(pattern=re.escape(e.value))[0]

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    InvoiceKernelError (base)
    |
    +-- DuplicateDescriptionError
    +-- UnknownReferenceError
    |   +-- ConversionRateNotFoundError
    +-- RecordReferencedError
    |
    +-- ScheduleError
    |   +-- InvalidScheduleError
    |
    +-- ApplicationError
    |   +-- NoOutstandingChargesError
    |   +-- UnderfundedApplicationError
    |   +-- PaymentInactiveError
    |
    +-- ConversionError
    |   +-- InvalidConversionRateError
    |   +-- ReportingDenominationError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityViolationError
    |
    +-- CryptoBoundaryError
    |   +-- EncryptionError
    |   +-- DecryptionError
    |
    +-- StorageUnavailableError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Identity        | DUPLICATE_DESCRIPTION       | Unique name/description/code reused
                | UNKNOWN_REFERENCE           | Referenced row does not exist
                | CONVERSION_RATE_NOT_FOUND   | No rate for pair and no quoter
                | RECORD_REFERENCED           | Delete blocked by history
----------------|-----------------------------|-----------------------------------------
Schedule        | INVALID_SCHEDULE            | Period <= 0, bad interest rate
----------------|-----------------------------|-----------------------------------------
Application     | NO_OUTSTANDING_CHARGES      | Every supplied charge already satisfied
                | UNDERFUNDED_APPLICATION     | Strict mode and funds insufficient
                | PAYMENT_INACTIVE            | Applying a deactivated payment
----------------|-----------------------------|-----------------------------------------
Conversion      | INVALID_CONVERSION_RATE     | Basis zero/negative/unparseable
                | REPORTING_DENOMINATION      | Mixed denominations, no reporting unit
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Charge changed under a concurrent apply
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying frozen or append-only rows
----------------|-----------------------------|-----------------------------------------
Crypto          | ENCRYPTION_ERROR            | Key missing/locked, plaintext rejected
                | DECRYPTION_ERROR            | Wrong passphrase, corrupt ciphertext
----------------|-----------------------------|-----------------------------------------
Storage         | STORAGE_UNAVAILABLE         | Connection/transaction failure

===============================================================================
PROPAGATION
===============================================================================

Nothing in the kernel retries.  Uniqueness and reference errors surface
immediately; retrying a duplicate description would itself be a double
submit.  Storage failures roll the whole transaction back before
StorageUnavailableError reaches the caller, who decides whether to retry.
Crypto errors pass through the ledger unchanged.

===============================================================================
"""


class InvoiceKernelError(Exception):
    """
    Base exception for all invoice kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVOICE_KERNEL_ERROR"


# Identity / reference exceptions


class DuplicateDescriptionError(InvoiceKernelError):
    """
    A unique name, description or code was reused.

    This is the double-submit guard: treat it as "already happened".
    """

    code: str = "DUPLICATE_DESCRIPTION"

    def __init__(self, entity_type: str, field: str, value: str):
        self.entity_type = entity_type
        self.field = field
        self.value = value
        super().__init__(
            f"{entity_type} with {field} '{value}' already exists"
        )


class UnknownReferenceError(InvoiceKernelError):
    """A referenced row does not exist."""

    code: str = "UNKNOWN_REFERENCE"

    def __init__(self, entity_type: str, reference_id: str):
        self.entity_type = entity_type
        self.reference_id = reference_id
        super().__init__(f"Unknown {entity_type} reference: {reference_id}")


class ConversionRateNotFoundError(UnknownReferenceError):
    """No conversion rate is on record for the pair and no quoter is configured."""

    code: str = "CONVERSION_RATE_NOT_FOUND"

    def __init__(self, unit_of_account: str, denomination: str, as_of: int | None = None):
        self.unit_of_account = unit_of_account
        self.denomination = denomination
        self.as_of = as_of
        InvoiceKernelError.__init__(
            self,
            f"No conversion rate for denomination {denomination} "
            f"against unit of account {unit_of_account}"
            + (f" as of {as_of}" if as_of is not None else ""),
        )
        self.entity_type = "ConversionRate"
        self.reference_id = f"{unit_of_account}/{denomination}"


class RecordReferencedError(InvoiceKernelError):
    """Deletion blocked because ledger history references the row."""

    code: str = "RECORD_REFERENCED"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot delete {entity_type} {entity_id}: {reason}")


# Schedule exceptions


class ScheduleError(InvoiceKernelError):
    """Base exception for fee schedule errors."""

    code: str = "SCHEDULE_ERROR"


class InvalidScheduleError(ScheduleError):
    """Fee schedule parameters cannot produce a valid accrual."""

    code: str = "INVALID_SCHEDULE"

    def __init__(self, field: str, value: str, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid fee schedule {field}={value}: {reason}")


# Application exceptions


class ApplicationError(InvoiceKernelError):
    """Base exception for payment application errors."""

    code: str = "APPLICATION_ERROR"


class NoOutstandingChargesError(ApplicationError):
    """Every supplied charge is already fully satisfied."""

    code: str = "NO_OUTSTANDING_CHARGES"

    def __init__(self, charge_ids: list[int]):
        self.charge_ids = list(charge_ids)
        super().__init__(
            f"No outstanding balance on charges {self.charge_ids}"
        )


class UnderfundedApplicationError(ApplicationError):
    """Full satisfaction was required but the payment falls short."""

    code: str = "UNDERFUNDED_APPLICATION"

    def __init__(self, payment_id: int | None, required: int, available: int):
        self.payment_id = payment_id
        self.required = required
        self.available = available
        super().__init__(
            f"Payment {payment_id} cannot satisfy all charges: "
            f"requires {required}, has {available}"
        )


class PaymentInactiveError(ApplicationError):
    """A deactivated payment cannot be applied."""

    code: str = "PAYMENT_INACTIVE"

    def __init__(self, payment_id: int):
        self.payment_id = payment_id
        super().__init__(f"Payment {payment_id} is inactive and cannot be applied")


# Conversion exceptions


class ConversionError(InvoiceKernelError):
    """Base exception for denomination conversion errors."""

    code: str = "CONVERSION_ERROR"


class InvalidConversionRateError(ConversionError):
    """Conversion basis is zero, negative or not a number."""

    code: str = "INVALID_CONVERSION_RATE"

    def __init__(self, basis: str, reason: str):
        self.basis = basis
        self.reason = reason
        super().__init__(f"Invalid conversion basis {basis}: {reason}")


class ReportingDenominationError(ConversionError):
    """Charges span denominations and no reporting denomination was given."""

    code: str = "REPORTING_DENOMINATION"

    def __init__(self, denomination_ids: list[int]):
        self.denomination_ids = sorted(denomination_ids)
        super().__init__(
            f"Charges span denominations {self.denomination_ids}; "
            "a reporting denomination or unit of account is required"
        )


# Concurrency exceptions


class ConcurrencyError(InvoiceKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability exceptions


class ImmutabilityViolationError(InvoiceKernelError):
    """Attempted to modify or delete a frozen or append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Encryption boundary exceptions


class CryptoBoundaryError(InvoiceKernelError):
    """Base exception for the encryption boundary."""

    code: str = "CRYPTO_BOUNDARY_ERROR"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class EncryptionError(CryptoBoundaryError):
    """Key missing or locked, or plaintext could not be sealed."""

    code: str = "ENCRYPTION_ERROR"


class DecryptionError(CryptoBoundaryError):
    """Wrong passphrase, wrong key, or corrupt ciphertext."""

    code: str = "DECRYPTION_ERROR"


# Storage exceptions


class StorageUnavailableError(InvoiceKernelError):
    """Connection or transaction failure; the operation was rolled back."""

    code: str = "STORAGE_UNAVAILABLE"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Storage unavailable during {operation}: {reason}")
