"""Construction-phase errors: encoding, value, key and transaction-shape failures."""

from __future__ import annotations

from ln_contracts.errors.contract_errors import ContractError


class ScriptEncodingError(ContractError, ValueError):
    """A push or a whole script violates the consensus encoding limits."""

    def __init__(
        self, message: str, *, template: str | None = None, argument: str | None = None
    ) -> None:
        super().__init__(message, code="script-encoding", template=template, argument=argument)


class AmountError(ContractError, ValueError):
    """A balance or amount is negative, overflows, or is not covered by inputs."""

    def __init__(
        self, message: str, *, template: str | None = None, argument: str | None = None
    ) -> None:
        super().__init__(message, code="invalid-amount", template=template, argument=argument)


class InvalidKeyError(ContractError, ValueError):
    """A public key is malformed or not on the curve, or a secret is out of range."""

    def __init__(
        self, message: str, *, template: str | None = None, argument: str | None = None
    ) -> None:
        super().__init__(message, code="invalid-key", template=template, argument=argument)


class TransactionError(ContractError, ValueError):
    """A transaction is structurally invalid (no inputs/outputs, bad locktime, truncated)."""

    def __init__(
        self, message: str, *, template: str | None = None, argument: str | None = None
    ) -> None:
        super().__init__(message, code="invalid-transaction", template=template, argument=argument)


class DegenerateKeyError(ContractError):
    """Key derivation produced the point at infinity or an unusable tweak.

    Cryptographically negligible for honest inputs; indicates malicious input
    or a bug and is never retried.
    """

    def __init__(self, message: str, *, template: str | None = None) -> None:
        super().__init__(message, code="degenerate-key", template=template)
