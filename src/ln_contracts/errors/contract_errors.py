"""ContractError: base exception class for all contract-construction errors."""

from __future__ import annotations


class ContractError(Exception):
    """Base error for script, transaction and key construction.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code string.
        template: Name of the template or operation that rejected its input.
        argument: Name of the offending argument, when one can be singled out.
    """

    def __init__(
        self,
        message: str,
        *,
        code: str = "contract-error",
        template: str | None = None,
        argument: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.template = template
        self.argument = argument

    def __str__(self) -> str:
        if self.template and self.argument:
            return f"{self.template}: {self.message} (argument: {self.argument})"
        if self.template:
            return f"{self.template}: {self.message}"
        return self.message
