"""Custom exceptions for the variable store."""

from typing import Optional


class VariableStoreError(Exception):
    """Base exception for all variable store errors."""

    pass


class MalformedExpressionError(VariableStoreError, ValueError):
    """Raised when a variable expression cannot be parsed.

    Attributes:
        expression: The raw expression that failed to parse
    """

    def __init__(self, expression: str, message: Optional[str] = None):
        self.expression = expression
        super().__init__(
            message or f"Expression must start with Scope.Key: {expression!r}"
        )


class VariableNotFoundError(VariableStoreError, KeyError):
    """Raised when a placeholder references an absent base variable.

    Only raised by interpolation under the THROW_ERROR policy.

    Attributes:
        scope: Scope of the missing variable
        key: Base key of the missing variable
    """

    def __init__(self, scope: str, key: str):
        self.scope = scope
        self.key = key
        super().__init__(f"Missing variable: ${{{self.name}}}")

    @property
    def name(self) -> str:
        """Return the variable name as Scope.Key."""
        return f"{self.scope}.{self.key}"

    def __str__(self) -> str:
        return str(self.args[0])


class ConfigError(VariableStoreError):
    """Raised when a workflow configuration file is invalid."""

    pass
