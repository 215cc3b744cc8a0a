from __future__ import annotations


class KeystoreError(Exception):
    """Base error for one alias' reconciliation pass.

    Carries the alias, the operation being attempted, and the raw keytool
    diagnostic, which is usually the only actionable detail.
    """

    def __init__(self, message: str, alias: str | None = None, operation: str | None = None, diagnostic: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.alias = alias
        self.operation = operation
        self.diagnostic = diagnostic.strip()

    def __str__(self) -> str:
        parts = []
        if self.alias is not None:
            parts.append(f"<{self.alias}>")
        if self.operation:
            parts.append(f"{self.operation}:")
        parts.append(self.message)
        text = " ".join(parts)
        if self.diagnostic:
            text = f"{text}\n{self.diagnostic}"
        return text


class ConfigError(KeystoreError):
    pass


class KeytoolNotFound(KeystoreError):
    pass


class ListingParseError(KeystoreError):
    pass


class InspectionFailed(KeystoreError):
    pass


class SourceUnreadable(KeystoreError):
    pass


class SourceAliasNotFound(KeystoreError):
    pass


class AmbiguousSource(KeystoreError):
    pass


class OperationFailed(KeystoreError):
    def __init__(self, message: str, alias: str | None = None, step: str | None = None, exit_code: int | None = None, stderr: str = "") -> None:
        super().__init__(message, alias=alias, operation=step, diagnostic=stderr)
        self.step = step
        self.exit_code = exit_code
        self.stderr = stderr


class ConvergenceVerificationFailed(KeystoreError):
    pass


class PasswordChangeUnsupportedWarning(UserWarning):
    def __init__(self, alias: str, storetype: str) -> None:
        super().__init__(
            f"<{alias}> key password cannot be changed in place for {storetype} keystores; "
            "the declared key password is not verified"
        )
        self.alias = alias
        self.storetype = storetype
