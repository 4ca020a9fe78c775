"""
Errors and Results
==================

Exception taxonomy shared by clients and services, plus a small
`Ok | Err` result type used by orchestrating services that must not
raise to their callers.

Low-level clients (prover, JSON-RPC, bundler, GraphQL index) raise.
Services catch, log, and return `Err(...)`.

Version: 0.1.0
"""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Generic, TypeVar


T = TypeVar("T")
E = TypeVar("E", bound=Exception)


class OrgTrustError(Exception):
    """Base error for credential, attestation and account operations."""


class MissingContextError(OrgTrustError):
    """A required argument or field was absent."""

    def __init__(self, fields: Iterable[str]) -> None:
        self.fields = tuple(fields)
        super().__init__(f"Missing required context: {', '.join(self.fields)}")


class ExternalServiceError(OrgTrustError):
    """The prover, chain node, bundler or index rejected or failed a call."""

    def __init__(
        self,
        service: str,
        detail: str,
        status_code: int | None = None,
    ) -> None:
        self.service = service
        self.detail = detail
        self.status_code = status_code
        suffix = f" (status {status_code})" if status_code is not None else ""
        super().__init__(f"{service}: {detail}{suffix}")


class DelegationChainError(OrgTrustError):
    """A delegation chain does not authorize the requested execution."""


class AccountNotFoundError(OrgTrustError):
    """Salt discovery exhausted its candidates without a valid account."""


# =============================================================================
# Result
# =============================================================================


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful result."""

    value: T

    @property
    def is_ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err(Generic[E]):
    """Failed result carrying the error instead of raising it."""

    error: E

    @property
    def is_ok(self) -> bool:
        return False

    def unwrap(self):
        raise self.error


Result = Ok[T] | Err[OrgTrustError]
