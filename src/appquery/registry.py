"""Named operations the workflow engine invokes with structured input and output."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from appquery.errors import QueryError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Ok:
    """Successful result; fields are written to the output document."""

    fields: dict[str, Any] = field(default_factory=dict)

    def to_output(self) -> dict[str, Any]:
        return dict(self.fields)


@dataclass(frozen=True)
class SoftError:
    """Failure the calling workflow inspects through the output "err" field."""

    message: str

    def to_output(self) -> dict[str, Any]:
        return {"err": self.message}


OperationResult = Ok | SoftError
Handler = Callable[[Mapping[str, Any]], OperationResult]


class UnknownOperationError(QueryError):
    """No handler is registered under the requested name."""


class Registry:
    """Handlers grouped by provider name.

    Created once at startup and handed to whatever invokes operations.
    """

    def __init__(self) -> None:
        self._providers: dict[str, dict[str, Handler]] = {}

    def register(self, provider: str, handlers: Mapping[str, Handler]) -> None:
        if provider in self._providers:
            raise ValueError(f"provider {provider!r} is already registered")
        self._providers[provider] = dict(handlers)
        logger.debug("Registered provider %s: %s", provider, ", ".join(sorted(handlers)))

    def get(self, provider: str, operation: str) -> Handler:
        try:
            return self._providers[provider][operation]
        except KeyError:
            raise UnknownOperationError(f"operation {provider}.{operation} is not registered") from None

    def invoke(self, provider: str, operation: str, inputs: Mapping[str, Any]) -> dict[str, Any]:
        """Run an operation and return its output document.

        Hard failures propagate as QueryError.
        """
        result = self.get(provider, operation)(inputs)
        if isinstance(result, SoftError):
            logger.info("%s.%s failed: %s", provider, operation, result.message)
        return result.to_output()

    def operations(self) -> list[str]:
        return sorted(f"{p}.{op}" for p, handlers in self._providers.items() for op in handlers)
