"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Operation capability: a name, a pydantic input contract and an async body.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from ..errors import HubValidationError

ArgsT = TypeVar("ArgsT", bound=BaseModel)
OperationFn = Callable[[ArgsT], Awaitable[Any]]


@dataclass(frozen=True, slots=True)
class OperationSpec:
    name: str
    description: str
    args_model: type[BaseModel]


class Operation(Generic[ArgsT]):
    """
    One registered operation.

    Raw arguments are validated against ``spec.args_model`` before the body
    runs, so malformed input never reaches the network.
    """

    def __init__(
        self,
        spec: OperationSpec,
        fn: OperationFn,
        *,
        default_timeout: float | None = None,
    ) -> None:
        self.spec = spec
        self.default_timeout = default_timeout
        self._fn = fn

    def input_schema(self) -> dict[str, Any]:
        """JSON schema advertised to clients in ``tools/list``."""
        schema = self.spec.args_model.model_json_schema()
        schema.pop("title", None)
        schema.setdefault("type", "object")
        schema.setdefault("properties", {})
        return schema

    def validate(self, raw_args: Mapping[str, Any] | None) -> ArgsT:
        try:
            return self.spec.args_model.model_validate(dict(raw_args or {}))  # type: ignore[return-value]
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
                for err in e.errors()
            )
            raise HubValidationError(
                f"Invalid arguments for '{self.spec.name}': {problems}"
            ) from e

    async def invoke(self, raw_args: Mapping[str, Any] | None) -> Any:
        args = self.validate(raw_args)
        return await self._fn(args)


def operation(
    *,
    args_model: type[BaseModel],
    name: str | None = None,
    description: str | None = None,
    default_timeout: float | None = None,
) -> Callable[[OperationFn], Operation[Any]]:
    """Decorator turning an async ``fn(args)`` into an ``Operation``."""

    def wrap(fn: OperationFn) -> Operation[Any]:
        spec = OperationSpec(
            name=name or fn.__name__,
            description=description or (fn.__doc__ or "").strip(),
            args_model=args_model,
        )
        return Operation(spec, fn, default_timeout=default_timeout)

    return wrap
