"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

This module implements the OperationRegistry: a static catalog of named
operations with bounded-concurrency async execution and call records.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from .base import Operation
from .errors import (
    OperationAlreadyRegisteredError,
    OperationNotFoundError,
    OperationTimeoutError,
)


@dataclass(frozen=True, slots=True)
class OperationCallRecord:
    name: str
    started_at_s: float
    ended_at_s: float
    ok: bool
    error: str | None = None


class OperationRegistry:
    """
    Stores operations by name and provides safe async execution with:
      - concurrency limiting
      - registry-level default timeout
      - per-call records for health reporting
    """

    def __init__(
        self,
        *,
        max_concurrency: int = 32,
        default_timeout: float | None = None,
        max_records: int = 1000,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")

        self._operations: dict[str, Operation[Any]] = {}
        self._sem = asyncio.Semaphore(max_concurrency)
        self._default_timeout = default_timeout
        self._records: list[OperationCallRecord] = []
        self._max_records = max_records
        self._call_count = 0

    # ''''''''''''
    # Registration
    # ''''''''''''

    def register(self, op: Operation[Any], *, overwrite: bool = False) -> None:
        name = op.spec.name
        if not overwrite and name in self._operations:
            raise OperationAlreadyRegisteredError(f"Operation already registered: {name}")
        self._operations[name] = op

    def register_many(self, ops: Iterable[Operation[Any]], *, overwrite: bool = False) -> None:
        for op in ops:
            self.register(op, overwrite=overwrite)

    def unregister(self, name: str) -> None:
        self._operations.pop(name, None)

    def get(self, name: str) -> Operation[Any]:
        try:
            return self._operations[name]
        except KeyError as e:
            raise OperationNotFoundError(f"Unknown tool: {name}") from e

    def list(self) -> list[Operation[Any]]:
        return list(self._operations.values())

    def names(self) -> list[str]:
        return list(self._operations.keys())

    def has(self, name: str) -> bool:
        return name in self._operations

    # '''''''''
    # Execution
    # '''''''''

    async def call(
        self,
        name: str,
        raw_args: Mapping[str, Any] | None,
        *,
        timeout: float | None = None,
    ) -> Any:
        """
        Execute a registered operation by name.

        Timeout precedence:
          1) call(timeout=...)
          2) operation.default_timeout
          3) registry default_timeout
        """
        op = self.get(name)
        started = time.time()

        async with self._sem:
            effective_timeout = (
                timeout
                if timeout is not None
                else (op.default_timeout if op.default_timeout is not None else self._default_timeout)
            )
            try:
                if effective_timeout is not None:
                    try:
                        result = await asyncio.wait_for(op.invoke(raw_args), timeout=effective_timeout)
                    except asyncio.TimeoutError as e:
                        raise OperationTimeoutError(
                            f"Operation '{name}' timed out after {effective_timeout} seconds."
                        ) from e
                else:
                    result = await op.invoke(raw_args)
            except Exception as e:
                self._record(OperationCallRecord(name, started, time.time(), False, str(e)))
                raise

        self._record(OperationCallRecord(name, started, time.time(), True))
        return result

    def records(self) -> list[OperationCallRecord]:
        return list(self._records)

    @property
    def call_count(self) -> int:
        return self._call_count

    def _record(self, record: OperationCallRecord) -> None:
        self._call_count += 1
        self._records.append(record)
        if len(self._records) > self._max_records:
            del self._records[: len(self._records) - self._max_records]
