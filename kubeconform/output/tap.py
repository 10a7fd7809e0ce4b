"""TAP (Test Anything Protocol) report of validation results."""

from __future__ import annotations

from typing import IO

from ..resource import Resource, Signature, SignatureError
from ..validator import Result, Status


def _signature(res: Resource) -> Signature:
    try:
        return res.signature()
    except SignatureError as err:
        return err.signature


class TAPOutput:
    """Prints one TAP line per result as it arrives, and the plan line on flush."""

    def __init__(self, stream: IO[str], with_summary: bool = False, is_stdin: bool = False, verbose: bool = False) -> None:
        self.stream = stream
        self.with_summary = with_summary
        self.verbose = verbose
        self._index = 0

    def write(self, result: Result) -> None:
        """Print the TAP line for a result."""
        self._index += 1
        if self._index == 1:
            self.stream.write("TAP version 13\n")

        path = result.resource.path
        n = self._index
        status = result.status
        if status == Status.VALID:
            sig = _signature(result.resource)
            self.stream.write(f"ok {n} - {path} ({sig.qualified_name()})\n")
        elif status == Status.INVALID:
            sig = _signature(result.resource)
            self.stream.write(f"not ok {n} - {path} ({sig.qualified_name()}): {result.err}\n")
        elif status == Status.EMPTY:
            self.stream.write(f"ok {n} - {path} (empty)\n")
        elif status == Status.ERROR:
            self.stream.write(f"not ok {n} - {path}: {result.err}\n")
        elif status == Status.SKIPPED:
            sig = _signature(result.resource)
            self.stream.write(f"ok {n} - {path} ({sig.qualified_name()}) # skip\n")

    def flush(self) -> None:
        """Print the plan line with the number of results."""
        self.stream.write(f"1..{self._index}\n")