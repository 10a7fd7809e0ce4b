"""JSON report of validation results, written in one document when flushed."""

from __future__ import annotations

import json
from typing import IO, Any

from ..resource import Resource, Signature, SignatureError
from ..validator import Result, Status

_STATUS_NAMES = {
    Status.VALID: "statusValid",
    Status.INVALID: "statusInvalid",
    Status.ERROR: "statusError",
    Status.SKIPPED: "statusSkipped",
}

_HTML_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def _signature(res: Resource) -> Signature:
    try:
        return res.signature()
    except SignatureError as err:
        return err.signature


def _dumps(obj: Any) -> str:
    text = json.dumps(obj, indent=2, ensure_ascii=False)
    for char, escaped in _HTML_ESCAPES.items():
        text = text.replace(char, escaped)
    return text


class JSONOutput:
    """Collects results and prints them as a JSON document on flush."""

    def __init__(self, stream: IO[str], with_summary: bool = False, is_stdin: bool = False, verbose: bool = False) -> None:
        self.stream = stream
        self.with_summary = with_summary
        self.verbose = verbose
        self._results: list[dict[str, Any]] = []
        self._counts = {Status.VALID: 0, Status.INVALID: 0, Status.ERROR: 0, Status.SKIPPED: 0}

    def write(self, result: Result) -> None:
        """Record a result; nothing is printed until flush."""
        status = result.status
        msg = ""
        if status in (Status.INVALID, Status.ERROR) and result.err is not None:
            msg = str(result.err)
        if status in self._counts:
            self._counts[status] += 1

        if self.verbose or status not in (Status.VALID, Status.SKIPPED, Status.EMPTY):
            sig = _signature(result.resource)
            entry: dict[str, Any] = {
                "filename": result.resource.path,
                "kind": sig.kind,
                "name": sig.name,
                "version": sig.version,
                "status": _STATUS_NAMES.get(status, ""),
                "msg": msg,
            }
            if result.validation_errors:
                entry["validationErrors"] = [e.as_dict() for e in result.validation_errors]
            self._results.append(entry)

    def flush(self) -> None:
        """Print the collected results, with a summary if requested."""
        document: dict[str, Any] = {"resources": self._results}
        if self.with_summary:
            document["summary"] = {
                "valid": self._counts[Status.VALID],
                "invalid": self._counts[Status.INVALID],
                "errors": self._counts[Status.ERROR],
                "skipped": self._counts[Status.SKIPPED],
            }
        self.stream.write(_dumps(document) + "\n")