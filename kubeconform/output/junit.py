"""JUnit XML report of validation results, one test suite per file."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import IO

from ..resource import Resource, Signature, SignatureError
from ..validator import Result, Status

_XML_ESCAPES = {
    '"': "&#34;",
    "'": "&#39;",
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    "\t": "&#x9;",
    "\n": "&#xA;",
    "\r": "&#xD;",
}


def _signature(res: Resource) -> Signature:
    try:
        return res.signature()
    except SignatureError as err:
        return err.signature


def _valid_xml_char(ch: str) -> bool:
    code = ord(ch)
    return (
        code in (0x9, 0xA, 0xD)
        or 0x20 <= code <= 0xD7FF
        or 0xE000 <= code <= 0xFFFD
        or 0x10000 <= code <= 0x10FFFF
    )


def _escape(value: object) -> str:
    return "".join(
        _XML_ESCAPES.get(ch, ch) if _valid_xml_char(ch) else "\ufffd" for ch in str(value)
    )


def _format_float(value: float) -> str:
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return repr(value)


def _attrs(pairs: list[tuple[str, object]]) -> str:
    return "".join(f' {name}="{_escape(value)}"' for name, value in pairs)


@dataclass
class _TestCase:
    name: str
    class_name: str
    skipped: bool = False
    error: str | None = None
    failures: list[str] = field(default_factory=list)

    def lines(self, indent: str) -> list[str]:
        opening = f'{indent}<testcase{_attrs([("name", self.name), ("classname", self.class_name), ("time", 0)])}>'
        children: list[str] = []
        inner = indent + "  "
        if self.skipped:
            children.append(f'{inner}<skipped message=""></skipped>')
        if self.error is not None:
            children.append(f'{inner}<error{_attrs([("message", self.error), ("type", "")])}></error>')
        for message in self.failures:
            children.append(f'{inner}<failure{_attrs([("message", message), ("type", "")])}></failure>')
        if not children:
            return [opening + "</testcase>"]
        return [opening, *children, f"{indent}</testcase>"]


@dataclass
class _TestSuite:
    name: str
    id: int
    cases: list[_TestCase] = field(default_factory=list)
    tests: int = 0
    failures: int = 0
    errors: int = 0
    disabled: int = 0
    skipped: int = 0

    def lines(self, indent: str) -> list[str]:
        opening = indent + "<testsuite" + _attrs([
            ("name", self.name),
            ("id", self.id),
            ("tests", self.tests),
            ("failures", self.failures),
            ("errors", self.errors),
            ("disabled", self.disabled),
            ("skipped", self.skipped),
        ]) + ">"
        if not self.cases:
            return [opening + "</testsuite>"]
        body = [line for case in self.cases for line in case.lines(indent + "  ")]
        return [opening, *body, f"{indent}</testsuite>"]


class JUnitOutput:
    """Collects results and prints them as a JUnit XML report on flush."""

    def __init__(self, stream: IO[str], with_summary: bool = False, is_stdin: bool = False, verbose: bool = False) -> None:
        self.stream = stream
        self.with_summary = with_summary
        self.verbose = verbose
        self._suites: dict[str, _TestSuite] = {}
        self._start = time.monotonic()

    def write(self, result: Result) -> None:
        """Add a result to the report."""
        path = result.resource.path
        suite = self._suites.get(path)
        if suite is None:
            suite = _TestSuite(name=path, id=len(self._suites) + 1)
            self._suites[path] = suite

        sig = _signature(result.resource)
        object_name = f"{sig.namespace}/{sig.name}" if sig.namespace else sig.name
        case = _TestCase(name=object_name, class_name=f"{sig.kind}@{sig.version}")
        message = str(result.err) if result.err is not None else ""

        if result.status == Status.EMPTY:
            return
        if result.status == Status.INVALID:
            suite.failures += 1
            case.failures.append(message)
        elif result.status == Status.ERROR:
            suite.errors += 1
            case.error = message
        elif result.status == Status.SKIPPED:
            case.skipped = True
            suite.skipped += 1

        suite.tests += 1
        suite.cases.append(case)

    def flush(self) -> None:
        """Print the report as XML."""
        runtime = time.monotonic() - self._start
        valid = invalid = errors = skipped = 0
        for suite in self._suites.values():
            for case in suite.cases:
                if case.error is not None:
                    errors += 1
                elif case.skipped:
                    skipped += 1
                elif case.failures:
                    invalid += 1
                else:
                    valid += 1

        opening = "<testsuites" + _attrs([
            ("name", "kubeconform"),
            ("time", _format_float(runtime)),
            ("tests", valid + invalid + errors + skipped),
            ("failures", invalid),
            ("disabled", skipped),
            ("errors", errors),
        ]) + ">"
        if not self._suites:
            content = opening + "</testsuites>"
        else:
            body = [line for suite in self._suites.values() for line in suite.lines("  ")]
            content = "\n".join([opening, *body, "</testsuites>"])
        self.stream.write(content + "\n")