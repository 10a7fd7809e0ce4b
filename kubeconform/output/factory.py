"""Selection of a report writer by output format name."""

from __future__ import annotations

from typing import IO, Any

from .jsonout import JSONOutput
from .junit import JUnitOutput
from .pretty import PrettyOutput
from .tap import TAPOutput
from .text import TextOutput

_FORMATS = {
    "json": JSONOutput,
    "junit": JUnitOutput,
    "pretty": PrettyOutput,
    "tap": TAPOutput,
    "text": TextOutput,
}


def new_output(stream: IO[str], output_format: str, print_summary: bool, is_stdin: bool, verbose: bool) -> Any:
    """Return the report writer for ``output_format``; raise ValueError for an unknown format."""
    try:
        cls = _FORMATS[output_format]
    except KeyError:
        raise ValueError("'outputFormat' must be 'json', 'junit', 'pretty', 'tap' or 'text'") from None
    return cls(stream, print_summary, is_stdin, verbose)