"""Command-line configuration."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_VERSION_RE = re.compile(r"(master|\d+\.\d+\.\d+)", re.ASCII)


class UsageError(ValueError):
    """The command line could not be parsed; ``output`` holds the message and usage text."""

    def __init__(self, message: str, output: str = "") -> None:
        super().__init__(message)
        self.output = output


@dataclass
class Config:
    """Runtime configuration."""

    cache: str = ""
    debug: bool = False
    exit_on_error: bool = False
    files: list[str] = field(default_factory=list)
    help: bool = False
    ignore_filename_patterns: list[str] = field(default_factory=list)
    ignore_missing_schemas: bool = False
    kubernetes_version: str = "master"
    number_of_workers: int = 4
    output_format: str = "text"
    reject_kinds: set[str] = field(default_factory=set)
    schema_locations: list[str] = field(default_factory=list)
    skip_kinds: set[str] = field(default_factory=set)
    skip_tls: bool = False
    strict: bool = False
    summary: bool = False
    verbose: bool = False
    version: bool = False


def parse_kubernetes_version(value: str) -> str:
    """Check a Kubernetes version: ``master`` or ``x.y.z``."""
    if not _VERSION_RE.fullmatch(value):
        raise ValueError(
            f'{value} is not a valid version. Valid values are "master" (default) '
            f'or full version x.y.z (e.g. "1.27.2")'
        )
    return value


def split_csv(csv_str: str) -> set[str]:
    """Split a comma-separated list into a set of non-empty, stripped values."""
    return {part.strip() for part in csv_str.split(",") if part.strip()}


# name -> (kind, attribute, type name shown in usage, default shown in usage, description)
_FLAGS: dict[str, tuple[str, str, str, str, str]] = {
    "kubernetes-version": ("version", "kubernetes_version", "value", "master", "version of Kubernetes to validate against, e.g.: 1.18.0"),
    "schema-location": ("list", "schema_locations", "value", "", "override schemas location search path (can be specified multiple times)"),
    "skip": ("str", "skip", "string", "", "comma-separated list of kinds or GVKs to ignore"),
    "reject": ("str", "reject", "string", "", "comma-separated list of kinds or GVKs to reject"),
    "debug": ("bool", "debug", "", "", "print debug information"),
    "exit-on-error": ("bool", "exit_on_error", "", "", "immediately stop execution when the first error is encountered"),
    "ignore-missing-schemas": ("bool", "ignore_missing_schemas", "", "", "skip files with missing schemas instead of failing"),
    "ignore-filename-pattern": ("list", "ignore_filename_patterns", "value", "", "regular expression specifying paths to ignore (can be specified multiple times)"),
    "summary": ("bool", "summary", "", "", "print a summary at the end (ignored for junit output)"),
    "n": ("int", "number_of_workers", "int", "4", "number of goroutines to run concurrently"),
    "strict": ("bool", "strict", "", "", "disallow additional properties not in schema or duplicated keys"),
    "output": ("str", "output_format", "string", '"text"', "output format - json, junit, pretty, tap, text"),
    "verbose": ("bool", "verbose", "", "", "print results for all resources (ignored for tap and junit output)"),
    "insecure-skip-tls-verify": ("bool", "skip_tls", "", "", "disable verification of the server's SSL certificate. This will make your HTTPS connections insecure"),
    "cache": ("str", "cache", "string", "", "cache schemas downloaded via HTTP to this folder"),
    "h": ("bool", "help", "", "", "show help information"),
    "v": ("bool", "version", "", "", "show version information"),
}

_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


def _usage(prog_name: str) -> str:
    lines = [f"Usage: {prog_name} [OPTION]... [FILE OR FOLDER]...\n"]
    for name in sorted(_FLAGS):
        _, _, type_name, default, desc = _FLAGS[name]
        line = f"  -{name}"
        if type_name:
            line += " " + type_name
        line += "\t" if len(line) <= 4 else "\n    \t"
        line += desc.replace("\n", "\n    \t")
        if default:
            line += f" (default {default})"
        lines.append(line + "\n")
    return "".join(lines)


def _parse_int(value: str) -> int:
    if re.fullmatch(r"[+-]?0[0-7]+", value):
        return int(value, 8)
    return int(value, 0)


def from_flags(prog_name: str, args: list[str]) -> tuple[Config, str]:
    """Parse command-line arguments into a Config and the text to show (usage for -h, else empty)."""
    cfg = Config()
    scratch = {"skip": "", "reject": ""}
    remaining = list(args)

    def fail(message: str) -> None:
        raise UsageError(message, f"{message}\n{_usage(prog_name)}")

    while remaining:
        arg = remaining[0]
        if len(arg) < 2 or arg[0] != "-":
            break
        dashes = 1
        if arg[1] == "-":
            dashes = 2
            if len(arg) == 2:
                remaining.pop(0)
                break
        name = arg[dashes:]
        if not name or name[0] in "-=":
            fail(f"bad flag syntax: {arg}")
        remaining.pop(0)
        value: str | None = None
        if "=" in name:
            name, value = name.split("=", 1)
        if name not in _FLAGS:
            if name == "help":
                fail("flag: help requested")
            fail(f"flag provided but not defined: -{name}")
        kind, attr, *_ = _FLAGS[name]

        if kind == "bool":
            if value is None:
                flag_value = True
            elif value in _TRUE:
                flag_value = True
            elif value in _FALSE:
                flag_value = False
            else:
                fail(f'invalid boolean value "{value}" for -{name}: parse error')
            setattr(cfg, attr, flag_value)
            continue

        if value is None:
            if not remaining:
                fail(f"flag needs an argument: -{name}")
            value = remaining.pop(0)
        if kind == "int":
            try:
                cfg.number_of_workers = _parse_int(value)
            except ValueError:
                fail(f'invalid value "{value}" for flag -{name}: parse error')
        elif kind == "version":
            try:
                cfg.kubernetes_version = parse_kubernetes_version(value)
            except ValueError as err:
                fail(f'invalid value "{value}" for flag -{name}: {err}')
        elif kind == "list":
            getattr(cfg, attr).append(value)
        elif attr in scratch:
            scratch[attr] = value
        else:
            setattr(cfg, attr, value)

    cfg.skip_kinds = split_csv(scratch["skip"])
    cfg.reject_kinds = split_csv(scratch["reject"])
    cfg.files = remaining
    return cfg, _usage(prog_name) if cfg.help else ""