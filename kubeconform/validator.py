"""Validation of Kubernetes resources against JSON schemas found in schema registries."""

from __future__ import annotations

import json
import re
import threading
from dataclasses import dataclass, field
from enum import IntEnum
from typing import IO, Any, Iterable

import jsonschema
import yaml
from jsonschema.exceptions import SchemaError

from .cache import CacheMissError, InMemoryCache
from .loader import NonJSONResponseError, NotFoundError
from .registry import DEFAULT_SCHEMA_LOCATION, new_registry
from .resource import Resource, Signature, SignatureError, from_stream


class Status(IntEnum):
    """The outcome of validating one resource."""

    ERROR = 1
    SKIPPED = 2
    VALID = 3
    INVALID = 4
    EMPTY = 5


@dataclass
class ValidationError(Exception):
    """One schema violation, located by a JSON pointer into the resource."""

    path: str
    msg: str

    def __str__(self) -> str:
        return self.msg

    def as_dict(self) -> dict[str, str]:
        """Return the error as a ``{"path", "msg"}`` mapping."""
        return {"path": self.path, "msg": self.msg}


@dataclass
class Result:
    """The result of validating one resource."""

    resource: Resource
    status: Status
    err: BaseException | None = None
    validation_errors: list[ValidationError] = field(default_factory=list)


@dataclass
class Opts:
    """Options for a Validator."""

    cache: str = ""
    debug: bool = False
    skip_tls: bool = False
    skip_kinds: set[str] = field(default_factory=set)
    reject_kinds: set[str] = field(default_factory=set)
    kubernetes_version: str = "master"
    strict: bool = False
    ignore_missing_schemas: bool = False


# --- YAML decoding, shaped like a YAML-to-JSON conversion ---------------------

_TIMESTAMP_TAG = "tag:yaml.org,2002:timestamp"


def _json_key(key: Any) -> str:
    if key is None:
        return "null"
    if isinstance(key, bool):
        return "true" if key else "false"
    return str(key)


class _YAMLLoader(yaml.SafeLoader):
    strict = False


_YAMLLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != _TIMESTAMP_TAG]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def _construct_mapping(loader: _YAMLLoader, node: yaml.MappingNode) -> dict[str, Any]:
    loader.flatten_mapping(node)
    result: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = _json_key(loader.construct_object(key_node, deep=True))
        if loader.strict and key in result:
            raise yaml.constructor.ConstructorError(
                problem=f'key "{key}" already set in map', problem_mark=key_node.start_mark
            )
        result[key] = loader.construct_object(value_node, deep=True)
    return result


_YAMLLoader.add_constructor("tag:yaml.org,2002:map", _construct_mapping)


class _StrictYAMLLoader(_YAMLLoader):
    strict = True


def _unmarshal(data: bytes, strict: bool) -> Any:
    return yaml.load(data, Loader=_StrictYAMLLoader if strict else _YAMLLoader)


# --- duration format -------------------------------------------------------------

_GO_DURATION = re.compile(r"[-+]?(?:(?:\d+\.?\d*|\.\d+)(?:ns|us|µs|μs|ms|s|m|h))+")
_GO_ZERO = re.compile(r"[-+]?0")


def validate_duration(value: Any) -> None:
    """Check a duration in Go (``1h30m``) or ISO 8601 (``PT1H30M``) form; raise ValueError if invalid."""
    if not isinstance(value, str):
        return
    if _GO_DURATION.fullmatch(value) or _GO_ZERO.fullmatch(value):
        return

    if not value.startswith("P"):
        raise ValueError("must start with P")
    s = value[1:]
    if not s:
        raise ValueError("nothing after P")

    if s.endswith("W"):
        weeks = s[:-1]
        if not weeks:
            raise ValueError("no number in week")
        if not all("0" <= ch <= "9" for ch in weeks):
            raise ValueError("invalid week")
        return

    all_units = ("YMD", "HMS")
    for i, part in enumerate(s.split("T")):
        if i != 0 and part == "":
            raise ValueError("no time elements")
        if i >= len(all_units):
            raise ValueError("more than one T")
        units = all_units[i]
        while part:
            digits = len(part) - len(part.lstrip("0123456789"))
            if digits == 0:
                raise ValueError("missing number")
            part = part[digits:]
            if not part:
                raise ValueError("missing unit")
            unit = part[0]
            j = units.find(unit)
            if j == -1:
                if unit in all_units[i]:
                    raise ValueError(f"unit '{unit}' out of order")
                raise ValueError(f"invalid unit '{unit}'")
            units = units[j + 1:]
            part = part[1:]


_FORMAT_CHECKER = jsonschema.FormatChecker()


@_FORMAT_CHECKER.checks("duration", raises=ValueError)
def _check_duration(instance: Any) -> bool:
    validate_duration(instance)
    return True


# --- schema retrieval --------------------------------------------------------------


def is_schema_for_kind(schema: Any, expected_kind: str) -> bool:
    """Tell whether a schema (or compiled validator) describes ``expected_kind``; True when it does not say."""
    if schema is None:
        return True
    document = getattr(schema, "schema", schema)
    if not isinstance(document, dict):
        return True
    properties = document.get("properties")
    if not isinstance(properties, dict):
        return True
    kind_prop = properties.get("kind")
    if not isinstance(kind_prop, dict):
        return True
    enum = kind_prop.get("enum")
    if isinstance(enum, list) and enum and isinstance(enum[0], str):
        return enum[0] == expected_kind
    const = kind_prop.get("const")
    if isinstance(const, str):
        return const == expected_kind
    return True


def _compile(document: Any) -> Any:
    if not isinstance(document, (dict, bool)):
        return None
    cls = jsonschema.validators.validator_for(document, default=jsonschema.Draft4Validator)
    try:
        cls.check_schema(document)
    except SchemaError:
        return None
    return cls(document, format_checker=_FORMAT_CHECKER)


def download_schema(registries: Iterable[Any], kind: str, version: str, k8s_version: str) -> Any:
    """Return a compiled validator for the first registry holding a schema for ``kind``, or None."""
    for registry in registries:
        try:
            _, document = registry.download_schema(kind, version, k8s_version)
        except (NotFoundError, NonJSONResponseError):
            continue
        compiled = _compile(document)
        if compiled is not None and is_schema_for_kind(compiled, kind):
            return compiled
    return None


# --- validation error reporting ----------------------------------------------------

_KEYWORD_ORDER = [
    "$ref", "type", "const", "enum", "format",
    "minimum", "maximum", "exclusiveMinimum", "exclusiveMaximum", "multipleOf",
    "minLength", "maxLength", "pattern",
    "minItems", "maxItems", "uniqueItems", "items", "additionalItems", "contains",
    "maxProperties", "minProperties", "required", "dependencies",
    "properties", "patternProperties", "additionalProperties", "propertyNames",
    "not", "allOf", "anyOf", "oneOf", "if",
]
_PRIORITY = {keyword: i for i, keyword in enumerate(_KEYWORD_ORDER)}


def _instance_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "integer" if value.is_integer() else "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _bound(error: Any, op: str, exclusive_op: str, exclusive_key: str) -> str:
    exclusive = isinstance(error.schema, dict) and error.schema.get(exclusive_key) is True
    return f"must be {exclusive_op if exclusive else op} {error.validator_value} but found {error.instance}"


def _message(error: Any) -> str:
    keyword, expected, instance = error.validator, error.validator_value, error.instance
    if keyword == "type":
        wanted = expected if isinstance(expected, list) else [expected]
        return f"got {_instance_type(instance)}, want {' or '.join(wanted)}"
    if keyword == "required":
        missing = [p for p in expected if isinstance(instance, dict) and p not in instance]
        quoted = ", ".join(f"'{p}'" for p in missing)
        return f"missing property {quoted}" if len(missing) == 1 else f"missing properties {quoted}"
    if keyword == "format":
        msg = f"'{instance}' is not valid {expected}"
        return f"{msg}: {error.cause}" if error.cause is not None else msg
    if keyword == "additionalProperties" and isinstance(instance, dict) and isinstance(error.schema, dict):
        props = error.schema.get("properties", {})
        patterns = error.schema.get("patternProperties", {})
        extras = [
            k for k in instance
            if k not in props and not any(re.search(p, k) for p in patterns)
        ]
        return "additional properties " + ", ".join(f"'{k}'" for k in extras) + " not allowed"
    if keyword == "enum":
        return "value must be one of " + ", ".join(json.dumps(v) for v in expected)
    if keyword == "const":
        return f"value must be {json.dumps(expected)}"
    if keyword == "minimum":
        return _bound(error, ">=", ">", "exclusiveMinimum")
    if keyword == "maximum":
        return _bound(error, "<=", "<", "exclusiveMaximum")
    if keyword == "exclusiveMinimum":
        return f"must be > {expected} but found {instance}"
    if keyword == "exclusiveMaximum":
        return f"must be < {expected} but found {instance}"
    if keyword == "pattern":
        return f"'{instance}' does not match pattern '{expected}'"
    if keyword == "multipleOf":
        return f"{instance} not multipleOf {expected}"
    if keyword in ("minLength", "maxLength", "minItems", "maxItems", "minProperties", "maxProperties"):
        return f"{keyword}: got {len(instance)}, want {expected}"
    return error.message


def _validation_errors(compiled: Any, instance: Any) -> list[ValidationError]:
    def priority(error: Any) -> int:
        top = error.relative_schema_path[0] if error.relative_schema_path else None
        return _PRIORITY.get(top, len(_PRIORITY))

    found: list[ValidationError] = []
    seen_required: set[tuple] = set()
    for error in sorted(compiled.iter_errors(instance), key=priority):
        path = "".join(f"/{part}" for part in error.absolute_path)
        if error.validator == "required":
            marker = (tuple(error.absolute_path), tuple(error.absolute_schema_path))
            if marker in seen_required:
                continue
            seen_required.add(marker)
        found.append(ValidationError(path=path, msg=_message(error)))
    return found


def _cache_key(kind: str, version: str, k8s_version: str) -> str:
    return f"{kind}-{version}-{k8s_version}"


class Validator:
    """Validates Kubernetes resources against schemas from a list of registries."""

    def __init__(
        self,
        schema_locations: Iterable[str] | None = None,
        opts: Opts | None = None,
        *,
        registries: Iterable[Any] | None = None,
    ) -> None:
        self.opts = opts if opts is not None else Opts()
        if not self.opts.kubernetes_version:
            self.opts.kubernetes_version = "master"
        if self.opts.skip_kinds is None:
            self.opts.skip_kinds = set()
        if self.opts.reject_kinds is None:
            self.opts.reject_kinds = set()

        if registries is not None:
            self.registries = list(registries)
        else:
            locations = list(schema_locations or []) or [DEFAULT_SCHEMA_LOCATION]
            self.registries = [
                new_registry(location, self.opts.cache, self.opts.strict, self.opts.skip_tls, self.opts.debug)
                for location in locations
            ]
        self._schemas = InMemoryCache()

    def _listed(self, kinds: set[str], sig: Signature) -> bool:
        return sig.group_version_kind() in kinds or sig.kind in kinds

    def _schema_for(self, sig: Signature) -> Any:
        key = _cache_key(sig.kind, sig.version, self.opts.kubernetes_version)
        try:
            return self._schemas.get(key)
        except CacheMissError:
            pass
        compiled = download_schema(self.registries, sig.kind, sig.version, self.opts.kubernetes_version)
        self._schemas.set(key, compiled)
        return compiled

    def validate_resource(self, res: Resource) -> Result:
        """Validate a single resource."""
        if not res.data:
            return Result(resource=res, status=Status.EMPTY)

        try:
            document = _unmarshal(res.data, self.opts.strict)
        except yaml.YAMLError as err:
            return Result(resource=res, status=Status.ERROR, err=ValueError(f"error unmarshalling resource: {err}"))
        if document is None:
            return Result(resource=res, status=Status.EMPTY)
        if not isinstance(document, dict):
            return Result(
                resource=res,
                status=Status.ERROR,
                err=ValueError(
                    f"error unmarshalling resource: cannot unmarshal {_instance_type(document)} into an object"
                ),
            )

        try:
            sig = res.signature_from_map(document)
        except SignatureError as err:
            return Result(resource=res, status=Status.ERROR, err=ValueError(f"error while parsing: {err}"))

        if self._listed(self.opts.skip_kinds, sig):
            return Result(resource=res, status=Status.SKIPPED)
        if self._listed(self.opts.reject_kinds, sig):
            return Result(resource=res, status=Status.ERROR, err=ValueError(f"prohibited resource kind {sig.kind}"))

        try:
            compiled = self._schema_for(sig)
        except Exception as err:  # a registry failed in a way that is not "no schema here"
            return Result(resource=res, status=Status.ERROR, err=err)

        if compiled is None:
            if self.opts.ignore_missing_schemas:
                return Result(resource=res, status=Status.SKIPPED)
            return Result(resource=res, status=Status.ERROR, err=ValueError(f"could not find schema for {sig.kind}"))

        errors = _validation_errors(compiled, document)
        if errors:
            location = compiled.schema.get("$id", "") if isinstance(compiled.schema, dict) else ""
            detail = f"jsonschema validation failed with '{location}#'" + "".join(
                f"\n- at '{e.path}': {e.msg}" for e in errors
            )
            message = "problem validating schema. Check JSON formatting: " + detail.replace("\n", " ")
            return Result(resource=res, status=Status.INVALID, err=ValueError(message), validation_errors=errors)

        return Result(resource=res, status=Status.VALID)

    def validate(self, filename: str, stream: IO, cancel: threading.Event | None = None) -> list[Result]:
        """Validate every resource read from ``stream``, then close it."""
        try:
            return [self.validate_resource(res) for res in from_stream(filename, stream, cancel)]
        finally:
            stream.close()