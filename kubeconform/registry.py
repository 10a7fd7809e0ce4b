"""Schema registries: locations, local or remote, that hold JSON schemas for Kubernetes kinds."""

from __future__ import annotations

import os
import re
from typing import Any

from .cache import OnDiskCache
from .loader import FileLoader, HTTPURLLoader

DEFAULT_SCHEMA_LOCATION = (
    "https://raw.githubusercontent.com/yannh/kubernetes-json-schema/master/"
    "{{ .NormalizedKubernetesVersion }}-standalone{{ .StrictSuffix }}/"
    "{{ .ResourceKind }}{{ .KindSuffix }}.json"
)

_DEFAULT_PATH_SUFFIX = (
    "/{{ .NormalizedKubernetesVersion }}-standalone{{ .StrictSuffix }}"
    "/{{ .ResourceKind }}{{ .KindSuffix }}.json"
)

_FIELD = re.compile(r"\.([A-Za-z_][A-Za-z0-9_]*)")


class TemplateError(ValueError):
    """A schema location template cannot be rendered."""


def _evaluate(action: str, data: dict[str, str]) -> str:
    match = _FIELD.fullmatch(action)
    if match is None:
        if not action:
            raise TemplateError("missing value for command")
        raise TemplateError(f"unsupported template action {action!r}")
    name = match.group(1)
    if name not in data:
        raise TemplateError(f"can't evaluate field {name}")
    return data[name]


def _render(tpl: str, data: dict[str, str]) -> str:
    parts: list[str] = []
    pos = 0
    while True:
        start = tpl.find("{{", pos)
        if start < 0:
            parts.append(tpl[pos:])
            return "".join(parts)
        end = tpl.find("}}", start + 2)
        if end < 0:
            raise TemplateError("unclosed action")
        text = tpl[pos:start]
        inner = tpl[start + 2:end]
        if inner[:2] in ("- ", "-\t", "-\n"):
            text = text.rstrip()
            inner = inner[1:]
        trim_right = inner[-2:] in (" -", "\t-", "\n-")
        if trim_right:
            inner = inner[:-1]
        parts.append(text)
        parts.append(_evaluate(inner.strip(), data))
        pos = end + 2
        if trim_right:
            while pos < len(tpl) and tpl[pos].isspace():
                pos += 1


def schema_path(
    tpl: str,
    resource_kind: str,
    resource_api_version: str,
    k8s_version: str,
    strict: bool,
) -> str:
    """Render the location template for a resource kind and API version."""
    normalised_version = k8s_version if k8s_version == "master" else "v" + k8s_version
    group_parts = resource_api_version.split("/")
    version_parts = group_parts[0].split(".")

    kind_suffix = "-" + version_parts[0].lower()
    if len(group_parts) > 1:
        kind_suffix += "-" + group_parts[1].lower()

    return _render(
        tpl,
        {
            "NormalizedKubernetesVersion": normalised_version,
            "StrictSuffix": "-strict" if strict else "",
            "ResourceKind": resource_kind.lower(),
            "ResourceAPIVersion": group_parts[-1],
            "Group": group_parts[0],
            "KindSuffix": kind_suffix,
        },
    )


class _TemplateRegistry:
    def __init__(self, schema_path_template: str, loader: Any, strict: bool = False, debug: bool = False) -> None:
        self.schema_path_template = schema_path_template
        self.loader = loader
        self.strict = strict
        self.debug = debug


class HTTPRegistry(_TemplateRegistry):
    """Registry that downloads schemas from an HTTP server."""

    def download_schema(self, resource_kind: str, resource_api_version: str, k8s_version: str) -> tuple[str, Any]:
        """Return the schema URL and the parsed schema found there."""
        url = schema_path(self.schema_path_template, resource_kind, resource_api_version, k8s_version, self.strict)
        return url, self.loader.load(url)


class LocalRegistry(_TemplateRegistry):
    """Registry that serves schemas from local files."""

    def download_schema(self, resource_kind: str, resource_api_version: str, k8s_version: str) -> tuple[str, Any]:
        """Return the schema path and the parsed schema; the schema is None if the path cannot be rendered."""
        try:
            schema_file = schema_path(
                self.schema_path_template, resource_kind, resource_api_version, k8s_version, self.strict
            )
        except TemplateError:
            return "", None
        return schema_file, self.loader.load(schema_file)


def new_registry(
    schema_location: str,
    cache_folder: str,
    strict: bool,
    skip_tls: bool,
    debug: bool,
) -> HTTPRegistry | LocalRegistry:
    """Build the registry matching a schema location."""
    if schema_location == "default":
        schema_location = DEFAULT_SCHEMA_LOCATION
    elif not schema_location.endswith("json"):
        schema_location += _DEFAULT_PATH_SUFFIX

    try:
        schema_path(schema_location, "Deployment", "v1", "master", True)
    except TemplateError as err:
        raise TemplateError(f"failed initialising schema location registry: {err}") from err

    cache = None
    if cache_folder:
        if not os.path.exists(cache_folder):
            raise FileNotFoundError(f"failed opening cache folder {cache_folder}: no such file or directory")
        if not os.path.isdir(cache_folder):
            raise NotADirectoryError(f"cache folder {cache_folder} is not a directory")
        cache = OnDiskCache(cache_folder)

    if schema_location.startswith("http"):
        return HTTPRegistry(schema_location, HTTPURLLoader(skip_tls, cache), strict, debug)
    return LocalRegistry(schema_location, FileLoader(), strict, debug)