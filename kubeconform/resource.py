"""Kubernetes resources: signatures, YAML document splitting and discovery in files and streams."""

from __future__ import annotations

import os
import re
import threading
from dataclasses import dataclass, field
from typing import IO, Any, Iterable, Iterator

import yaml

YAML_SEPARATOR = b"\n---"
MAX_DOCUMENT_SIZE = 256 * 1024 * 1024


class SignatureError(ValueError):
    """A resource's kind or API version could not be determined."""

    def __init__(self, message: str, signature: "Signature | None" = None) -> None:
        super().__init__(message)
        self.signature = signature if signature is not None else Signature()


class DiscoveryError(Exception):
    """An error raised while looking for resources under a path."""

    def __init__(self, path: str, err: BaseException | str) -> None:
        super().__init__(str(err))
        self.path = path
        self.err = err


@dataclass(frozen=True)
class Signature:
    """The key identifying a Kubernetes resource."""

    kind: str = ""
    version: str = ""
    namespace: str = ""
    name: str = ""

    def group_version_kind(self) -> str:
        """Return the ``version/kind`` encoding used on the command line."""
        return f"{self.version}/{self.kind}"

    def qualified_name(self) -> str:
        """Return ``version/kind/namespace/name``."""
        return f"{self.version}/{self.kind}/{self.namespace}/{self.name}"


def _lookup(mapping: dict, key: str) -> Any:
    if key in mapping:
        return mapping[key]
    lowered = key.lower()
    for k, value in mapping.items():
        if isinstance(k, str) and k.lower() == lowered:
            return value
    return None


def _string_field(mapping: dict, key: str, errors: list[str]) -> str:
    value = _lookup(mapping, key)
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    errors.append(f"cannot unmarshal {type(value).__name__} into field {key} of type string")
    return ""


def _parse_signature(data: bytes) -> tuple[Signature, str | None]:
    try:
        doc = yaml.safe_load(data) if data else None
    except yaml.YAMLError as err:
        return Signature(), f"error converting YAML to JSON: {err}"
    if doc is None:
        doc = {}
    if not isinstance(doc, dict):
        return Signature(), f"cannot unmarshal {type(doc).__name__} into an object"

    errors: list[str] = []
    api_version = _string_field(doc, "apiVersion", errors)
    kind = _string_field(doc, "kind", errors)
    name = namespace = generate_name = ""
    metadata = _lookup(doc, "metadata")
    if isinstance(metadata, dict):
        name = _string_field(metadata, "name", errors)
        namespace = _string_field(metadata, "namespace", errors)
        generate_name = _string_field(metadata, "generateName", errors)
    elif metadata is not None:
        errors.append("cannot unmarshal metadata into an object")
    if generate_name:
        name = generate_name + "{{ generateName }}"

    sig = Signature(kind=kind, version=api_version, namespace=namespace, name=name)
    if errors:
        return sig, errors[0]
    if not kind:
        return sig, "missing 'kind' key"
    if not api_version:
        return sig, "missing 'apiVersion' key"
    return sig, None


@dataclass
class Resource:
    """A Kubernetes resource found within a file."""

    path: str = ""
    data: bytes = b""
    _sig: Signature | None = field(default=None, init=False, repr=False, compare=False)
    _sig_error: str | None = field(default=None, init=False, repr=False, compare=False)

    def signature(self) -> Signature:
        """Return the resource's signature, raising SignatureError if kind or apiVersion is missing."""
        if self._sig is None:
            self._sig, self._sig_error = _parse_signature(self.data)
        if self._sig_error is not None:
            raise SignatureError(self._sig_error, self._sig)
        return self._sig

    def signature_from_map(self, m: dict) -> Signature:
        """Compute the signature from an already parsed document."""
        if self._sig is not None:
            if self._sig_error is not None:
                raise SignatureError(self._sig_error, self._sig)
            return self._sig

        kind = m.get("kind")
        if not isinstance(kind, str):
            self._sig_error = "missing 'kind' key"
            raise SignatureError(self._sig_error)
        api_version = m.get("apiVersion")
        if not isinstance(api_version, str):
            self._sig_error = "missing 'apiVersion' key"
            raise SignatureError(self._sig_error)

        name = namespace = ""
        metadata = m.get("metadata")
        if isinstance(metadata, dict):
            name = metadata.get("name") if isinstance(metadata.get("name"), str) else ""
            namespace = metadata.get("namespace") if isinstance(metadata.get("namespace"), str) else ""
            if isinstance(metadata.get("generateName"), str):
                name = metadata["generateName"] + "{{ generateName }}"

        self._sig = Signature(kind=kind, version=api_version, namespace=namespace, name=name)
        self._sig_error = None
        return self._sig

    def resources(self) -> list["Resource"]:
        """Return the items of a List resource, or this resource alone."""
        try:
            sig = self.signature()
        except SignatureError:
            return [self]
        if sig.kind.lower() != "list":
            return [self]

        try:
            doc = yaml.safe_load(self.data)
        except yaml.YAMLError:
            doc = None
        items = _lookup(doc, "items") if isinstance(doc, dict) else None
        if not isinstance(items, list):
            items = []
        return [
            Resource(path=self.path, data=yaml.safe_dump(item, default_flow_style=False).encode("utf-8"))
            for item in items
        ]


def split_yaml_documents(data: bytes) -> Iterator[bytes]:
    """Split a YAML stream into its documents on ``\\n---`` separator lines."""
    sep = len(YAML_SEPARATOR)
    rest = data
    while rest:
        i = rest.find(YAML_SEPARATOR)
        if i < 0:
            token, rest = rest, b""
        else:
            after = rest[i + sep:]
            if not after:
                token, rest = rest[:i], b""
            else:
                j = after.find(b"\n")
                if j < 0:
                    return
                token, rest = rest[:i], after[j + 1:]
        if len(token) > MAX_DOCUMENT_SIZE:
            raise ValueError("token too long")
        yield token


def _read_all(reader: IO) -> bytes:
    content = reader.read()
    if isinstance(content, str):
        content = content.encode("utf-8")
    return content


def from_stream(path: str, reader: IO, cancel: threading.Event | None = None) -> Iterator[Resource]:
    """Yield the resources read from a stream, such as stdin."""
    for document in split_yaml_documents(_read_all(reader)):
        if cancel is not None and cancel.is_set():
            return
        yield from Resource(path=path, data=document).resources()


def _has_suffix(name: str, suffixes: Iterable[str]) -> bool:
    lowered = name.lower()
    return any(lowered.endswith(s) for s in suffixes)


def is_yaml_file(path: str) -> bool:
    """Tell whether ``path`` names a YAML file."""
    return not os.path.isdir(path) and _has_suffix(os.path.basename(path), (".yaml", ".yml"))


def is_json_file(path: str) -> bool:
    """Tell whether ``path`` names a JSON file."""
    return not os.path.isdir(path) and _has_suffix(os.path.basename(path), (".json",))


def is_ignored(path: str, ignore_patterns: Iterable[str]) -> bool:
    """Tell whether any of the regular expressions matches within ``path``."""
    return any(re.search(pattern, path) for pattern in ignore_patterns)


class _Cancelled(Exception):
    pass


def _walk(path: str, cancel: threading.Event | None) -> Iterator[tuple[str, bool]]:
    if cancel is not None and cancel.is_set():
        raise _Cancelled
    info = os.lstat(path)
    is_dir = os.path.isdir(path) and not os.path.islink(path)
    yield path, is_dir
    if is_dir:
        for name in sorted(os.listdir(path)):
            yield from _walk(os.path.join(path, name), cancel)


def find_files_in_folders(
    paths: Iterable[str], ignore_patterns: Iterable[str], cancel: threading.Event | None = None
) -> Iterator[str | DiscoveryError]:
    """Yield YAML and JSON files found under ``paths``, or a DiscoveryError for a path that failed."""
    patterns = list(ignore_patterns)
    for root in paths:
        try:
            for p, is_dir in _walk(root, cancel):
                if is_dir:
                    continue
                if not _has_suffix(os.path.basename(p), (".yaml", ".yml", ".json")):
                    continue
                if is_ignored(p, patterns):
                    continue
                yield p
        except _Cancelled:
            return
        except (OSError, re.error) as err:
            yield DiscoveryError(root, err)


def find_resources_in_reader(path: str, reader: IO) -> Iterator[Resource | DiscoveryError]:
    """Yield the resources in a file's content; an empty file yields one empty resource."""
    count = 0
    try:
        for document in split_yaml_documents(_read_all(reader)):
            if document:
                for sub in Resource(path=path, data=document).resources():
                    count += 1
                    yield sub
    except (OSError, ValueError) as err:
        yield DiscoveryError(path, err)
    if count == 0:
        yield Resource(path=path, data=b"")


def from_files(
    paths: Iterable[str], ignore_patterns: Iterable[str], cancel: threading.Event | None = None
) -> Iterator[Resource | DiscoveryError]:
    """Yield resources from every file under ``paths``, and DiscoveryErrors where discovery failed."""
    for found in find_files_in_folders(paths, ignore_patterns, cancel):
        if isinstance(found, DiscoveryError):
            yield found
            continue
        try:
            f = open(found, "rb")
        except OSError as err:
            yield DiscoveryError(found, err)
            continue
        with f:
            yield from find_resources_in_reader(found, f)