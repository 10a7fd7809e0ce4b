# kubeconform

A library for validating Kubernetes manifests. It reads YAML or JSON
documents and checks each resource against the JSON schema for its kind and
API version. Schemas come from a remote schema registry or from a local
folder.

## Installation

```
pip install .
```

## Validating resources

```python
from kubeconform.validator import Opts, Status, Validator

validator = Validator(None, Opts(strict=True))
with open("deployment.yaml", "rb") as stream:
    for result in validator.validate("deployment.yaml", stream):
        if result.status in (Status.INVALID, Status.ERROR):
            print(result.err)
            for error in result.validation_errors:
                print(error.path, error.msg)
```

`Validator(schema_locations, opts)` builds one registry per schema location;
with no locations it uses the built-in remote registry. `Opts` holds:

| Field | Meaning |
| --- | --- |
| `kubernetes_version` | `master` (default) or `x.y.z` |
| `strict` | use strict schemas and reject duplicated keys |
| `skip_kinds` / `reject_kinds` | sets of kinds or `version/kind` GVKs to skip or reject |
| `ignore_missing_schemas` | report resources with no schema as skipped, not as errors |
| `cache` | existing folder in which downloaded schemas are cached |
| `skip_tls` | do not verify the server's certificate |

`Validator.validate_resource(resource)` checks a single
`kubeconform.resource.Resource`; `Validator.validate(filename, stream)`
splits a stream on `---` separators, validates every document, and closes the
stream. Each `Result` carries a `Status` (`VALID`, `INVALID`, `ERROR`,
`SKIPPED`, `EMPTY`), an `err` and a list of `ValidationError`s.

Schemas may use the `duration` format, which accepts both `1h30m` and
ISO 8601 `PT1H30M` forms (`kubeconform.validator.validate_duration`).

## Finding resources

`kubeconform.resource` discovers manifests:

- `from_files(paths, ignore_patterns)` walks files and folders for `.yaml`,
  `.yml` and `.json` files and yields `Resource`s, or `DiscoveryError`s for
  paths that could not be read.
- `from_stream(path, reader)` yields the resources of one stream.
- Resources of kind `List` are expanded into their items.

## Schema locations

A location ending in `json` is used as a template. It may use
`{{ .NormalizedKubernetesVersion }}`, `{{ .StrictSuffix }}`,
`{{ .ResourceKind }}`, `{{ .ResourceAPIVersion }}`, `{{ .Group }}` and
`{{ .KindSuffix }}`. Any other location is taken as the root of a schema tree
laid out as `<version>-standalone[-strict]/<kind>-<group>-<version>.json`.
The value `default` selects the built-in remote registry. Locations starting
with `http` are downloaded (with retries); others are read from disk. See
`kubeconform.registry.new_registry` and `schema_path`.

## Reports

```python
import sys
from kubeconform.output.factory import new_output

out = new_output(sys.stdout, "json", True, False, False)
for result in results:
    out.write(result)
out.flush()
```

Formats are `json`, `junit`, `pretty`, `tap` and `text`; any other name
raises `ValueError`.

## Command-line options

`kubeconform.config.from_flags(prog_name, args)` parses options such as
`-kubernetes-version`, `-schema-location`, `-skip`, `-reject`, `-strict`,
`-output`, `-summary`, `-verbose`, `-cache` and `-n` into a `Config`, and
returns the usage text when `-h` is given. Bad arguments raise `UsageError`.

## What this package does not do

The package installs no command. It offers the parsing of options, the
discovery of files, validation and reports as library functions, but nothing
runs them together from a shell: a program that does so, and any worker pool
for validating in parallel, is left to the caller.