import io
import json

import pytest

from kubeconform.loader import LoaderError, NonJSONResponseError, NotFoundError
from kubeconform.registry import DEFAULT_SCHEMA_LOCATION, HTTPRegistry
from kubeconform.resource import Resource
from kubeconform.validator import (
    Opts,
    Status,
    ValidationError,
    Validator,
    download_schema,
    is_schema_for_kind,
    validate_duration,
)


class MockRegistry:
    def __init__(self, raw):
        self.raw = raw
        self.calls = 0

    def download_schema(self, resource_kind, resource_api_version, k8s_version):
        self.calls += 1
        if self.raw is None:
            raise NotFoundError("not found")
        try:
            return "", json.loads(self.raw)
        except ValueError as err:
            raise NonJSONResponseError(str(err)) from err


class FailingRegistry:
    def download_schema(self, resource_kind, resource_api_version, k8s_version):
        raise LoaderError("boom")


SCHEMA_VALID = """{
  "title": "Example Schema",
  "type": "object",
  "properties": {
    "kind": {"type": "string"},
    "firstName": {"type": "string"},
    "lastName": {"type": "string"},
    "age": {"description": "Age in years", "type": "integer", "minimum": 0}
  },
  "required": ["firstName", "lastName"]
}"""

SCHEMA_NUMBER_FIRSTNAME = """{
  "title": "Example Schema",
  "type": "object",
  "properties": {
    "kind": {"type": "string"},
    "firstName": {"type": "number"},
    "lastName": {"type": "string"},
    "age": {"description": "Age in years", "type": "integer", "minimum": 0}
  },
  "required": ["firstName", "lastName"]
}"""

SCHEMA_FIRSTNAME_ONLY = """{
  "title": "Example Schema",
  "type": "object",
  "properties": {
    "kind": {"type": "string"},
    "firstName": {"type": "string"}
  },
  "required": ["firstName"]
}"""

SCHEMA_WITH_APIVERSION = """{
  "title": "Example Schema",
  "type": "object",
  "properties": {
    "kind": {"type": "string"},
    "apiVersion": {"type": "string"},
    "firstName": {"type": "string"},
    "lastName": {"type": "string"},
    "age": {"description": "Age in years", "type": "integer", "minimum": 0}
  },
  "required": ["firstName", "lastName"]
}"""

SCHEMA_DURATION = """{
  "title": "Example Schema",
  "type": "object",
  "properties": {
    "kind": {"type": "string"},
    "interval": {"type": "string", "format": "duration"}
  },
  "required": ["interval"]
}"""

HTML = "<html>error page</html>"

RESOURCE_FULL = b"\nkind: name\napiVersion: v1\nfirstName: foo\nlastName: bar\n"


def make_validator(reg1, reg2=None, ignore_missing=False, strict=False, with_second=True):
    regs = [MockRegistry(reg1)]
    if with_second:
        regs.append(MockRegistry(reg2))
    opts = Opts(ignore_missing_schemas=ignore_missing, strict=strict)
    return Validator(opts=opts, registries=regs)


@pytest.mark.parametrize(
    "raw, reg1, reg2, ignore_missing, strict, status, errors",
    [
        (RESOURCE_FULL, SCHEMA_VALID, None, False, False, Status.VALID, []),
        (
            RESOURCE_FULL, SCHEMA_NUMBER_FIRSTNAME, None, False, False, Status.INVALID,
            [ValidationError(path="/firstName", msg="got string, want number")],
        ),
        (
            b"\nkind: name\napiVersion: v1\nfirstName: foo\n", SCHEMA_VALID, None, False, False, Status.INVALID,
            [ValidationError(path="", msg="missing property 'lastName'")],
        ),
        (
            b"\nkind: name\napiVersion: v1\nfirstName: foo\nfirstName: bar\n",
            SCHEMA_FIRSTNAME_ONLY, None, False, True, Status.ERROR, [],
        ),
        (
            b"\nkind: name\napiVersion: v1\nfirstName: foo\nfirstName: bar\n",
            SCHEMA_FIRSTNAME_ONLY, None, False, False, Status.VALID, [],
        ),
        (
            b"\nkind: name\napiVersion: v1\nfirstName foo\nlastName: bar\n",
            SCHEMA_NUMBER_FIRSTNAME, None, False, False, Status.ERROR, [],
        ),
        (RESOURCE_FULL, None, SCHEMA_WITH_APIVERSION, False, False, Status.VALID, []),
        (RESOURCE_FULL, HTML, SCHEMA_WITH_APIVERSION, False, False, Status.VALID, []),
        (RESOURCE_FULL, None, None, True, False, Status.SKIPPED, []),
        (RESOURCE_FULL, None, None, False, False, Status.ERROR, []),
        (RESOURCE_FULL, HTML, HTML, True, False, Status.SKIPPED, []),
        (RESOURCE_FULL, HTML, HTML, False, False, Status.ERROR, []),
        (b"\nkind: name\napiVersion: v1\ninterval: 5s\n", SCHEMA_DURATION, None, False, False, Status.VALID, []),
        (b"\nkind: name\napiVersion: v1\ninterval: PT1H\n", SCHEMA_DURATION, None, False, False, Status.VALID, []),
        (
            b"\nkind: name\napiVersion: v1\ninterval: test\n", SCHEMA_DURATION, None, False, False, Status.INVALID,
            [ValidationError(path="/interval", msg="'test' is not valid duration: must start with P")],
        ),
    ],
)
def test_validate(raw, reg1, reg2, ignore_missing, strict, status, errors):
    val = make_validator(reg1, reg2, ignore_missing=ignore_missing, strict=strict)
    got = val.validate_resource(Resource(data=raw))
    assert got.status == status
    assert got.validation_errors == errors


def test_validation_errors_order():
    raw = b"\nkind: name\napiVersion: v1\nfirstName: foo\nage: not a number\n"
    val = make_validator(SCHEMA_VALID, with_second=False)
    got = val.validate_resource(Resource(data=raw))
    assert got.validation_errors == [
        ValidationError(path="", msg="missing property 'lastName'"),
        ValidationError(path="/age", msg="got string, want integer"),
    ]


def test_validate_file():
    data = (
        b"\nkind: name\napiVersion: v1\nfirstName: bar\nlastName: qux\n---\n"
        b"kind: name\napiVersion: v1\nfirstName: foo\n"
    )
    schema = """{
      "title": "Example Schema",
      "type": "object",
      "properties": {
        "kind": {"type": "string"},
        "firstName": {"type": "string"},
        "lastName": {"type": "string"}
      },
      "required": ["firstName", "lastName"]
    }"""
    val = make_validator(schema, with_second=False)
    stream = io.BytesIO(data)
    results = val.validate("test-file", stream)
    assert [r.status for r in results] == [Status.VALID, Status.INVALID]
    assert [e for r in results for e in r.validation_errors] == [
        ValidationError(path="", msg="missing property 'lastName'")
    ]
    assert all(r.resource.path == "test-file" for r in results)
    assert stream.closed


def test_invalid_error_message_is_single_line():
    val = make_validator(SCHEMA_NUMBER_FIRSTNAME, with_second=False)
    got = val.validate_resource(Resource(data=RESOURCE_FULL))
    message = str(got.err)
    assert message.startswith("problem validating schema. Check JSON formatting: ")
    assert "\n" not in message
    assert "got string, want number" in message


def test_empty_resources():
    val = make_validator(SCHEMA_VALID)
    assert val.validate_resource(Resource(data=b"")).status == Status.EMPTY
    assert val.validate_resource(Resource(data=b"# just a comment\n")).status == Status.EMPTY


def test_non_mapping_document_is_error():
    val = make_validator(SCHEMA_VALID)
    got = val.validate_resource(Resource(data=b"- a\n- b\n"))
    assert got.status == Status.ERROR
    assert str(got.err).startswith("error unmarshalling resource:")


def test_missing_kind_is_error():
    val = make_validator(SCHEMA_VALID)
    got = val.validate_resource(Resource(data=b"apiVersion: v1\nfoo: bar\n"))
    assert got.status == Status.ERROR
    assert str(got.err) == "error while parsing: missing 'kind' key"


def test_missing_schema_message():
    val = make_validator(None, None)
    got = val.validate_resource(Resource(data=RESOURCE_FULL))
    assert str(got.err) == "could not find schema for name"


@pytest.mark.parametrize("skip", [{"name"}, {"v1/name"}])
def test_skip_kinds(skip):
    val = Validator(opts=Opts(skip_kinds=skip), registries=[MockRegistry(SCHEMA_VALID)])
    assert val.validate_resource(Resource(data=RESOURCE_FULL)).status == Status.SKIPPED


def test_reject_kinds():
    val = Validator(opts=Opts(reject_kinds={"name"}), registries=[MockRegistry(SCHEMA_VALID)])
    got = val.validate_resource(Resource(data=RESOURCE_FULL))
    assert got.status == Status.ERROR
    assert str(got.err) == "prohibited resource kind name"


def test_registry_failure_is_reported():
    val = Validator(registries=[FailingRegistry()])
    got = val.validate_resource(Resource(data=RESOURCE_FULL))
    assert got.status == Status.ERROR
    assert str(got.err) == "boom"


def test_schema_is_downloaded_once():
    registry = MockRegistry(SCHEMA_VALID)
    val = Validator(registries=[registry])
    for _ in range(3):
        assert val.validate_resource(Resource(data=RESOURCE_FULL)).status == Status.VALID
    assert registry.calls == 1


def test_download_schema_skips_schema_for_other_kind():
    other = json.dumps({"properties": {"kind": {"enum": ["Other"]}}})
    right = json.dumps({"properties": {"kind": {"enum": ["name"]}}, "type": "object"})
    compiled = download_schema([MockRegistry(other), MockRegistry(right)], "name", "v1", "master")
    assert compiled.schema == json.loads(right)


def test_download_schema_returns_none_when_nothing_found():
    assert download_schema([MockRegistry(None), MockRegistry(HTML)], "name", "v1", "master") is None


def test_download_schema_raises_other_errors():
    with pytest.raises(LoaderError, match="boom"):
        download_schema([FailingRegistry(), MockRegistry(SCHEMA_VALID)], "name", "v1", "master")


@pytest.mark.parametrize(
    "schema, kind, expected",
    [
        (None, "Deployment", True),
        ({"properties": {"kind": {"enum": ["Deployment"]}}}, "Deployment", True),
        ({"properties": {"kind": {"enum": ["Deployment"]}}}, "Service", False),
        ({"properties": {"kind": {"const": "Service"}}}, "Service", True),
        ({"properties": {"kind": {"const": "Service"}}}, "Deployment", False),
        ({"properties": {"kind": {"type": "string"}}}, "Deployment", True),
        ({"type": "object"}, "Deployment", True),
    ],
)
def test_is_schema_for_kind(schema, kind, expected):
    assert is_schema_for_kind(schema, kind) is expected


@pytest.mark.parametrize(
    "value",
    ["5s", "1h30m", "1.5h", "-2m", "0", "300ms", "P1W", "PT1H", "P1Y2M3DT4H5M6S", "P1DT1H", "P3M"],
)
def test_validate_duration_accepts(value):
    assert validate_duration(value) is None


@pytest.mark.parametrize(
    "value, message",
    [
        ("test", "must start with P"),
        ("P", "nothing after P"),
        ("PW", "no number in week"),
        ("P1DW", "invalid week"),
        ("P1DT", "no time elements"),
        ("P1DT1HT1S", "more than one T"),
        ("PD", "missing number"),
        ("P1", "missing unit"),
        ("P1D1Y", "unit 'Y' out of order"),
        ("P1Q", "invalid unit 'Q'"),
        ("PT1D", "invalid unit 'D'"),
    ],
)
def test_validate_duration_rejects(value, message):
    with pytest.raises(ValueError) as excinfo:
        validate_duration(value)
    assert str(excinfo.value) == message


def test_default_registry_location():
    val = Validator()
    assert len(val.registries) == 1
    assert isinstance(val.registries[0], HTTPRegistry)
    assert val.registries[0].schema_path_template == DEFAULT_SCHEMA_LOCATION
    assert val.opts.kubernetes_version == "master"


def test_empty_kubernetes_version_defaults_to_master():
    val = Validator(opts=Opts(kubernetes_version=""), registries=[])
    assert val.opts.kubernetes_version == "master"


def test_missing_cache_folder_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        Validator(opts=Opts(cache=str(tmp_path / "absent")))


def test_local_registry_end_to_end(tmp_path):
    (tmp_path / "name.json").write_text(SCHEMA_VALID)
    template = str(tmp_path) + "/{{ .ResourceKind }}.json"
    val = Validator([template])
    assert val.validate_resource(Resource(data=RESOURCE_FULL)).status == Status.VALID
    bad = val.validate_resource(Resource(data=b"kind: name\napiVersion: v1\nfirstName: 3\nlastName: x\n"))
    assert bad.status == Status.INVALID
    assert bad.validation_errors == [ValidationError(path="/firstName", msg="got integer, want string")]


def test_validation_error_as_dict():
    err = ValidationError(path="/spec", msg="bad")
    assert err.as_dict() == {"path": "/spec", "msg": "bad"}
    assert str(err) == "bad"