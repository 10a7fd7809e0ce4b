import json

import pytest

from kubeconform.cache import OnDiskCache
from kubeconform.loader import FileLoader, HTTPURLLoader, NotFoundError
from kubeconform.registry import (
    HTTPRegistry,
    LocalRegistry,
    TemplateError,
    new_registry,
    schema_path,
)

TPL = (
    "https://kubernetesjsonschema.dev/{{ .NormalizedKubernetesVersion }}-standalone"
    "{{ .StrictSuffix }}/{{ .ResourceKind }}{{ .KindSuffix }}.json"
)


@pytest.mark.parametrize(
    "kind, api_version, k8s_version, strict, expected",
    [
        ("Deployment", "apps/v1", "1.16.0", True,
         "https://kubernetesjsonschema.dev/v1.16.0-standalone-strict/deployment-apps-v1.json"),
        ("Deployment", "apps/v1", "1.16.0", False,
         "https://kubernetesjsonschema.dev/v1.16.0-standalone/deployment-apps-v1.json"),
        ("Service", "v1", "1.18.0", False,
         "https://kubernetesjsonschema.dev/v1.18.0-standalone/service-v1.json"),
        ("Service", "v1", "master", False,
         "https://kubernetesjsonschema.dev/master-standalone/service-v1.json"),
    ],
)
def test_schema_path(kind, api_version, k8s_version, strict, expected):
    assert schema_path(TPL, kind, api_version, k8s_version, strict) == expected


def test_schema_path_group_and_version_fields():
    tpl = "{{ .Group }}/{{ .ResourceAPIVersion }}"
    assert schema_path(tpl, "Deployment", "apps/v1", "master", False) == "apps/v1"


def test_schema_path_unknown_field():
    with pytest.raises(TemplateError):
        schema_path("{{ .Nope }}", "Deployment", "v1", "master", False)


def test_schema_path_unclosed_action():
    with pytest.raises(TemplateError):
        schema_path("{{ .ResourceKind ", "Deployment", "v1", "master", False)


class _FakeLoader:
    def __init__(self):
        self.urls = []

    def load(self, url):
        self.urls.append(url)
        return {"type": "object"}


def test_http_registry_download_schema():
    loader = _FakeLoader()
    reg = HTTPRegistry(TPL, loader, True, False)
    url, schema = reg.download_schema("Service", "v1", "master")
    assert url == "https://kubernetesjsonschema.dev/master-standalone-strict/service-v1.json"
    assert schema == {"type": "object"}
    assert loader.urls == [url]


def test_local_registry_unrenderable_template():
    reg = LocalRegistry("{{ .Nope }}", FileLoader(), False, False)
    assert reg.download_schema("Service", "v1", "master") == ("", None)


def test_new_registry_default_is_http():
    reg = new_registry("default", "", False, False, False)
    assert isinstance(reg, HTTPRegistry)
    assert isinstance(reg.loader, HTTPURLLoader)
    assert reg.schema_path_template.endswith("{{ .ResourceKind }}{{ .KindSuffix }}.json")


def test_new_registry_local_folder(tmp_path):
    schema_dir = tmp_path / "master-standalone"
    schema_dir.mkdir()
    (schema_dir / "deployment-apps-v1.json").write_text(json.dumps({"type": "object"}))
    reg = new_registry(str(tmp_path), "", False, False, False)
    assert isinstance(reg, LocalRegistry)
    path, schema = reg.download_schema("Deployment", "apps/v1", "master")
    assert path == str(tmp_path) + "/master-standalone/deployment-apps-v1.json"
    assert schema == {"type": "object"}


def test_new_registry_local_missing_schema(tmp_path):
    reg = new_registry(str(tmp_path), "", True, False, False)
    with pytest.raises(NotFoundError):
        reg.download_schema("Deployment", "apps/v1", "1.16.0")


def test_new_registry_full_template_kept(tmp_path):
    location = str(tmp_path) + "/{{ .ResourceKind }}.json"
    reg = new_registry(location, "", False, False, False)
    assert reg.schema_path_template == location


def test_new_registry_invalid_template():
    with pytest.raises(TemplateError, match="failed initialising schema location registry"):
        new_registry("https://example.com/{{ .Foo }}.json", "", False, False, False)


def test_new_registry_missing_cache_folder(tmp_path):
    with pytest.raises(FileNotFoundError, match="failed opening cache folder"):
        new_registry("default", str(tmp_path / "nope"), False, False, False)


def test_new_registry_cache_folder_not_directory(tmp_path):
    not_dir = tmp_path / "file"
    not_dir.write_text("x")
    with pytest.raises(NotADirectoryError, match="is not a directory"):
        new_registry("default", str(not_dir), False, False, False)


def test_new_registry_http_uses_disk_cache(tmp_path):
    reg = new_registry("default", str(tmp_path), False, False, False)
    assert isinstance(reg.loader.cache, OnDiskCache)
    assert reg.loader.cache.folder == str(tmp_path)