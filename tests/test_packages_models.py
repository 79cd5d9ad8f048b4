import json

import pytest
from pydantic import ValidationError

from pinas.packages.models import (
    ContainerCreateStep,
    ContainerRemoveStep,
    DownloadStep,
    ExecStep,
    PackageManifest,
    STEP_TYPES,
    WindowConfig,
)

MANIFEST = {
    "id": "filebrowser",
    "name": "File Browser",
    "version": "2.27.0",
    "description": {"en": "Web file manager"},
    "requirements": {"arch": ["x86_64", "aarch64"], "dependencies": ["docker"]},
    "install": {
        "type": "docker",
        "image": "filebrowser/filebrowser:v2.27.0",
        "steps": [
            {"action": "mkdir", "path": "${PACKAGES_DIR}/filebrowser"},
            {
                "action": "download",
                "url": "https://example.com/fb-${ARCH}.tar.gz",
                "sha256": "ab" * 32,
                "dest": "${DOWNLOADS_DIR}/fb.tar.gz",
            },
            {"action": "docker_pull", "image": "filebrowser/filebrowser:v2.27.0"},
            {
                "action": "docker_create",
                "config": {
                    "name": "filebrowser",
                    "restart": "unless-stopped",
                    "ports": [{"host": 8080, "container": 80}],
                    "volumes": [{"host": "${DATA_DIR}/files", "container": "/srv"}],
                    "environment": [{"name": "TZ", "value": "UTC"}],
                },
            },
            {"action": "docker_start", "container": "filebrowser"},
            {"action": "exec", "command": "true"},
        ],
    },
    "uninstall": {
        "steps": [
            {"action": "docker_stop", "container": "filebrowser"},
            {"action": "docker_rm", "container": "filebrowser"},
        ]
    },
    "frontend": {
        "icon": "mdi:folder",
        "gradient": "from-amber-500 to-amber-600",
        "component": "FileBrowserApp",
        "i18n": {"en": {"title": "Files"}},
    },
}


def test_manifest_parses_tagged_steps():
    manifest = PackageManifest.model_validate(MANIFEST)

    steps = manifest.install.steps
    assert manifest.install.install_type == "docker"
    assert [step.action for step in steps] == [
        "mkdir",
        "download",
        "docker_pull",
        "docker_create",
        "docker_start",
        "exec",
    ]
    assert isinstance(steps[1], DownloadStep)
    assert isinstance(steps[3], ContainerCreateStep)
    assert steps[3].config.ports[0].protocol == "tcp"
    assert steps[3].config.volumes[0].readonly is False
    assert isinstance(steps[5], ExecStep)
    assert steps[5].ignore_error is False
    assert isinstance(manifest.uninstall.steps[1], ContainerRemoveStep)


def test_unknown_action_is_rejected():
    data = json.loads(json.dumps(MANIFEST))
    data["install"]["steps"].append({"action": "reboot"})

    with pytest.raises(ValidationError):
        PackageManifest.model_validate(data)


def test_missing_required_step_field_is_rejected():
    data = json.loads(json.dumps(MANIFEST))
    data["install"]["steps"] = [{"action": "copy", "src": "/a"}]

    with pytest.raises(ValidationError):
        PackageManifest.model_validate(data)


def test_optional_sections_default_to_empty():
    manifest = PackageManifest.model_validate(
        {"id": "x", "name": "X", "version": "0.1", "install": {"type": "binary"}}
    )

    assert manifest.install.steps == []
    assert manifest.uninstall.steps == []
    assert manifest.requirements.dependencies == []
    assert manifest.files == {}
    assert manifest.frontend is None


def test_window_defaults():
    manifest = PackageManifest.model_validate(MANIFEST)

    assert manifest.frontend.window == WindowConfig(
        width=900, height=600, min_width=600, min_height=400
    )


def test_to_json_keeps_wire_field_names():
    manifest = PackageManifest.model_validate(MANIFEST)

    data = json.loads(manifest.to_json())

    assert data["install"]["type"] == "docker"
    assert data["install"]["steps"][4] == {"action": "docker_start", "container": "filebrowser"}
    assert PackageManifest.model_validate(data) == manifest


def test_describe_hides_file_content():
    manifest = PackageManifest.model_validate(
        {
            "id": "x",
            "name": "X",
            "version": "0.1",
            "install": {
                "type": "binary",
                "steps": [{"action": "write_file", "dest": "/tmp/x", "content": "aGVsbG8="}],
            },
        }
    )

    description = manifest.install.steps[0].describe()

    assert description == "write_file(dest=/tmp/x, content=<8 bytes base64>)"


def test_every_step_type_has_a_distinct_tag():
    tags = [step_type.model_fields["action"].default for step_type in STEP_TYPES]

    assert len(tags) == 15
    assert len(set(tags)) == 15
