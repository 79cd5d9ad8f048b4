import asyncio
import json
import os
from http.client import IncompleteRead
from unittest.mock import patch

import pytest

from conftest import b64, make_manifest
from pinas.packages.builtin import docker_manifest
from pinas.packages.errors import (
    AlreadyInstalled,
    InstallFailed,
    MissingDependency,
    PackageNotFound,
)
from pinas.db.models.package import PackageStatus, TaskStatus


class _FakeResponse:
    def __init__(self, payload: bytes):
        self.payload = payload

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def read(self):
        return self.payload


FRONTEND = {
    "icon": "mdi:cube",
    "gradient": "from-green-500 to-green-600",
    "component": "DemoApp",
    "i18n": {"en": {"title": "Demo"}, "fr": {"title": "Démo"}},
}


class TestInstall:
    @pytest.mark.asyncio
    async def test_progress_and_total_steps(self, service, tmp_path):
        manifest = make_manifest(
            steps=[{"action": "mkdir", "path": str(tmp_path / f"d{i}")} for i in range(3)]
        )

        task_id = await service.install(manifest)

        task = service.get_task(task_id)
        assert task.status == TaskStatus.COMPLETED.value
        assert task.total_steps == 3
        assert task.progress == 2
        assert task.current_step == f"mkdir(path={tmp_path / 'd2'})"
        assert task.completed_at is not None
        package = service.get_installed("demo")
        assert package.status == PackageStatus.INSTALLED.value
        assert package.package_type == "binary"
        assert package.error_message is None

    @pytest.mark.asyncio
    async def test_zero_step_install(self, service):
        task_id = await service.install(docker_manifest())

        task = service.get_task(task_id)
        assert task.total_steps == 0
        assert task.progress == 0
        assert task.status == TaskStatus.COMPLETED.value
        assert service.is_installed("docker")

    @pytest.mark.asyncio
    async def test_container_scenario(self, service, runtime, substitutions):
        manifest = make_manifest(
            package_id="web",
            install={
                "type": "docker",
                "steps": [
                    {"action": "mkdir", "path": "${PACKAGES_DIR}/web"},
                    {"action": "write_file", "dest": "${PACKAGES_DIR}/web/index.html", "content": b64("<h1>hi</h1>")},
                    {"action": "docker_pull", "image": "nginx:1.25"},
                    {
                        "action": "docker_create",
                        "config": {
                            "name": "web",
                            "image": "nginx:1.25",
                            "volumes": [{"host": "${PACKAGES_DIR}/web", "container": "/usr/share/nginx/html"}],
                        },
                    },
                    {"action": "docker_start", "container": "web"},
                ],
            },
        )

        await service.install(manifest)

        web_dir = f"{substitutions.packages_dir}/web"
        with open(f"{web_dir}/index.html") as f:
            assert f.read() == "<h1>hi</h1>"
        assert runtime.calls == [
            ("pull", "nginx:1.25"),
            ("create", "web", "nginx:1.25"),
            ("start", "web"),
        ]
        tracked = [(f.path, f.file_type) for f in service.files.list_by_package("web")]
        assert tracked == [
            (f"{web_dir}/index.html", "file"),
            (web_dir, "directory"),
        ]

    @pytest.mark.asyncio
    async def test_already_installed(self, service):
        manifest = make_manifest()
        await service.install(manifest)

        with pytest.raises(AlreadyInstalled):
            await service.install(manifest)

        assert len(service.list_tasks("demo")) == 1

    @pytest.mark.asyncio
    async def test_record_in_error_state_blocks_reinstall(self, service):
        failing = make_manifest(steps=[{"action": "exec", "command": "exit 1"}])
        with pytest.raises(InstallFailed):
            await service.install(failing)

        with pytest.raises(AlreadyInstalled):
            await service.install(make_manifest())

    @pytest.mark.asyncio
    async def test_missing_dependency_creates_no_records(self, service):
        manifest = make_manifest(requirements={"dependencies": ["docker"]})

        with pytest.raises(MissingDependency, match="docker"):
            await service.install(manifest)

        assert service.get_installed("demo") is None
        assert service.list_tasks("demo") == []

    @pytest.mark.asyncio
    async def test_dependency_satisfied(self, service):
        await service.install(docker_manifest())

        await service.install(make_manifest(requirements={"dependencies": ["docker"]}))

        assert service.is_installed("demo")

    @pytest.mark.asyncio
    async def test_step_failure_stops_install(self, service, tmp_path):
        manifest = make_manifest(
            steps=[
                {"action": "mkdir", "path": str(tmp_path / "first")},
                {"action": "exec", "command": "exit 7"},
                {"action": "mkdir", "path": str(tmp_path / "never")},
            ]
        )

        with pytest.raises(InstallFailed) as exc_info:
            await service.install(manifest)

        message = str(exc_info.value)
        assert message.startswith("Failed at step 2: exec(command=exit 7")
        assert "exit code 7" in message
        assert (tmp_path / "first").is_dir()
        assert not (tmp_path / "never").exists()

        package = service.get_installed("demo")
        assert package.status == PackageStatus.ERROR.value
        assert package.error_message == message
        task = service.get_task(exc_info.value.task_id)
        assert task.status == TaskStatus.FAILED.value
        assert task.error_message == message
        assert task.progress == 1

    @pytest.mark.asyncio
    async def test_sha256_mismatch_marks_package_error(self, service, tmp_path):
        manifest = make_manifest(
            steps=[
                {
                    "action": "download",
                    "url": "https://example.com/tool.tar.gz",
                    "sha256": "0" * 64,
                    "dest": str(tmp_path / "tool.tar.gz"),
                }
            ]
        )

        with patch("pinas.packages.fetch.urlopen", return_value=_FakeResponse(b"payload")):
            with pytest.raises(InstallFailed):
                await service.install(manifest)

        package = service.get_installed("demo")
        assert package.status == PackageStatus.ERROR.value
        assert "SHA256 mismatch" in package.error_message

    @pytest.mark.asyncio
    async def test_concurrent_installs_of_same_id(self, service):
        manifest = make_manifest(steps=[{"action": "exec", "command": "sleep 0.2"}])
        seen_status = []

        async def second_install():
            await asyncio.sleep(0.05)
            try:
                return await service.install(manifest)
            except AlreadyInstalled:
                seen_status.append(service.get_installed("demo").status)
                raise

        results = await asyncio.gather(
            service.install(manifest), second_install(), return_exceptions=True
        )

        assert isinstance(results[0], str)
        assert isinstance(results[1], AlreadyInstalled)
        # the second call only ran once the first had finished
        assert seen_status == [PackageStatus.INSTALLED.value]
        assert len(service.list_tasks("demo")) == 1
        assert len(service.locks) == 0

    @pytest.mark.asyncio
    async def test_uninstall_waits_for_running_install(self, service):
        manifest = make_manifest(
            steps=[{"action": "exec", "command": "sleep 0.3"}], frontend=FRONTEND
        )

        install = asyncio.create_task(service.install(manifest))
        await asyncio.sleep(0.05)
        uninstall_task_id = await service.uninstall("demo")

        assert install.done()
        install_task = service.get_task(install.result())
        uninstall_task = service.get_task(uninstall_task_id)
        assert install_task.status == TaskStatus.COMPLETED.value
        assert install_task.completed_at <= uninstall_task.started_at
        assert service.get_installed("demo") is None
        assert service.list_translations("demo") == {}
        assert len(service.locks) == 0

    @pytest.mark.asyncio
    async def test_unexpected_step_exception_is_reported_with_step(self, service, tmp_path):
        manifest = make_manifest(
            steps=[{"action": "extract", "src": str(tmp_path / "a.tar"), "dest": str(tmp_path / "a")}]
        )

        with patch("pinas.packages.steps.extract_archive", side_effect=RuntimeError("corrupt header")):
            with pytest.raises(InstallFailed) as exc_info:
                await service.install(manifest)

        message = str(exc_info.value)
        assert message.startswith("Failed at step 1: extract(")
        assert message.endswith("corrupt header")
        assert service.get_installed("demo").error_message == message
        assert service.get_task(exc_info.value.task_id).error_message == message

    @pytest.mark.asyncio
    async def test_truncated_download_fails_install(self, service, tmp_path):
        manifest = make_manifest(
            steps=[{"action": "download", "url": "https://example.com/a", "dest": str(tmp_path / "a")}]
        )

        with patch("pinas.packages.steps.fetch_bytes", side_effect=IncompleteRead(b"abc", 10)):
            with pytest.raises(InstallFailed) as exc_info:
                await service.install(manifest)

        message = service.get_installed("demo").error_message
        assert message == str(exc_info.value)
        assert message.startswith("Failed at step 1: download(")
        assert "Download failed" in message

    @pytest.mark.asyncio
    async def test_translations_and_registry(self, service):
        await service.install(make_manifest(frontend=FRONTEND))

        assert service.list_translations("demo") == {
            "en": {"title": "Demo"},
            "fr": {"title": "Démo"},
        }
        assert service.get_translations("fr") == {"demo": {"title": "Démo"}}
        registry = service.list_app_registry()
        assert registry == [
            {
                "id": "demo",
                "name": "Demo",
                "icon": "mdi:cube",
                "gradient": "from-green-500 to-green-600",
                "component": "DemoApp",
                "window": {"width": 900, "height": 600, "min_width": 600, "min_height": 400},
            }
        ]

    @pytest.mark.asyncio
    async def test_failed_install_does_not_store_translations(self, service):
        manifest = make_manifest(
            steps=[{"action": "exec", "command": "exit 1"}], frontend=FRONTEND
        )

        with pytest.raises(InstallFailed):
            await service.install(manifest)

        assert service.list_translations("demo") == {}
        assert service.list_app_registry() == []

    @pytest.mark.asyncio
    async def test_stored_manifest_round_trips(self, service):
        manifest = make_manifest(frontend=FRONTEND)

        await service.install(manifest, manifest_url="https://example.com/demo.json")

        package = service.get_installed("demo")
        assert package.manifest_url == "https://example.com/demo.json"
        assert json.loads(package.manifest_data)["install"]["type"] == "binary"
        assert package.has_window is True


class TestUninstall:
    @pytest.mark.asyncio
    async def test_unknown_package(self, service):
        with pytest.raises(PackageNotFound):
            await service.uninstall("ghost")

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_cleanup(self, service, runtime, substitutions):
        runtime.fail_on.add("stop")
        app_dir = f"{substitutions.packages_dir}/demo"
        manifest = make_manifest(
            steps=[
                {"action": "mkdir", "path": "${PACKAGES_DIR}/demo"},
                {"action": "write_file", "dest": "${PACKAGES_DIR}/demo/app.conf", "content": b64("x")},
            ],
            uninstall=[
                {"action": "docker_stop", "container": "demo"},
                {"action": "exec", "command": "exit 1"},
                {"action": "docker_rm", "container": "demo"},
            ],
            frontend=FRONTEND,
        )
        await service.install(manifest)

        task_id = await service.uninstall("demo")

        assert runtime.calls == [("stop", "demo"), ("remove", "demo")]
        assert service.get_installed("demo") is None
        assert service.files.list_by_package("demo") == []
        assert service.list_translations("demo") == {}
        assert not os.path.exists(f"{app_dir}/app.conf")
        assert not os.path.exists(app_dir)
        task = service.get_task(task_id)
        assert task.task_type == "uninstall"
        assert task.status == TaskStatus.COMPLETED.value
        assert task.total_steps == 3

    @pytest.mark.asyncio
    async def test_uninstall_steps_are_substituted(self, service, substitutions):
        manifest = make_manifest(
            steps=[{"action": "exec", "command": "mkdir -p ${DATA_DIR}/cache/demo"}],
            uninstall=[{"action": "delete", "path": "${DATA_DIR}/cache/demo"}],
        )
        await service.install(manifest)
        cache_dir = f"{substitutions.data_dir}/cache/demo"
        assert os.path.isdir(cache_dir)
        await service.uninstall("demo")
        assert not os.path.exists(cache_dir)

    @pytest.mark.asyncio
    async def test_uninstall_removes_failed_install(self, service):
        with pytest.raises(InstallFailed):
            await service.install(make_manifest(steps=[{"action": "exec", "command": "exit 1"}]))

        await service.uninstall("demo")

        assert service.get_installed("demo") is None
        await service.install(make_manifest())
        assert service.is_installed("demo")

    @pytest.mark.asyncio
    async def test_untracked_content_keeps_directory(self, service, tmp_path):
        app_dir = tmp_path / "app"
        manifest = make_manifest(
            steps=[
                {"action": "mkdir", "path": str(app_dir)},
                {"action": "exec", "command": f"touch {app_dir}/runtime.db"},
            ]
        )
        await service.install(manifest)

        await service.uninstall("demo")

        assert (app_dir / "runtime.db").exists()
        assert service.get_installed("demo") is None
