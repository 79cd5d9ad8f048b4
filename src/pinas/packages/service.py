import asyncio
import json
import logging
import os
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from pinas.config import config
from pinas.db.manager import INTEGRITY_ERRORS
from pinas.db.models.package import (
    InstalledPackage,
    PackageStatus,
    PackageTask,
    TaskStatus,
    TaskType,
)
from pinas.db.repositories.base import utc_now
from pinas.db.repositories.packages import (
    InstalledPackageRepository,
    PackageFileRepository,
    PackageTaskRepository,
    TranslationRepository,
)
from pinas.db.session import get_db_manager
from pinas.docker.runtime import get_docker_runtime
from pinas.packages.errors import (
    AlreadyInstalled,
    InstallFailed,
    MissingDependency,
    PackageNotFound,
)
from pinas.packages.models import PackageManifest
from pinas.packages.steps import StepInterpreter, output_path
from pinas.packages.substitution import SubstitutionTable

logger = logging.getLogger(__name__)


class PackageLocks:
    """One asyncio.Lock per package id.

    Installs and uninstalls of the same id are serialized; different ids
    proceed concurrently. A lock is dropped once nobody holds or waits on it.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, package_id: str):
        lock = self._locks.get(package_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[package_id] = lock
        self._users[package_id] = self._users.get(package_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[package_id] -= 1
            if not self._users[package_id]:
                del self._users[package_id]
                del self._locks[package_id]


package_locks = PackageLocks()


class PackageService:
    """Installs, tracks and removes packages described by manifests."""

    def __init__(
        self,
        db=None,
        runtime=None,
        substitutions: Optional[SubstitutionTable] = None,
        interpreter: Optional[StepInterpreter] = None,
        locks: Optional[PackageLocks] = None,
        settings=config,
    ):
        self.db = db or get_db_manager()
        self.packages = InstalledPackageRepository(self.db)
        self.tasks = PackageTaskRepository(self.db)
        self.files = PackageFileRepository(self.db)
        self.translations = TranslationRepository(self.db)
        self.substitutions = substitutions or SubstitutionTable.from_config(settings)
        self.runtime = runtime or get_docker_runtime()
        self.interpreter = interpreter or StepInterpreter(
            self.runtime,
            http_timeout=settings.http_timeout_seconds,
            exec_timeout=settings.exec_timeout_seconds,
        )
        self.locks = locks or package_locks

    def init_directories(self):
        """Ensure the packages, downloads and bin directories exist."""
        for path in (
            self.substitutions.packages_dir,
            self.substitutions.downloads_dir,
            self.substitutions.bin_dir,
        ):
            os.makedirs(path, exist_ok=True)

    def list_installed(self) -> List[InstalledPackage]:
        return self.packages.list_installed()

    def get_installed(self, package_id: str) -> Optional[InstalledPackage]:
        return self.packages.get(package_id)

    def is_installed(self, package_id: str) -> bool:
        return self.packages.is_installed(package_id)

    def get_task(self, task_id: str) -> Optional[PackageTask]:
        return self.tasks.get(task_id)

    def list_tasks(self, package_id: str) -> List[PackageTask]:
        return self.tasks.list_by_package(package_id)

    def track_file(self, package_id: str, path: str, file_type: str):
        self.files.add(package_id, path, file_type)

    async def install(self, manifest: PackageManifest, manifest_url: Optional[str] = None) -> str:
        """Install ``manifest`` and return the id of its install task.

        Raises AlreadyInstalled or MissingDependency before anything is
        written, and InstallFailed once a step has failed; a failed install
        leaves its Error record and any partial side effects in place.
        """
        async with self.locks.hold(manifest.id):
            self._check_preconditions(manifest)
            task_id = self._create_records(manifest, manifest_url)

            try:
                await self._execute_install_steps(manifest, task_id)
            except Exception as e:
                self._record_failure(manifest.id, task_id, str(e))
                raise

            self._record_success(manifest, task_id)
            logger.info(f"Package {manifest.id} {manifest.version} installed")
            return task_id

    def _check_preconditions(self, manifest: PackageManifest):
        if self.packages.get(manifest.id) is not None:
            raise AlreadyInstalled(manifest.id)

        for dependency in manifest.requirements.dependencies:
            if not self.packages.is_installed(dependency):
                raise MissingDependency(manifest.id, dependency)

    def _create_records(self, manifest: PackageManifest, manifest_url: Optional[str]) -> str:
        now = utc_now()
        frontend_config = manifest.frontend.model_dump_json() if manifest.frontend else None

        # The primary key on installed_packages backs the per-id lock.
        try:
            self.packages.create(
                id=manifest.id,
                name=manifest.name,
                version=manifest.version,
                package_type=manifest.install.install_type,
                manifest_url=manifest_url,
                manifest_data=manifest.to_json(),
                status=PackageStatus.INSTALLING.value,
                installed_at=now,
                updated_at=now,
                frontend_config=frontend_config,
                has_window=manifest.frontend is not None,
            )
        except INTEGRITY_ERRORS:
            raise AlreadyInstalled(manifest.id)

        task_id = str(uuid.uuid4())
        self.tasks.create(
            id=task_id,
            package_id=manifest.id,
            task_type=TaskType.INSTALL.value,
            status=TaskStatus.RUNNING.value,
            progress=0,
            total_steps=len(manifest.install.steps),
            created_at=now,
            started_at=now,
        )
        return task_id

    async def _execute_install_steps(self, manifest: PackageManifest, task_id: str):
        total = len(manifest.install.steps)
        for i, raw_step in enumerate(manifest.install.steps):
            step = self.substitutions.substitute_step(raw_step)
            description = step.describe()
            logger.info(f"Executing step {i + 1}/{total}: {description}")
            self.tasks.set_progress(task_id, i, description)

            path = output_path(step)
            existed = path is not None and os.path.lexists(path)
            try:
                await self.interpreter.execute(step, manifest)
            except Exception as e:
                raise InstallFailed(
                    manifest.id, task_id, f"Failed at step {i + 1}: {description}: {e}"
                ) from e

            if path is not None and not existed and os.path.lexists(path):
                self.track_file(manifest.id, path, _file_type(path))

    def _record_success(self, manifest: PackageManifest, task_id: str):
        self.packages.set_status(manifest.id, PackageStatus.INSTALLED)
        self.tasks.update(
            task_id, status=TaskStatus.COMPLETED.value, completed_at=utc_now()
        )
        if manifest.frontend:
            for locale, translations in manifest.frontend.i18n.items():
                self.translations.upsert(manifest.id, locale, json.dumps(translations))

    def _record_failure(self, package_id: str, task_id: str, message: str):
        logger.exception(f"Failed to install package {package_id}: {message}")
        self.packages.set_status(package_id, PackageStatus.ERROR, error_message=message)
        self.tasks.update(
            task_id,
            status=TaskStatus.FAILED.value,
            error_message=message,
            completed_at=utc_now(),
        )

    async def uninstall(self, package_id: str) -> str:
        """Remove a package. Step failures are logged; the records are always removed.

        Returns the id of the uninstall task.
        """
        async with self.locks.hold(package_id):
            package = self.packages.get(package_id)
            if package is None:
                raise PackageNotFound(package_id)

            self.packages.set_status(package_id, PackageStatus.REMOVING)
            manifest = self._load_stored_manifest(package)
            steps = manifest.uninstall.steps if manifest else []

            now = utc_now()
            task_id = str(uuid.uuid4())
            self.tasks.create(
                id=task_id,
                package_id=package_id,
                task_type=TaskType.UNINSTALL.value,
                status=TaskStatus.RUNNING.value,
                progress=0,
                total_steps=len(steps),
                created_at=now,
                started_at=now,
            )

            for i, raw_step in enumerate(steps):
                step = self.substitutions.substitute_step(raw_step)
                description = step.describe()
                logger.info(f"Executing uninstall step {i + 1}/{len(steps)}: {description}")
                self.tasks.set_progress(task_id, i, description)
                try:
                    await self.interpreter.execute(step, manifest)
                except Exception as e:
                    logger.warning(f"Uninstall step failed (continuing): {description}: {e}")

            self._delete_tracked_files(package_id)
            self.files.delete_by_package(package_id)
            self.translations.delete_by_package(package_id)
            self.packages.delete(package_id)

            self.tasks.update(
                task_id, status=TaskStatus.COMPLETED.value, completed_at=utc_now()
            )
            logger.info(f"Package {package_id} uninstalled")
            return task_id

    def _load_stored_manifest(self, package: InstalledPackage) -> Optional[PackageManifest]:
        if not package.manifest_data:
            return None
        try:
            return PackageManifest.model_validate_json(package.manifest_data)
        except ValidationError as e:
            logger.warning(f"Stored manifest for {package.id} is unreadable, skipping uninstall steps: {e}")
            return None

    def _delete_tracked_files(self, package_id: str):
        for tracked in self.files.list_by_package(package_id):
            try:
                if tracked.file_type == "directory":
                    # Only empty directories; contents not tracked stay put.
                    os.rmdir(tracked.path)
                else:
                    os.remove(tracked.path)
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning(f"Failed to remove file {tracked.path}: {e}")

    def list_translations(self, package_id: str) -> Dict[str, Any]:
        return {
            row.locale: json.loads(row.translations)
            for row in self.translations.list_by_package(package_id)
        }

    def get_translations(self, locale: str) -> Dict[str, Any]:
        """Translations for ``locale`` keyed by package id."""
        return {
            row.package_id: json.loads(row.translations)
            for row in self.translations.list_by_locale(locale)
        }

    def list_app_registry(self) -> List[Dict[str, Any]]:
        """Frontend entries for installed packages that open a window."""
        registry = []
        for package in self.packages.list_installed():
            if package.status != PackageStatus.INSTALLED.value or not package.has_window:
                continue
            if not package.frontend_config:
                continue
            frontend = json.loads(package.frontend_config)
            registry.append(
                {
                    "id": package.id,
                    "name": package.name,
                    "icon": frontend["icon"],
                    "gradient": frontend["gradient"],
                    "component": frontend["component"],
                    "window": frontend.get("window") or {},
                }
            )
        return registry


def _file_type(path: str) -> str:
    if os.path.islink(path):
        return "symlink"
    if os.path.isdir(path):
        return "directory"
    return "file"
