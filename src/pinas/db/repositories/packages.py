from typing import List, Optional

from pinas.db.models.package import (
    AppTranslation,
    InstalledPackage,
    PackageFile,
    PackageStatus,
    PackageTask,
)
from pinas.db.repositories.base import BaseRepository, utc_now


class InstalledPackageRepository(BaseRepository):
    def __init__(self, manager):
        super().__init__(manager, "installed_packages", model_class=InstalledPackage)

    def list_installed(self) -> List[InstalledPackage]:
        return self.get_all(order_by="name")

    def is_installed(self, package_id: str) -> bool:
        package = self.get(package_id)
        return package is not None and package.status == PackageStatus.INSTALLED.value

    def set_status(
        self, package_id: str, status: PackageStatus, error_message: Optional[str] = None
    ) -> Optional[InstalledPackage]:
        return self.update(
            package_id,
            status=status.value,
            error_message=error_message,
            updated_at=utc_now(),
        )


class PackageTaskRepository(BaseRepository):
    def __init__(self, manager):
        super().__init__(manager, "package_tasks", model_class=PackageTask)

    def list_by_package(self, package_id: str) -> List[PackageTask]:
        return self._fetch_all(
            f"SELECT * FROM package_tasks WHERE package_id = {self.ph} ORDER BY created_at DESC",
            (package_id,),
        )

    def set_progress(self, task_id: str, progress: int, current_step: str):
        # Progress only ever moves forward for a task.
        self._execute(
            f"UPDATE package_tasks SET progress = {self.ph}, current_step = {self.ph} "
            f"WHERE id = {self.ph} AND progress <= {self.ph} AND {self.ph} <= total_steps",
            (progress, current_step, task_id, progress, progress),
        )


class PackageFileRepository(BaseRepository):
    def __init__(self, manager):
        super().__init__(manager, "package_files", model_class=PackageFile)

    def add(self, package_id: str, path: str, file_type: str) -> PackageFile:
        return self.create(
            package_id=package_id, path=path, file_type=file_type, created_at=utc_now()
        )

    def list_by_package(self, package_id: str) -> List[PackageFile]:
        """Tracked files, most recently created first."""
        return self._fetch_all(
            f"SELECT * FROM package_files WHERE package_id = {self.ph} ORDER BY id DESC",
            (package_id,),
        )

    def delete_by_package(self, package_id: str) -> int:
        return self._execute(
            f"DELETE FROM package_files WHERE package_id = {self.ph}", (package_id,)
        )


class TranslationRepository(BaseRepository):
    def __init__(self, manager):
        super().__init__(manager, "app_translations", model_class=AppTranslation)

    def list_by_package(self, package_id: str) -> List[AppTranslation]:
        return self._fetch_all(
            f"SELECT * FROM app_translations WHERE package_id = {self.ph} ORDER BY locale",
            (package_id,),
        )

    def list_by_locale(self, locale: str) -> List[AppTranslation]:
        return self._fetch_all(
            f"SELECT * FROM app_translations WHERE locale = {self.ph} ORDER BY package_id",
            (locale,),
        )

    def upsert(self, package_id: str, locale: str, translations: str):
        now = utc_now()
        ph = self.ph
        self._execute(
            f"""
            INSERT INTO app_translations (package_id, locale, translations, created_at, updated_at)
            VALUES ({ph}, {ph}, {ph}, {ph}, {ph})
            ON CONFLICT (package_id, locale) DO UPDATE SET
                translations = EXCLUDED.translations,
                updated_at = EXCLUDED.updated_at
            """,
            (package_id, locale, translations, now, now),
        )

    def delete_by_package(self, package_id: str) -> int:
        return self._execute(
            f"DELETE FROM app_translations WHERE package_id = {self.ph}", (package_id,)
        )
