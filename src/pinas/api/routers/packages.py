import traceback

from fastapi import APIRouter, HTTPException
from fastapi.logger import logger

from pinas.api.dtos import (
    AppRegistryResponse,
    CatalogResponse,
    InstallRequest,
    InstallResponse,
    PackageListResponse,
    PackageResponse,
    SuccessResponse,
    TaskListResponse,
    TaskResponse,
    TranslationsResponse,
)
from pinas.config import config
from pinas.packages.errors import (
    AlreadyInstalled,
    InstallFailed,
    MissingDependency,
    PackageNotFound,
    ResolutionError,
)
from pinas.packages.resolver import ManifestResolver
from pinas.packages.service import PackageService

router = APIRouter(prefix="/packages", tags=["Packages"])


def _resolver() -> ManifestResolver:
    return ManifestResolver(config.catalog_url, timeout_seconds=config.http_timeout_seconds)


@router.get("", response_model=PackageListResponse)
def list_packages():
    try:
        service = PackageService()
        return PackageListResponse(data=service.list_installed())
    except Exception as e:
        logger.error(f"Error listing packages: {e}\n{traceback.format_exc()}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/catalog", response_model=CatalogResponse)
async def get_catalog():
    catalog = await _resolver().get_catalog()
    return CatalogResponse(data=catalog)


@router.get("/registry", response_model=AppRegistryResponse)
def get_app_registry():
    service = PackageService()
    return AppRegistryResponse(data=service.list_app_registry())


@router.get("/translations/{locale}", response_model=TranslationsResponse)
def get_translations(locale: str):
    service = PackageService()
    return TranslationsResponse(data=service.get_translations(locale))


@router.post("/install", response_model=InstallResponse)
async def install_package(payload: InstallRequest):
    if not (payload.package_id or payload.manifest or payload.manifest_url):
        raise HTTPException(
            status_code=400,
            detail="Either package_id, manifest, or manifest_url is required",
        )

    try:
        manifest, manifest_url = await _resolver().resolve(
            manifest=payload.manifest,
            manifest_url=payload.manifest_url,
            package_id=payload.package_id,
        )
    except ResolutionError as e:
        raise HTTPException(status_code=400, detail=str(e))

    service = PackageService()
    try:
        service.init_directories()
        task_id = await service.install(manifest, manifest_url)
    except AlreadyInstalled as e:
        raise HTTPException(status_code=409, detail=str(e))
    except MissingDependency as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InstallFailed as e:
        raise HTTPException(status_code=500, detail=str(e))
    except Exception as e:
        logger.error(f"Error installing {manifest.id}: {e}\n{traceback.format_exc()}")
        raise HTTPException(status_code=500, detail=str(e))

    return InstallResponse(
        message=f"Package {manifest.id} installed",
        data={"task_id": task_id, "package_id": manifest.id},
    )


@router.get("/task/{task_id}", response_model=TaskResponse)
def get_task(task_id: str):
    service = PackageService()
    task = service.get_task(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail=f"Task '{task_id}' not found")
    return TaskResponse(data=task)


@router.get("/{package_id}", response_model=PackageResponse)
def get_package(package_id: str):
    service = PackageService()
    package = service.get_installed(package_id)
    if package is None:
        raise HTTPException(status_code=404, detail=f"Package '{package_id}' not found")
    return PackageResponse(data=package)


@router.get("/{package_id}/tasks", response_model=TaskListResponse)
def list_package_tasks(package_id: str):
    service = PackageService()
    return TaskListResponse(data=service.list_tasks(package_id))


@router.delete("/{package_id}", response_model=SuccessResponse)
async def uninstall_package(package_id: str):
    service = PackageService()
    try:
        await service.uninstall(package_id)
    except PackageNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error uninstalling {package_id}: {e}\n{traceback.format_exc()}")
        raise HTTPException(status_code=500, detail=str(e))
    return SuccessResponse(message=f"Package {package_id} uninstalled")
