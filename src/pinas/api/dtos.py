from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from pinas.db.models.package import InstalledPackage, PackageTask

class BaseResponse(BaseModel):
    status: str = "success"
    message: Optional[str] = None

class SuccessResponse(BaseResponse):
    pass

class InstallRequest(BaseModel):
    package_id: Optional[str] = None
    manifest_url: Optional[str] = None
    manifest: Optional[Dict[str, Any]] = None

class InstallResult(BaseModel):
    task_id: str
    package_id: str

class InstallResponse(BaseResponse):
    data: InstallResult

class PackageListResponse(BaseResponse):
    data: List[InstalledPackage]

class PackageResponse(BaseResponse):
    data: InstalledPackage

class TaskResponse(BaseResponse):
    data: PackageTask

class TaskListResponse(BaseResponse):
    data: List[PackageTask]

class CatalogResponse(BaseResponse):
    data: Dict[str, Any]

class AppRegistryEntry(BaseModel):
    id: str
    name: str
    icon: str
    gradient: str
    component: str
    window: Dict[str, Any] = {}

class AppRegistryResponse(BaseResponse):
    data: List[AppRegistryEntry]

class TranslationsResponse(BaseResponse):
    data: Dict[str, Any]
