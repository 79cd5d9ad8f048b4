from enum import Enum
from typing import Optional

from pydantic import BaseModel


class PackageStatus(str, Enum):
    INSTALLING = "installing"
    INSTALLED = "installed"
    UPDATING = "updating"
    REMOVING = "removing"
    ERROR = "error"


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskType(str, Enum):
    INSTALL = "install"
    UNINSTALL = "uninstall"


class InstalledPackage(BaseModel):
    id: str
    name: str
    version: str
    package_type: str
    manifest_url: Optional[str] = None
    manifest_data: Optional[str] = None
    status: str
    error_message: Optional[str] = None
    installed_at: str
    updated_at: str
    frontend_config: Optional[str] = None  # JSON FrontendConfig
    has_window: bool = False


class PackageTask(BaseModel):
    id: str
    package_id: str
    task_type: str
    status: str
    progress: int = 0
    total_steps: int = 0
    current_step: Optional[str] = None
    error_message: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    created_at: str


class PackageFile(BaseModel):
    id: int
    package_id: str
    path: str
    file_type: str
    created_at: str


class AppTranslation(BaseModel):
    id: int
    package_id: str
    locale: str
    translations: str  # JSON
    created_at: str
    updated_at: str
