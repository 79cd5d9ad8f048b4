from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class PortMapping(BaseModel):
    host: int
    container: int
    protocol: str = "tcp"


class VolumeMapping(BaseModel):
    host: str
    container: str
    readonly: bool = False


class EnvVar(BaseModel):
    name: str
    value: str


class ContainerConfig(BaseModel):
    name: str
    hostname: Optional[str] = None
    image: Optional[str] = None
    restart: Optional[str] = None  # "no", "always", "unless-stopped", "on-failure"
    network: Optional[str] = None
    ports: List[PortMapping] = Field(default_factory=list)
    volumes: List[VolumeMapping] = Field(default_factory=list)
    environment: List[EnvVar] = Field(default_factory=list)
    devices: List[str] = Field(default_factory=list)
    labels: Dict[str, str] = Field(default_factory=dict)
    privileged: bool = False


class _Step(BaseModel):
    def describe(self) -> str:
        """Short human readable form used for task progress and error text."""
        parts = []
        for key, value in self.model_dump(exclude={"action"}).items():
            if key == "content":
                value = f"<{len(value)} bytes base64>"
            elif key == "config":
                value = value.get("name")
            parts.append(f"{key}={value}")
        return f"{self.action}(" + ", ".join(parts) + ")"


class DownloadStep(_Step):
    action: Literal["download"] = "download"
    url: str
    sha256: Optional[str] = None
    dest: str


class ExtractStep(_Step):
    action: Literal["extract"] = "extract"
    src: str
    dest: str


class CopyStep(_Step):
    action: Literal["copy"] = "copy"
    src: str
    dest: str


class SymlinkStep(_Step):
    action: Literal["symlink"] = "symlink"
    src: str
    dest: str


class ChmodStep(_Step):
    action: Literal["chmod"] = "chmod"
    path: str
    mode: str


class MkdirStep(_Step):
    action: Literal["mkdir"] = "mkdir"
    path: str


class TemplateStep(_Step):
    action: Literal["template"] = "template"
    src: str  # key in PackageManifest.files
    dest: str


class WriteFileStep(_Step):
    action: Literal["write_file"] = "write_file"
    dest: str
    content: str  # base64


class ExecStep(_Step):
    action: Literal["exec"] = "exec"
    command: str
    ignore_error: bool = False


class DeleteStep(_Step):
    action: Literal["delete"] = "delete"
    path: str


class ContainerPullStep(_Step):
    action: Literal["docker_pull"] = "docker_pull"
    image: str


class ContainerCreateStep(_Step):
    action: Literal["docker_create"] = "docker_create"
    config: ContainerConfig


class ContainerStartStep(_Step):
    action: Literal["docker_start"] = "docker_start"
    container: str


class ContainerStopStep(_Step):
    action: Literal["docker_stop"] = "docker_stop"
    container: str


class ContainerRemoveStep(_Step):
    action: Literal["docker_rm"] = "docker_rm"
    container: str


InstallStep = Annotated[
    Union[
        DownloadStep,
        ExtractStep,
        CopyStep,
        SymlinkStep,
        ChmodStep,
        MkdirStep,
        TemplateStep,
        WriteFileStep,
        ExecStep,
        DeleteStep,
        ContainerPullStep,
        ContainerCreateStep,
        ContainerStartStep,
        ContainerStopStep,
        ContainerRemoveStep,
    ],
    Field(discriminator="action"),
]

STEP_TYPES = (
    DownloadStep,
    ExtractStep,
    CopyStep,
    SymlinkStep,
    ChmodStep,
    MkdirStep,
    TemplateStep,
    WriteFileStep,
    ExecStep,
    DeleteStep,
    ContainerPullStep,
    ContainerCreateStep,
    ContainerStartStep,
    ContainerStopStep,
    ContainerRemoveStep,
)


class Requirements(BaseModel):
    min_ram: Optional[int] = None  # MB
    min_disk: Optional[int] = None  # MB
    arch: List[str] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)


class InstallConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    install_type: str = Field(alias="type")  # "binary" or "docker"
    steps: List[InstallStep] = Field(default_factory=list)
    image: Optional[str] = None
    container: Optional[ContainerConfig] = None


class UninstallConfig(BaseModel):
    steps: List[InstallStep] = Field(default_factory=list)


class WindowConfig(BaseModel):
    width: int = 900
    height: int = 600
    min_width: int = 600
    min_height: int = 400


class FrontendConfig(BaseModel):
    icon: str  # e.g. "mdi:docker"
    gradient: str  # e.g. "from-blue-500 to-blue-600"
    component: str
    window: WindowConfig = Field(default_factory=WindowConfig)
    i18n: Dict[str, Any] = Field(default_factory=dict)


class PackageManifest(BaseModel):
    id: str
    name: str
    version: str
    description: Dict[str, str] = Field(default_factory=dict)
    author: Optional[str] = None
    license: Optional[str] = None
    website: Optional[str] = None
    icon: Optional[str] = None
    requirements: Requirements = Field(default_factory=Requirements)
    install: InstallConfig
    uninstall: UninstallConfig = Field(default_factory=UninstallConfig)
    files: Dict[str, str] = Field(default_factory=dict)  # name -> base64 content
    config: Dict[str, Any] = Field(default_factory=dict)
    frontend: Optional[FrontendConfig] = None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

