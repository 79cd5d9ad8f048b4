import base64

import pytest

from pinas.db.manager import DatabaseManager
from pinas.packages.errors import ContainerRuntimeError
from pinas.packages.models import PackageManifest
from pinas.packages.service import PackageLocks, PackageService
from pinas.packages.substitution import SubstitutionTable


class FakeRuntime:
    """Records container calls instead of talking to a Docker daemon."""

    def __init__(self):
        self.calls = []
        self.fail_on = set()

    def _record(self, op, *args):
        self.calls.append((op,) + args)
        if op in self.fail_on:
            raise ContainerRuntimeError(f"{op} failed")

    async def pull(self, image):
        self._record("pull", image)

    async def create(self, config, default_image=None):
        self._record("create", config.name, config.image or default_image)
        return f"{config.name}-id"

    async def start(self, ref):
        self._record("start", ref)

    async def stop(self, ref, timeout=None):
        self._record("stop", ref)

    async def remove(self, ref, force=True):
        self._record("remove", ref)


def b64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def make_manifest(package_id="demo", steps=None, uninstall=None, **extra) -> PackageManifest:
    data = {
        "id": package_id,
        "name": package_id.title(),
        "version": "1.0.0",
        "install": {"type": "binary", "steps": steps or []},
        "uninstall": {"steps": uninstall or []},
    }
    data.update(extra)
    return PackageManifest.model_validate(data)


@pytest.fixture
def db(tmp_path):
    manager = DatabaseManager(f"sqlite:///{tmp_path}/pinas.db")
    manager.init_schema()
    return manager


@pytest.fixture
def substitutions(tmp_path):
    data_dir = tmp_path / "data"
    return SubstitutionTable(
        data_dir=str(data_dir),
        packages_dir=str(data_dir / "apps"),
        downloads_dir=str(data_dir / "downloads"),
        bin_dir=str(data_dir / "bin"),
        arch="x86_64",
    )


@pytest.fixture
def runtime():
    return FakeRuntime()


@pytest.fixture
def service(db, runtime, substitutions):
    svc = PackageService(
        db=db, runtime=runtime, substitutions=substitutions, locks=PackageLocks()
    )
    svc.init_directories()
    return svc
