import platform
import re
from typing import Dict, Optional

from pinas.packages.models import ContainerCreateStep

TOKEN_PATTERN = re.compile(r"\$\{([A-Za-z0-9_]+)\}")

_ARCH_ALIASES = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
}


def normalize_arch(machine: Optional[str] = None) -> str:
    """Normalize a machine name to the x86_64/aarch64 spelling used by manifests."""
    value = (machine if machine is not None else platform.machine()).lower()
    return _ARCH_ALIASES.get(value, value)


class SubstitutionTable:
    """Values for the ``${TOKEN}`` placeholders allowed in step fields.

    Built once per engine instance and passed explicitly to the orchestrator,
    so step execution can be exercised with any directory layout.
    """

    def __init__(
        self,
        data_dir: str,
        packages_dir: str,
        downloads_dir: str,
        bin_dir: str,
        arch: Optional[str] = None,
    ):
        self.data_dir = data_dir
        self.packages_dir = packages_dir
        self.downloads_dir = downloads_dir
        self.bin_dir = bin_dir
        self.arch = arch or normalize_arch()

    @classmethod
    def from_config(cls, config) -> "SubstitutionTable":
        return cls(
            data_dir=config.data_directory,
            packages_dir=config.packages_directory,
            downloads_dir=config.downloads_directory,
            bin_dir=config.bin_directory,
        )

    def as_dict(self) -> Dict[str, str]:
        return {
            "DATA_DIR": self.data_dir,
            "PACKAGES_DIR": self.packages_dir,
            "DOWNLOADS_DIR": self.downloads_dir,
            "BIN_DIR": self.bin_dir,
            "ARCH": self.arch,
        }

    def substitute(self, value: str) -> str:
        tokens = self.as_dict()

        def replace(match):
            return tokens.get(match.group(1), match.group(0))

        return TOKEN_PATTERN.sub(replace, value)

    def substitute_step(self, step):
        """Return a copy of ``step`` with every string field substituted.

        For container creation only the host side of each volume is
        substituted.
        """
        if isinstance(step, ContainerCreateStep):
            config = step.config.model_copy(deep=True)
            for volume in config.volumes:
                volume.host = self.substitute(volume.host)
            return step.model_copy(update={"config": config})

        updates = {
            name: self.substitute(value)
            for name, value in step
            if name != "action" and isinstance(value, str)
        }
        return step.model_copy(update=updates)
