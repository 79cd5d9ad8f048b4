"""Interpreter for manifest install/uninstall steps.

Each call executes exactly one, already substituted, step. The interpreter
knows nothing about packages records or tasks; deciding whether a failure
aborts the sequence is up to the caller.
"""

import asyncio
import base64
import binascii
import hashlib
import http.client
import logging
import os
import shutil
import tarfile
import zipfile
from typing import Optional
from urllib.error import HTTPError, URLError

from pinas.packages.errors import (
    DownloadError,
    ExecError,
    HashMismatch,
    MissingTemplateFile,
    StepError,
)
from pinas.packages.fetch import fetch_bytes
from pinas.packages.models import (
    STEP_TYPES,
    ChmodStep,
    ContainerCreateStep,
    ContainerPullStep,
    ContainerRemoveStep,
    ContainerStartStep,
    ContainerStopStep,
    CopyStep,
    DeleteStep,
    DownloadStep,
    ExecStep,
    ExtractStep,
    MkdirStep,
    PackageManifest,
    SymlinkStep,
    TemplateStep,
    WriteFileStep,
)

logger = logging.getLogger(__name__)


class StepInterpreter:
    def __init__(self, runtime, http_timeout: int = 30, exec_timeout: int = 30):
        self.runtime = runtime
        self.http_timeout = http_timeout
        self.exec_timeout = exec_timeout
        self._handlers = {
            DownloadStep: self._download,
            ExtractStep: self._extract,
            CopyStep: self._copy,
            SymlinkStep: self._symlink,
            ChmodStep: self._chmod,
            MkdirStep: self._mkdir,
            TemplateStep: self._template,
            WriteFileStep: self._write_file,
            ExecStep: self._exec,
            DeleteStep: self._delete,
            ContainerPullStep: self._container_pull,
            ContainerCreateStep: self._container_create,
            ContainerStartStep: self._container_start,
            ContainerStopStep: self._container_stop,
            ContainerRemoveStep: self._container_remove,
        }
        missing = [t.__name__ for t in STEP_TYPES if t not in self._handlers]
        if missing:
            raise RuntimeError(f"No handler for step types: {', '.join(missing)}")

    async def execute(self, step, manifest: PackageManifest):
        handler = self._handlers.get(type(step))
        if handler is None:
            raise StepError(f"Unsupported step: {step!r}")
        try:
            await handler(step, manifest)
        except StepError:
            raise
        except (OSError, ValueError, tarfile.TarError, zipfile.BadZipFile) as e:
            raise StepError(str(e)) from e

    async def _download(self, step: DownloadStep, manifest):
        logger.info(f"Downloading {step.url} to {step.dest}")
        try:
            body = await asyncio.to_thread(fetch_bytes, step.url, self.http_timeout)
        except HTTPError as e:
            raise DownloadError(f"Download failed: HTTP {e.code}") from e
        except URLError as e:
            raise DownloadError(f"Download failed: {e.reason}") from e
        except http.client.HTTPException as e:
            raise DownloadError(f"Download failed: {e!r}") from e

        if step.sha256:
            actual = hashlib.sha256(body).hexdigest()
            if actual != step.sha256.lower():
                raise HashMismatch(step.sha256, actual)
            logger.info(f"SHA256 verified: {actual}")

        await asyncio.to_thread(_write_bytes, step.dest, body)
        logger.info(f"Downloaded {len(body)} bytes to {step.dest}")

    async def _extract(self, step: ExtractStep, manifest):
        logger.info(f"Extracting {step.src} to {step.dest}")
        # Decompression is CPU bound; keep it off the event loop.
        await asyncio.to_thread(extract_archive, step.src, step.dest)
        logger.info("Extraction complete")

    async def _copy(self, step: CopyStep, manifest):
        await asyncio.to_thread(_copy_path, step.src, step.dest)

    async def _symlink(self, step: SymlinkStep, manifest):
        _ensure_parent(step.dest)
        if os.path.lexists(step.dest):
            os.remove(step.dest)
        os.symlink(step.src, step.dest)

    async def _chmod(self, step: ChmodStep, manifest):
        try:
            mode = int(step.mode, 8)
        except ValueError:
            raise StepError(f"Invalid octal mode: {step.mode}")
        os.chmod(step.path, mode)

    async def _mkdir(self, step: MkdirStep, manifest):
        os.makedirs(step.path, exist_ok=True)

    async def _template(self, step: TemplateStep, manifest):
        content = manifest.files.get(step.src)
        if content is None:
            raise MissingTemplateFile(step.src)
        await asyncio.to_thread(_write_bytes, step.dest, _decode_base64(content))

    async def _write_file(self, step: WriteFileStep, manifest):
        await asyncio.to_thread(_write_bytes, step.dest, _decode_base64(step.content))

    async def _exec(self, step: ExecStep, manifest):
        logger.info(f"Running command: {step.command}")
        process = await asyncio.create_subprocess_shell(
            step.command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        try:
            stdout, _ = await asyncio.wait_for(
                process.communicate(), timeout=self.exec_timeout
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            if step.ignore_error:
                logger.warning(f"Command timed out (ignored): {step.command}")
                return
            raise ExecError(step.command, None, timed_out=True)

        output = stdout.decode("utf-8", errors="replace") if stdout else ""
        if process.returncode != 0:
            if step.ignore_error:
                logger.warning(
                    f"Command exited with {process.returncode} (ignored): {step.command}"
                )
                return
            raise ExecError(step.command, process.returncode, output)

    async def _delete(self, step: DeleteStep, manifest):
        if not os.path.lexists(step.path):
            return
        if os.path.isdir(step.path) and not os.path.islink(step.path):
            await asyncio.to_thread(shutil.rmtree, step.path)
        else:
            os.remove(step.path)

    async def _container_pull(self, step: ContainerPullStep, manifest):
        await self.runtime.pull(step.image)

    async def _container_create(self, step: ContainerCreateStep, manifest):
        default_image = manifest.install.image
        if not default_image and manifest.install.container:
            default_image = manifest.install.container.image
        await self.runtime.create(step.config, default_image=default_image)

    async def _container_start(self, step: ContainerStartStep, manifest):
        await self.runtime.start(step.container)

    async def _container_stop(self, step: ContainerStopStep, manifest):
        await self.runtime.stop(step.container)

    async def _container_remove(self, step: ContainerRemoveStep, manifest):
        await self.runtime.remove(step.container, force=True)


def output_path(step) -> Optional[str]:
    """Filesystem path a step creates, if any; used for file tracking."""
    if isinstance(
        step,
        (DownloadStep, ExtractStep, CopyStep, SymlinkStep, TemplateStep, WriteFileStep),
    ):
        return step.dest
    if isinstance(step, MkdirStep):
        return step.path
    return None


def extract_archive(src: str, dest: str):
    os.makedirs(dest, exist_ok=True)
    if zipfile.is_zipfile(src):
        with zipfile.ZipFile(src) as archive:
            archive.extractall(dest)
        return

    if not tarfile.is_tarfile(src):
        raise StepError(f"Unsupported archive format: {src}")

    root = os.path.realpath(dest)
    with tarfile.open(src, "r:*") as archive:
        for member in archive.getmembers():
            target = os.path.realpath(os.path.join(root, member.name))
            if target != root and not target.startswith(root + os.sep):
                raise StepError(f"Archive member escapes destination: {member.name}")
        if hasattr(tarfile, "data_filter"):
            archive.extractall(dest, filter="data")
        else:
            archive.extractall(dest)


def _decode_base64(content: str) -> bytes:
    try:
        return base64.b64decode("".join(content.split()), validate=True)
    except binascii.Error as e:
        raise StepError(f"Base64 decode error: {e}") from e


def _ensure_parent(path: str):
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)


def _write_bytes(path: str, data: bytes):
    _ensure_parent(path)
    with open(path, "wb") as f:
        f.write(data)


def _copy_path(src: str, dest: str):
    _ensure_parent(dest)
    if os.path.isdir(src):
        shutil.copytree(src, dest, dirs_exist_ok=True)
    else:
        shutil.copy2(src, dest)
