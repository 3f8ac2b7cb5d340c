"""Publish job executed in its own child process.

The supervisor writes a job file into a fresh scratch directory and runs
``python -m ovsx_sync.core.publish_worker <job.json>``. The exit status
tells the supervisor how the attempt ended:

- ``0``: published
- ``3``: the registry already has this version
- ``1``: failed, the last line on stderr carries the error
"""

import json
import logging
import os
import shlex
import subprocess  # nosec B404
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

import requests

from ..errors import (
    AlreadyPublishedError,
    NamespaceCreateError,
    OvsxSyncError,
    PublishError,
)
from ..models import ResolvedSource, SourceKind, TrackedPackage
from ..utils.logging_config import extension_context, setup_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_ALREADY_PUBLISHED = 3

ALREADY_PUBLISHED_MARKER = "is already published"
REPOSITORY_DIR = "repository"


@dataclass
class PublishJob:
    """Everything the worker needs, serialized to the job file.

    The registry token is not part of the job; it is read from ``OVSX_PAT``.
    """

    package: TrackedPackage
    source: ResolvedSource
    work_dir: Path
    registry_url: str = "https://open-vsx.org"
    ovsx_command: str = "ovsx"

    def dump(self, path: Path) -> None:
        """Write the job file."""
        data = {
            "package": self.package.to_store_dict(),
            "source": self.source.to_dict(),
            "work_dir": str(self.work_dir),
            "registry_url": self.registry_url,
            "ovsx_command": self.ovsx_command,
        }
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    @classmethod
    def load(cls, path: Path) -> "PublishJob":
        """Read a job file written by ``dump``."""
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        return cls(
            package=TrackedPackage.model_validate(data["package"]),
            source=ResolvedSource.from_dict(data["source"]),
            work_dir=Path(data["work_dir"]),
            registry_url=data["registry_url"],
            ovsx_command=data["ovsx_command"],
        )


class PublishWorker:
    """Builds and publishes one package to the secondary registry."""

    def __init__(
        self,
        job: PublishJob,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        session: Optional[requests.Session] = None,
        pat: Optional[str] = None,
    ) -> None:
        """Initialize the worker.

        Args:
            job: Job description
            runner: ``subprocess.run`` compatible callable
            session: Optional requests session for asset downloads
            pat: Registry token (defaults to ``OVSX_PAT``)
        """
        self.job = job
        self.runner = runner
        self.session = session or requests.Session()
        self.pat = pat if pat is not None else os.getenv("OVSX_PAT")

    @property
    def repository_dir(self) -> Path:
        return self.job.work_dir / REPOSITORY_DIR

    def run(self) -> None:
        """Execute the job.

        Raises:
            AlreadyPublishedError: If the registry has the version already
            PublishError: If any step fails
        """
        package = self.job.package
        source = self.job.source
        logger.info("Attempting to publish %s to %s", package.id, self.job.registry_url)

        try:
            self.ensure_namespace()
        except NamespaceCreateError as e:
            logger.info(
                "Creating namespace failed -- assuming that it already exists: %s", e
            )

        if source.kind == SourceKind.RELEASE_ASSET:
            self.publish_file(self.download_asset())
        else:
            self.checkout()
            yarn = self.install_dependencies()
            if package.prepublish_command:
                self._run(package.prepublish_command, cwd=self.repository_dir, shell=True)
            if package.extension_file_glob:
                if package.location:
                    logger.warning(
                        "Ignoring `location` property because `extensionFile` was given."
                    )
                self.publish_file(self.find_extension_file())
            else:
                package_path = self.repository_dir / (package.location or ".")
                self.publish_package(package_path, yarn=yarn)

        logger.info("[OK] Successfully published %s", package.id)

    def ensure_namespace(self) -> None:
        """Create the package namespace on the registry.

        Raises:
            NamespaceCreateError: If the registry refuses
        """
        try:
            self._ovsx(["create-namespace", self.job.package.namespace])
        except PublishError as e:
            raise NamespaceCreateError(str(e)) from e

    def download_asset(self) -> Path:
        """Download the release asset into the scratch directory."""
        source = self.job.source
        if not source.link or not source.file:
            raise PublishError(f"{self.job.package.id}: release asset has no link")
        target = self.job.work_dir / source.file
        target.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Downloading %s", source.link)
        try:
            with self.session.get(source.link, stream=True, timeout=60) as response:
                response.raise_for_status()
                with open(target, "wb") as file:
                    for chunk in response.iter_content(chunk_size=1024 * 1024):
                        file.write(chunk)
        except requests.exceptions.RequestException as e:
            raise PublishError(f"Cannot download {source.link}: {e}") from e
        return target

    def checkout(self) -> None:
        """Clone the repository and check out the resolved ref."""
        package = self.job.package
        self._run(
            [
                "git",
                "clone",
                "--recurse-submodules",
                str(package.repository),
                str(self.repository_dir),
            ],
            cwd=self.job.work_dir,
        )
        if self.job.source.ref:
            self._run(["git", "checkout", self.job.source.ref], cwd=self.repository_dir)

    def install_dependencies(self) -> bool:
        """Install with yarn when the repository has a yarn.lock, else npm.

        Returns:
            True if yarn was used
        """
        yarn = (self.repository_dir / "yarn.lock").exists()
        self._run(["yarn" if yarn else "npm", "install"], cwd=self.repository_dir)
        return yarn

    def find_extension_file(self) -> Path:
        """Locate the prebuilt extension file inside the checkout."""
        pattern = str(self.job.package.extension_file_glob)
        matches = sorted(self.repository_dir.glob(pattern))
        if not matches:
            raise PublishError(f"No file matches extensionFile {pattern!r}")
        if len(matches) > 1:
            logger.warning("Several files match %r, using %s", pattern, matches[0])
        return matches[0]

    def publish_file(self, path: Path) -> None:
        self._ovsx(["publish", str(path)])

    def publish_package(self, path: Path, yarn: bool = False) -> None:
        args = ["publish", "--packagePath", str(path)]
        if yarn:
            args.append("--yarn")
        self._ovsx(args, cwd=self.repository_dir)

    def _ovsx(self, args: List[str], cwd: Optional[Path] = None) -> None:
        """Run an ovsx CLI command against the configured registry.

        Raises:
            AlreadyPublishedError: If ovsx reports the version as published
            PublishError: On any other failure
        """
        cmd = shlex.split(self.job.ovsx_command) + args
        cmd += ["--registryUrl", self.job.registry_url]
        if self.pat:
            cmd += ["--pat", self.pat]
        display = " ".join(shlex.split(self.job.ovsx_command) + args)
        try:
            result = self.runner(
                cmd,
                cwd=str(cwd or self.job.work_dir),
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            raise PublishError(f"Cannot run {display}: {e}") from e

        output = "\n".join(part for part in (result.stdout, result.stderr) if part)
        if output:
            logger.info(output.strip())
        if result.returncode != 0:
            if ALREADY_PUBLISHED_MARKER in output:
                raise AlreadyPublishedError(_last_line(output))
            raise PublishError(
                f"{display} failed with exit status {result.returncode}: "
                f"{_last_line(output)}"
            )

    def _run(
        self, cmd: Union[Sequence[str], str], cwd: Path, shell: bool = False
    ) -> None:
        """Run a build step, output goes straight to the parent's streams."""
        logger.info("Running: %s", cmd if isinstance(cmd, str) else " ".join(cmd))
        try:
            self.runner(cmd, cwd=str(cwd), shell=shell, check=True)  # nosec B602
        except subprocess.CalledProcessError as e:
            raise PublishError(f"{e.cmd} failed with exit status {e.returncode}") from e
        except OSError as e:
            raise PublishError(f"Cannot run {cmd}: {e}") from e


def _last_line(text: str) -> str:
    lines = [line.strip() for line in text.strip().splitlines() if line.strip()]
    return lines[-1] if lines else ""


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point of the worker process.

    Args:
        argv: ``[job_path]``

    Returns:
        Process exit status
    """
    args = sys.argv[1:] if argv is None else argv
    setup_logging(log_level=os.getenv("OVSX_SYNC_LOG_LEVEL", "INFO"))
    if len(args) != 1:
        print("usage: publish_worker <job.json>", file=sys.stderr)
        return EXIT_FAILED

    try:
        job = PublishJob.load(Path(args[0]))
    except (OSError, ValueError, KeyError) as e:
        print(f"Cannot read job file {args[0]}: {e}", file=sys.stderr)
        return EXIT_FAILED

    try:
        with extension_context(job.package.id):
            PublishWorker(job).run()
    except AlreadyPublishedError as e:
        logger.info("Could not process extension -- assuming that it already exists")
        logger.info(str(e))
        return EXIT_ALREADY_PUBLISHED
    except OvsxSyncError as e:
        logger.error("[FAIL] Could not process extension %s", job.package.id)
        print(str(e), file=sys.stderr)
        return EXIT_FAILED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
