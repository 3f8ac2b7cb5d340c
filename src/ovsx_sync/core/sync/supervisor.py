"""Runs one isolated, time-bounded publish attempt per package.

Every attempt gets its own scratch directory and its own worker process,
started in a new session so the whole process tree (git, npm, ovsx, build
scripts) can be killed when the deadline passes.
"""

import logging
import os
import shutil
import signal
import subprocess  # nosec B404
import sys
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Union

from ...errors import PublishTimeoutError
from ...models import OutcomeStatus, PublishOutcome, ResolvedSource, TrackedPackage
from ..publish_worker import EXIT_ALREADY_PUBLISHED, EXIT_OK, PublishJob

logger = logging.getLogger(__name__)

WORKER_MODULE = "ovsx_sync.core.publish_worker"
JOB_FILE = "job.json"


class PublishSupervisor:
    """Spawns publish workers and classifies how they end."""

    def __init__(
        self,
        work_root: Union[Path, str],
        registry_url: str = "https://open-vsx.org",
        ovsx_command: str = "ovsx",
        worker_command: Optional[List[str]] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> None:
        """Initialize the supervisor.

        Args:
            work_root: Directory under which scratch directories are created
            registry_url: Secondary registry URL
            ovsx_command: Command line of the ovsx CLI
            worker_command: Command that runs a job file (the job path is
                appended); defaults to this package's worker module
            env: Extra environment for the worker
        """
        self.work_root = Path(work_root)
        self.registry_url = registry_url
        self.ovsx_command = ovsx_command
        self.worker_command = worker_command or [sys.executable, "-m", WORKER_MODULE]
        self.env = env or {}

    def attempt(
        self,
        package: TrackedPackage,
        source: ResolvedSource,
        timeout_minutes: float,
    ) -> PublishOutcome:
        """Publish one package from its resolved source.

        Args:
            package: Package to publish
            source: Source chosen by the resolution policy
            timeout_minutes: Deadline measured from worker spawn

        Returns:
            PublishOutcome of the attempt
        """
        self.work_root.mkdir(parents=True, exist_ok=True)
        work_dir = Path(tempfile.mkdtemp(prefix=f"{package.id}-", dir=self.work_root))
        try:
            job_path = work_dir / JOB_FILE
            PublishJob(
                package=package,
                source=source,
                work_dir=work_dir,
                registry_url=self.registry_url,
                ovsx_command=self.ovsx_command,
            ).dump(job_path)
            return self._run_worker(package, job_path, timeout_minutes)
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)

    def _worker_env(self) -> Dict[str, str]:
        env = dict(os.environ)
        # Also install devDependencies with npm install / yarn install
        env["NODE_ENV"] = "development"
        env.update(self.env)
        return env

    def _run_worker(
        self, package: TrackedPackage, job_path: Path, timeout_minutes: float
    ) -> PublishOutcome:
        cmd = [*self.worker_command, str(job_path)]
        logger.debug("%s: spawning %s", package.id, " ".join(cmd))
        try:
            process = subprocess.Popen(  # nosec B603
                cmd,
                cwd=str(job_path.parent),
                env=self._worker_env(),
                stdin=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                start_new_session=True,
            )
        except OSError as e:
            logger.error("%s: cannot start publish worker: %s", package.id, e)
            return PublishOutcome.failed(f"cannot start publish worker: {e}")

        try:
            stderr = self._wait(process, timeout_minutes)
        except PublishTimeoutError as e:
            logger.error("%s: %s", package.id, e)
            return PublishOutcome(OutcomeStatus.TIMED_OUT, error=str(e))

        if process.returncode == EXIT_OK:
            return PublishOutcome(OutcomeStatus.SUCCEEDED)
        if process.returncode == EXIT_ALREADY_PUBLISHED:
            logger.info("%s: version is already published", package.id)
            return PublishOutcome(
                OutcomeStatus.ALREADY_PUBLISHED, reason="already published"
            )

        error = _last_line(stderr) or f"failed with exit status: {process.returncode}"
        if stderr:
            sys.stderr.write(stderr)
        return PublishOutcome.failed(error)

    def _wait(self, process: subprocess.Popen, timeout_minutes: float) -> str:
        """Wait for the worker, killing it once the deadline passes.

        Raises:
            PublishTimeoutError: If the worker had to be killed
        """
        try:
            _, stderr = process.communicate(timeout=timeout_minutes * 60)
        except subprocess.TimeoutExpired as e:
            self._kill_tree(process)
            process.communicate()
            raise PublishTimeoutError(f"timeout after {timeout_minutes:g} mins") from e
        return stderr or ""

    @staticmethod
    def _kill_tree(process: subprocess.Popen) -> None:
        """SIGKILL the worker's whole process group."""
        try:
            os.killpg(os.getpgid(process.pid), signal.SIGKILL)
        except ProcessLookupError:
            logger.debug("Worker %d exited before it could be killed", process.pid)


def _last_line(text: Optional[str]) -> str:
    if not text:
        return ""
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    return lines[-1] if lines else ""
