"""
External command execution.

Every call to kubectl, k3d or docker goes through a CommandExecutor so that
cancellation, timeouts and logging behave the same everywhere.
"""

import json
import logging
import shlex
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from rollgate.modules.errors import ExecutionError, OperationCancelled
from rollgate.modules.models import ExecutionResult, ResourceKind, ResourceSpec

logger = logging.getLogger("rollgate.executor")

# Exit status reported when the binary itself cannot be found
COMMAND_NOT_FOUND = 127


def format_command(cmd: List[str]) -> str:
    return " ".join(shlex.quote(part) for part in cmd)


@dataclass
class CommandOutput:
    """Raw outcome of one external command."""

    command: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    elapsed: float = 0.0
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def output(self) -> str:
        """stdout followed by stderr, the way a terminal would show them."""
        text = self.stdout
        if self.stderr:
            text = f"{text}\n{self.stderr}" if text else self.stderr
        return text


@dataclass(frozen=True)
class RetryPolicy:
    """Opt-in retry for apply. One attempt means no retry."""

    attempts: int = 1
    delay: float = 0.0

    def __post_init__(self):
        if self.attempts < 1:
            raise ValueError("RetryPolicy.attempts must be >= 1")
        if self.delay < 0:
            raise ValueError("RetryPolicy.delay must be >= 0")


class CommandExecutor:
    """Runs a single external binary synchronously, honouring cancellation."""

    def __init__(
        self,
        binary: str,
        timeout: Optional[float] = 120.0,
        cancel_event: Optional[threading.Event] = None,
        kill_grace: float = 5.0,
        poll_slice: float = 0.2,
    ):
        """
        Args:
            binary: Executable to run (kubectl, k3d, docker)
            timeout: Default per-command timeout in seconds, None for no limit
            cancel_event: Set by the caller to abort the running command
            kill_grace: Seconds to wait after SIGTERM before SIGKILL
            poll_slice: How often to check for cancellation while waiting
        """
        self.binary = binary
        self.timeout = timeout
        self.cancel_event = cancel_event or threading.Event()
        self.kill_grace = kill_grace
        self.poll_slice = poll_slice

    def base_args(self) -> List[str]:
        """Arguments placed between the binary and the caller's arguments."""
        return []

    def run(self, args: List[str], timeout: Optional[float] = None) -> CommandOutput:
        """
        Execute the binary with the given arguments.

        Args:
            args: Command arguments (without the binary)
            timeout: Override of the default timeout, 0 for no limit

        Returns:
            CommandOutput, also for non-zero exits and timeouts

        Raises:
            OperationCancelled: If the cancel event is set before or during the call
        """
        if self.cancel_event.is_set():
            raise OperationCancelled("Run cancelled")

        cmd = [self.binary] + self.base_args() + list(args)
        logger.debug(f"Running: {format_command(cmd)}")
        return self._execute(cmd, self.timeout if timeout is None else timeout)

    def _execute(self, cmd: List[str], timeout: Optional[float]) -> CommandOutput:
        start_time = time.monotonic()

        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except FileNotFoundError as e:
            logger.error(f"Command '{cmd[0]}' could not be executed: {e}")
            return CommandOutput(
                command=cmd,
                returncode=COMMAND_NOT_FOUND,
                stderr=f"{cmd[0]}: command not found. Ensure it is installed and on PATH.",
                elapsed=time.monotonic() - start_time,
            )

        deadline = start_time + timeout if timeout else None

        while True:
            try:
                stdout, stderr = process.communicate(timeout=self.poll_slice)
                break
            except subprocess.TimeoutExpired:
                if self.cancel_event.is_set():
                    logger.warning(f"Cancelling: {format_command(cmd)}")
                    self._terminate(process)
                    raise OperationCancelled(f"Cancelled while running: {format_command(cmd)}")

                if deadline is not None and time.monotonic() >= deadline:
                    logger.error(f"Command timed out after {timeout:g}s: {format_command(cmd)}")
                    stdout, stderr = self._terminate(process)
                    return CommandOutput(
                        command=cmd,
                        returncode=-1,
                        stdout=stdout or "",
                        stderr=(stderr or "") + "Command timed out",
                        elapsed=time.monotonic() - start_time,
                        timed_out=True,
                    )

        return CommandOutput(
            command=cmd,
            returncode=process.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
            elapsed=time.monotonic() - start_time,
        )

    def _terminate(self, process):
        """Stop a running process, escalating to kill after the grace period."""
        process.terminate()
        try:
            return process.communicate(timeout=self.kill_grace)
        except subprocess.TimeoutExpired:
            process.kill()
        try:
            return process.communicate(timeout=self.kill_grace)
        except subprocess.TimeoutExpired:
            # A child that inherited the pipes can keep them open after the kill
            logger.warning(f"Process {process.pid} output still open after kill, abandoning it")
            return "", ""


class KubectlExecutor(CommandExecutor):
    """kubectl front-end used by the orchestrator, probe and diagnostics."""

    def __init__(
        self,
        context: Optional[str] = None,
        retry: Optional[RetryPolicy] = None,
        binary: str = "kubectl",
        **kwargs,
    ):
        super().__init__(binary, **kwargs)
        self.context = context
        self.retry = retry or RetryPolicy()

    def base_args(self) -> List[str]:
        if self.context:
            return ["--context", self.context]
        return []

    def apply(self, spec: ResourceSpec) -> ExecutionResult:
        """
        Apply a resource's manifest, then its image override if it has one.

        Args:
            spec: Resource to apply

        Returns:
            ExecutionResult for the resource

        Raises:
            ExecutionError: If kubectl exits non-zero on every allowed attempt
            OperationCancelled: If cancelled while applying or between retries
        """
        args = ["apply", "-f", spec.manifest_path]
        elapsed = 0.0
        output = None

        for attempt in range(1, self.retry.attempts + 1):
            output = self.run(args)
            elapsed += output.elapsed
            if output.success:
                break
            if attempt < self.retry.attempts:
                logger.warning(
                    f"Apply of '{spec.name}' failed (exit {output.returncode}), "
                    f"retrying in {self.retry.delay:g}s ({attempt}/{self.retry.attempts})"
                )
                if self.cancel_event.wait(self.retry.delay):
                    raise OperationCancelled("Run cancelled")

        stdout = output.stdout
        stderr = output.stderr

        if output.success and spec.image:
            image_output = self.run(self._set_image_args(spec))
            elapsed += image_output.elapsed
            stdout = "\n".join(part for part in (stdout, image_output.stdout) if part)
            stderr = "\n".join(part for part in (stderr, image_output.stderr) if part)
            output = CommandOutput(
                command=image_output.command,
                returncode=image_output.returncode,
                timed_out=image_output.timed_out,
            )

        result = ExecutionResult(
            resource=spec.name,
            succeeded=output.success,
            exit_code=output.returncode,
            stdout=stdout,
            stderr=stderr,
            elapsed=elapsed,
            command=output.command,
            attempts=attempt,
        )

        if not result.succeeded:
            raise ExecutionError(
                f"'{format_command(output.command)}' failed for '{spec.name}' "
                f"(exit {output.returncode}): {stderr.strip()}",
                exit_code=output.returncode,
                stderr=stderr,
                result=result,
            )

        logger.info(f"Applied {spec.kind.value} '{spec.name}' ({elapsed:.1f}s)")
        return result

    def _set_image_args(self, spec: ResourceSpec) -> List[str]:
        container = spec.container or spec.k8s_name
        args = ["set", "image", spec.target, f"{container}={spec.image}"]
        if spec.namespace and spec.kind != ResourceKind.NAMESPACE:
            args = ["-n", spec.namespace] + args
        return args

    def get_json(
        self,
        args: List[str],
        namespace: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Run a kubectl get-style query with -o json and parse the result.

        Args:
            args: kubectl arguments, e.g. ["get", "deployment", "shopcarts"]
            namespace: Namespace passed with -n
            timeout: Override of the default command timeout

        Raises:
            ExecutionError: On non-zero exit or unparseable output
        """
        full_args = list(args) + ["-o", "json"]
        if namespace:
            full_args = ["-n", namespace] + full_args

        output = self.run(full_args, timeout=timeout)
        if not output.success:
            raise ExecutionError(
                f"kubectl {' '.join(args)} failed (exit {output.returncode})",
                exit_code=output.returncode,
                stderr=output.stderr,
            )

        try:
            return json.loads(output.stdout)
        except json.JSONDecodeError as e:
            raise ExecutionError(
                f"kubectl {' '.join(args)} returned invalid JSON: {e}",
                exit_code=output.returncode,
                stderr=output.stderr,
            )
