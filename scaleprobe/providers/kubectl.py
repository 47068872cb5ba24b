"""Control-plane client backed by kubectl subprocess calls."""

from __future__ import annotations

import logging
import subprocess

from scaleprobe.constants import KUBECTL_COMMAND_TIMEOUT_SECONDS
from scaleprobe.providers.exceptions import ProviderAPIError, ProviderConnectionError

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124
NOT_FOUND_EXIT_CODE = 127


class KubectlClient:
    """Apply, delete and inspect cluster resources with kubectl.

    Parameters
    ----------
    context : str | None
        kubeconfig context to use; the current context when None
    command_timeout : float
        Timeout in seconds for each kubectl invocation
    binary : str
        kubectl executable name or path
    """

    def __init__(
        self,
        context: str | None = None,
        command_timeout: float = KUBECTL_COMMAND_TIMEOUT_SECONDS,
        binary: str = "kubectl",
    ) -> None:
        self.context = context
        self.command_timeout = command_timeout
        self.binary = binary

    def _command(self, args: list[str], namespace: str | None) -> list[str]:
        cmd = [self.binary]
        if self.context:
            cmd.extend(["--context", self.context])
        cmd.extend(args)
        if namespace is not None:
            cmd.extend(["-n", namespace])
        return cmd

    def _run(self, cmd: list[str], input_text: str | None = None) -> subprocess.CompletedProcess:
        logger.debug("Running %s", " ".join(cmd))
        try:
            return subprocess.run(
                cmd,
                input=input_text,
                capture_output=True,
                text=True,
                timeout=self.command_timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise ProviderConnectionError(f"{self.binary} not found: {e}") from e
        except subprocess.TimeoutExpired as e:
            raise ProviderConnectionError(
                f"{' '.join(cmd)} timed out after {self.command_timeout}s"
            ) from e

    def _run_for_exit_code(self, cmd: list[str], input_text: str | None = None) -> int:
        """Run kubectl and map failures to exit codes instead of exceptions."""
        try:
            result = self._run(cmd, input_text)
        except ProviderConnectionError as e:
            logger.error("%s", e)
            if isinstance(e.__cause__, subprocess.TimeoutExpired):
                return TIMEOUT_EXIT_CODE
            return NOT_FOUND_EXIT_CODE

        if result.returncode != 0:
            logger.error(
                "%s failed: %s",
                " ".join(cmd),
                result.stderr.strip(),
                extra={"stream": "kubectl"},
            )
        elif result.stdout.strip():
            logger.debug("%s", result.stdout.strip(), extra={"stream": "kubectl"})
        return result.returncode

    def apply(self, manifest: str, namespace: str | None) -> int:
        """Apply a manifest passed on stdin and return the kubectl exit code."""
        return self._run_for_exit_code(
            self._command(["apply", "-f", "-"], namespace), input_text=manifest
        )

    def delete(self, ref: str, namespace: str | None) -> int:
        """Delete a resource; a resource that is already gone is not an error."""
        return self._run_for_exit_code(
            self._command(["delete", ref, "--ignore-not-found", "--wait=false"], namespace)
        )

    def get_replica_count(self, deployment: str, namespace: str) -> int:
        """Read ``.spec.replicas`` of a Deployment.

        Raises
        ------
        ProviderAPIError
            If kubectl fails or prints something that is not a count
        ProviderConnectionError
            If kubectl is missing or times out
        """
        cmd = self._command(
            ["get", f"deployment.apps/{deployment}", "-o", "jsonpath={.spec.replicas}"],
            namespace,
        )
        result = self._run(cmd)
        if result.returncode != 0:
            raise ProviderAPIError(
                f"kubectl get deployment {deployment} failed: {result.stderr.strip()}",
                status_code=result.returncode,
            )

        output = result.stdout.strip().strip('"')
        if not output:
            return 0
        try:
            return int(output)
        except ValueError as e:
            raise ProviderAPIError(
                f"Unexpected replica count output for {deployment}: {output!r}"
            ) from e
