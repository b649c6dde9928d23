# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Readiness checks for depends_on conditions: running health check commands and
waiting, with tenacity, until a dependency is healthy or has completed.
"""
import logging
import subprocess
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Union

from tenacity import RetryError, Retrying, retry_if_result, stop_after_delay, stop_any, wait_fixed

from ..errors import ReadinessTimeoutError, ServiceStartError
from ..MODELS.service_definition import DependencyCondition, HealthCheck
from .service_manager import ServiceManager

logger = logging.getLogger(__name__)


@dataclass
class CheckResult:
    """Outcome of one health check run."""

    success: bool
    output: str = ""


def run_health_check(hc: HealthCheck, env: Dict[str, str], cwd: Optional[str] = None) -> CheckResult:
    """
    Run a health check command on the host.

    Args:
        hc: The health check definition.
        env: Environment for the check command.
        cwd: Working directory for the check command.

    Returns:
        CheckResult with the command's output or error.
    """
    cmd = hc.test
    use_shell = False

    # Parse command format
    if cmd[0] == "CMD":
        real_cmd: Union[List[str], str] = cmd[1:]
    elif cmd[0] == "CMD-SHELL":
        real_cmd = " ".join(cmd[1:])
        use_shell = True
    else:
        real_cmd = cmd

    try:
        result = subprocess.run(
            real_cmd,
            shell=use_shell,
            env=env,
            cwd=cwd,
            capture_output=True,
            timeout=hc.timeout,
            text=True,
        )
    except subprocess.TimeoutExpired:
        return CheckResult(False, "Health check timed out")
    except OSError as e:
        return CheckResult(False, str(e))

    if result.returncode == 0:
        return CheckResult(True, result.stdout[:500] if result.stdout else "")
    return CheckResult(
        False,
        result.stderr[:500] if result.stderr else f"Exit code: {result.returncode}",
    )


class HealthChecker:
    """
    Waits for a started service to satisfy a depends_on condition.
    """

    def __init__(self, timeout: float = 60.0, poll_interval: float = 1.0):
        """
        :param timeout: Seconds to wait for a condition before giving up.
        :param poll_interval: Seconds between probes.
        """
        self.timeout = timeout
        self.poll_interval = poll_interval

    def _retrying(self, abort: Optional[threading.Event] = None) -> Retrying:
        if abort is None:
            return Retrying(
                stop=stop_after_delay(self.timeout),
                wait=wait_fixed(self.poll_interval),
                retry=retry_if_result(lambda outcome: not outcome),
            )
        # abort.wait ends a pending sleep once bring-up is aborted
        return Retrying(
            stop=stop_any(stop_after_delay(self.timeout), lambda retry_state: abort.is_set()),
            wait=wait_fixed(self.poll_interval),
            retry=retry_if_result(lambda outcome: not outcome),
            sleep=abort.wait,
        )

    def wait_for(self,
                 manager: ServiceManager,
                 condition: DependencyCondition,
                 abort: Optional[threading.Event] = None):
        """
        Blocks until the service reaches ``condition``, or until ``abort`` is set.

        :raises ReadinessTimeoutError: If the condition is not reached in time.
        :raises ServiceStartError: If the service exits while it should be
            healthy, completes with a non-zero exit code, or the wait is aborted.
        """
        name = manager.service_def.name
        if condition == DependencyCondition.STARTED:
            return
        if condition == DependencyCondition.HEALTHY:
            if manager.service_def.health_check is None:
                logger.warning("Service %s has no healthcheck; treating it as healthy once started", name)
                return
            logger.info("Waiting for %s to become healthy...", name)
            probe = lambda: self._healthy(manager)
        else:
            logger.info("Waiting for %s to complete...", name)
            probe = lambda: manager.exit_code() is not None

        try:
            self._retrying(abort)(probe)
        except RetryError:
            if abort is not None and abort.is_set():
                raise ServiceStartError(name, "bring-up aborted while waiting for readiness") from None
            raise ReadinessTimeoutError(name, condition.value, self.timeout) from None

        if condition == DependencyCondition.COMPLETED_SUCCESSFULLY:
            code = manager.exit_code()
            if code != 0:
                raise ServiceStartError(name, f"exited with code {code}")
        logger.info("Service %s is %s", name, "healthy" if condition == DependencyCondition.HEALTHY else "complete")

    @staticmethod
    def _healthy(manager: ServiceManager) -> bool:
        if manager.exit_code() is not None:
            raise ServiceStartError(manager.service_def.name, "exited before becoming healthy")
        return manager.probe_health()
