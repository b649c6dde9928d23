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
Lifecycle management for services run as native host processes.
"""
import logging
import os
from typing import Optional, Dict

from ..errors import ServiceStartError
from ..MODELS.orchestration_config import OrchestrationConfig
from ..MODELS.service_definition import ServiceDefinition
from ..RUNNERS.process_runner import ProcessRunner
from .health_monitor import run_health_check
from .service_manager import ServiceManager

logger = logging.getLogger(__name__)


class ProcessManager(ServiceManager):
    """
    Runs a service's entrypoint and command directly on the host.
    Images are not used; ports and volumes are only informational.
    """
    def __init__(self,
                 service_def: ServiceDefinition,
                 config: OrchestrationConfig,
                 dry_run: bool = False):
        super().__init__(service_def, config, dry_run)
        log_path = os.path.join(config.project_dir, ".stackup", "logs", f"{service_def.name}.log")
        self.runner = ProcessRunner(service_def.name, log_file=log_path)

    @property
    def working_dir(self) -> str:
        # container paths are mapped under the project directory
        return os.path.join(self.config.project_dir, (self.service_def.working_dir or "").lstrip("/"))

    def build(self):
        if self.service_def.build:
            logger.info("[%s] Native mode does not build images, skipping", self.name)

    def start(self, extra_env: Optional[Dict[str, str]] = None):
        """
        Prepares the environment and starts the service process.

        :param extra_env: Additional environment variables (e.g., service discovery).
        :raises ServiceStartError: If there is nothing to run or the process cannot start.
        """
        command = list(self.service_def.entrypoint) + list(self.service_def.command)
        if not command:
            raise ServiceStartError(self.name, "no entrypoint or command to run natively")

        env = self.env_manager.get_process_environment(self.service_def, extra_env)

        if self.dry_run:
            logger.info("[dry-run] [%s] %s", self.name, " ".join(command))
            return
        try:
            self.runner.start(command, env=env, working_dir=self.working_dir)
        except OSError as e:
            raise ServiceStartError(self.name, str(e)) from e

    def stop(self):
        self.runner.stop()

    def status(self) -> str:
        if self.runner.is_running():
            return "running"
        exit_code = self.runner.get_exit_code()
        if exit_code is None:
            return "stopped"
        return f"exited({exit_code})"

    def exit_code(self) -> Optional[int]:
        return self.runner.get_exit_code()

    def probe_health(self) -> bool:
        hc = self.service_def.health_check
        if hc is None:
            return self.runner.is_running()
        env = self.env_manager.get_process_environment(self.service_def)
        result = run_health_check(hc, env, cwd=self.working_dir)
        if not result.success:
            logger.debug("[%s] Health check failed: %s", self.name, result.output)
        return result.success
