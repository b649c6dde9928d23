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
Lifecycle management for services run as containers through the engine CLI.
"""
import logging
import os
import tempfile
from typing import Dict, Optional, Tuple

from ..errors import EngineError, ServiceStartError
from ..MODELS.orchestration_config import OrchestrationConfig
from ..MODELS.service_definition import ServiceDefinition
from ..RUNNERS.container_command import ContainerCommandBuilder
from ..RUNNERS.container_engine import ContainerEngine
from .service_manager import ServiceManager

logger = logging.getLogger(__name__)

STATE_FORMAT = "{{.State.Status}} {{.State.ExitCode}}"
HEALTH_FORMAT = "{{if .State.Health}}{{.State.Health.Status}}{{end}}"


class ContainerManager(ServiceManager):
    """
    Manages one service's container.
    """
    def __init__(self,
                 service_def: ServiceDefinition,
                 config: OrchestrationConfig,
                 engine: ContainerEngine,
                 builder: Optional[ContainerCommandBuilder] = None):
        """
        :param service_def: Definition of the service.
        :param config: The configuration the service belongs to.
        :param engine: Runs the engine commands.
        :param builder: Shared command builder for the project.
        """
        super().__init__(service_def, config, engine.dry_run)
        self.engine = engine
        self.builder = builder or ContainerCommandBuilder(config)

    @property
    def container_name(self) -> str:
        return self.builder.container_name(self.service_def)

    def build(self):
        if not self.service_def.build:
            return
        logger.info("Building %s as %s", self.name, self.builder.image_tag(self.service_def))
        try:
            self.engine.run(self.builder.build_command(self.service_def))
        except EngineError as e:
            raise ServiceStartError(self.name, f"build failed: {e.stderr.strip() or e}") from e

    def start(self, extra_env: Optional[Dict[str, str]] = None):
        """
        Replaces any leftover container of the same name and starts a new one.

        ``extra_env`` is ignored: containers reach each other by service name
        on the project network.

        :raises ServiceStartError: If the engine refuses to start the container.
        """
        env = self.env_manager.get_service_environment(self.service_def)
        self.engine.run(self.builder.remove_command(self.service_def), check=False)
        logger.info("Starting container %s", self.container_name)
        env_file = self._write_env_file(env) if env else None
        try:
            self.engine.run(self.builder.run_command(self.service_def, env_file))
        except EngineError as e:
            raise ServiceStartError(self.name, e.stderr.strip() or str(e)) from e
        finally:
            if env_file:
                os.remove(env_file)

    def _write_env_file(self, env: Dict[str, str]) -> str:
        """
        Writes the container environment to a temporary file only the current
        user can read, for ``docker run --env-file``.

        :raises ServiceStartError: If a value spans several lines, which the
            engine's env file format cannot carry.
        """
        for key, value in env.items():
            if "\n" in value or "\r" in value:
                raise ServiceStartError(self.name, f"environment variable {key} contains a line break")
        fd, path = tempfile.mkstemp(prefix=f"stackup-{self.name}-", suffix=".env")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            for key, value in env.items():
                f.write(f"{key}={value}\n")
        return path

    def stop(self):
        logger.info("Stopping container %s", self.container_name)
        self.engine.run(self.builder.stop_command(self.service_def), check=False)
        self.engine.run(self.builder.remove_command(self.service_def), check=False)

    def _state(self) -> Optional[Tuple[str, int]]:
        """
        (status, exit code) from the engine, or None if the container does not exist.
        """
        result = self.engine.run(self.builder.inspect_command(self.service_def, STATE_FORMAT), check=False)
        output = (result.stdout or "").strip()
        if result.returncode != 0 or not output:
            return None
        status, _, code = output.partition(" ")
        try:
            return status, int(code or 0)
        except ValueError:
            return status, 0

    def status(self) -> str:
        if self.dry_run:
            return "unknown"
        state = self._state()
        if state is None:
            return "stopped"
        status, code = state
        if status == "exited":
            return f"exited({code})"
        return status

    def exit_code(self) -> Optional[int]:
        state = self._state()
        if state is None or state[0] not in ("exited", "dead"):
            return None
        return state[1]

    def probe_health(self) -> bool:
        if self.service_def.health_check is None:
            return self.is_running()
        result = self.engine.run(self.builder.inspect_command(self.service_def, HEALTH_FORMAT), check=False)
        return result.returncode == 0 and (result.stdout or "").strip() == "healthy"
