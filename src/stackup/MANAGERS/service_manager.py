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
Common interface for the per-service lifecycle, whatever runs the service.
"""
from abc import ABC, abstractmethod
from typing import Dict, Optional

from ..MODELS.orchestration_config import OrchestrationConfig
from ..MODELS.service_definition import ServiceDefinition
from .environment_manager import EnvironmentManager


class ServiceManager(ABC):
    """
    Manages the lifecycle of a single service.
    """
    def __init__(self, service_def: ServiceDefinition, config: OrchestrationConfig, dry_run: bool = False):
        """
        :param service_def: Definition of the service.
        :param config: The configuration the service belongs to.
        :param dry_run: Log actions instead of performing them.
        """
        self.service_def = service_def
        self.config = config
        self.dry_run = dry_run
        self.env_manager = EnvironmentManager(config.project_dir)

    @property
    def name(self) -> str:
        return self.service_def.name

    @abstractmethod
    def build(self):
        """Builds the service's image, if it declares build instructions."""

    @abstractmethod
    def start(self, extra_env: Optional[Dict[str, str]] = None):
        """Starts the service. Returns once the start has been issued."""

    @abstractmethod
    def stop(self):
        """Stops the service and releases what it holds."""

    @abstractmethod
    def status(self) -> str:
        """Status string, e.g. 'running', 'stopped' or 'exited(0)'."""

    @abstractmethod
    def exit_code(self) -> Optional[int]:
        """The exit code once the service has exited, otherwise None."""

    @abstractmethod
    def probe_health(self) -> bool:
        """Runs the service's health check once."""

    def is_running(self) -> bool:
        return self.status() == "running"
