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
Loading and validation of service descriptors. Every problem is reported
before any service is started.
"""
import logging
import os
from typing import Dict, List, Optional

from ..errors import (
    ConfigurationError,
    DanglingDependencyError,
    DependencyCycleError,
    MissingFileError,
)
from ..MANAGERS.environment_manager import EnvironmentManager
from ..MANAGERS.network_manager import NetworkManager
from ..MODELS.orchestration_config import OrchestrationConfig
from ..MODELS.service_definition import ServiceDefinition
from ..RUNNERS.dependency_resolver import DependencyResolver
from .compose_parser import ComposeParser

logger = logging.getLogger(__name__)

DESCRIPTOR_NAMES = ("compose.yaml", "compose.yml", "docker-compose.yaml", "docker-compose.yml")


class DescriptorLoader:
    """
    Reads a descriptor and checks it can be brought up as declared.
    """
    def __init__(self,
                 context: Optional[Dict[str, str]] = None,
                 check_files: bool = True):
        """
        :param context: Interpolation variables, passed to the parser.
        :param check_files: Check that build contexts, build files and env files exist.
        """
        self.parser = ComposeParser(context)
        self.resolver = DependencyResolver()
        self.check_files = check_files

    @staticmethod
    def find_descriptor(directory: str = ".") -> str:
        """
        Returns the path of the first known descriptor file name in ``directory``.

        :raises ConfigurationError: If none exists.
        """
        for name in DESCRIPTOR_NAMES:
            path = os.path.join(directory, name)
            if os.path.isfile(path):
                return path
        raise ConfigurationError(
            f"No compose file found in {os.path.abspath(directory)} (looked for {', '.join(DESCRIPTOR_NAMES)})"
        )

    def load(self, path: str, project_name: Optional[str] = None) -> OrchestrationConfig:
        """
        Parses and validates a descriptor.

        :param path: Descriptor file, or a directory to search.
        :param project_name: Overrides the project name.
        :raises ConfigurationError: Listing every problem found.
        """
        if os.path.isdir(path):
            path = self.find_descriptor(path)
        config = self.parser.parse(path, project_name=project_name)
        self.check(config)
        logger.debug("Loaded %d services from %s", len(config.services), path)
        return config

    def load_from_string(self,
                         content: str,
                         project_dir: str = ".",
                         project_name: Optional[str] = None) -> OrchestrationConfig:
        config = self.parser.parse_from_string(content, project_dir=project_dir, project_name=project_name)
        self.check(config)
        return config

    def check(self, config: OrchestrationConfig):
        """
        :raises ConfigurationError: If ``validate`` finds anything.
        """
        problems = self.validate(config)
        if problems:
            raise ConfigurationError.from_problems(problems)

    def validate(self, config: OrchestrationConfig) -> List[ConfigurationError]:
        """
        Collects every problem in the configuration.

        :return: One error per problem, empty when the configuration is valid.
        """
        problems: List[ConfigurationError] = [
            DanglingDependencyError(service, dep) for service, dep in self.resolver.find_dangling(config)
        ]
        cycle = self.resolver.find_cycle(config)
        if cycle:
            problems.append(DependencyCycleError(cycle))
        problems.extend(NetworkManager.find_conflicts(config.services.values()))

        for svc in config.services.values():
            problems.extend(self._check_named_volumes(config, svc))
            if self.check_files:
                problems.extend(self._check_files(config, svc))
        return problems

    @staticmethod
    def _check_named_volumes(config: OrchestrationConfig, svc: ServiceDefinition) -> List[ConfigurationError]:
        return [
            ConfigurationError(f"Service '{svc.name}' refers to undefined volume '{mount.source}'")
            for mount in svc.volumes
            if mount.source and not mount.is_bind and mount.source not in config.volumes
        ]

    @staticmethod
    def _check_files(config: OrchestrationConfig, svc: ServiceDefinition) -> List[ConfigurationError]:
        problems: List[ConfigurationError] = []
        if svc.build:
            context = os.path.normpath(os.path.join(config.project_dir, svc.build.context))
            if not os.path.isdir(context):
                problems.append(MissingFileError(svc.name, "build context", context))
            else:
                dockerfile = os.path.normpath(os.path.join(context, svc.build.dockerfile or "Dockerfile"))
                if not os.path.isfile(dockerfile):
                    problems.append(MissingFileError(svc.name, "build file", dockerfile))

        env_manager = EnvironmentManager(config.project_dir)
        for env_file in svc.env_files:
            path = env_manager.resolve_path(env_file)
            if env_file.required and not os.path.isfile(path):
                problems.append(MissingFileError(svc.name, "env file", path))
        return problems
