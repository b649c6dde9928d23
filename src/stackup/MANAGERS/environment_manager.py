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
Managers for handling environment variables and env file resolution.
"""
import logging
import os
from typing import Dict, List, Optional

from ..errors import MissingFileError
from ..MODELS.service_definition import EnvFileRef, ServiceDefinition
from ..PARSERS.env_parser import EnvParser

logger = logging.getLogger(__name__)


class EnvironmentManager:
    """
    Manages the merging and resolution of environment variables from multiple sources.
    """
    def __init__(self, base_dir: str = "."):
        """
        Initializes the environment manager.

        :param base_dir: The base directory for resolving relative paths to env files.
        """
        self.base_dir = base_dir
        self.parser = EnvParser()

    def resolve_path(self, env_file: EnvFileRef) -> str:
        return os.path.join(self.base_dir, os.path.expanduser(env_file.path))

    def load_env_files(self, service_name: str, env_files: List[EnvFileRef]) -> Dict[str, str]:
        """
        Loads env files in order; later files override earlier ones.

        :raises MissingFileError: If a required file does not exist.
        """
        merged: Dict[str, str] = {}
        for env_file in env_files:
            file_path = self.resolve_path(env_file)
            if not os.path.isfile(file_path):
                if env_file.required:
                    raise MissingFileError(service_name, "env file", file_path)
                logger.debug("Skipping optional env file %s for %s", file_path, service_name)
                continue
            merged.update(self.parser.parse(file_path))
        return merged

    def get_service_environment(self, service_def: ServiceDefinition) -> Dict[str, str]:
        """
        Env files, then explicit ``environment`` entries on top.
        """
        env = self.load_env_files(service_def.name, service_def.env_files)
        env.update(service_def.environment)
        return env

    def get_process_environment(self,
                                service_def: ServiceDefinition,
                                extra_env: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """
        Environment for a native process: the host environment, then
        ``extra_env`` (e.g. service discovery), then the service's own variables.
        """
        merged_env = os.environ.copy()
        if extra_env:
            merged_env.update(extra_env)
        merged_env.update(self.get_service_environment(service_def))
        return merged_env
