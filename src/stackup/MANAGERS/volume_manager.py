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
Volume management for services: resolving bind sources and named volumes.
"""
import os
from typing import Optional

from ..MODELS.service_definition import VolumeMount


class VolumeManager:
    """
    Resolves volume mounts against a project directory.
    """
    def __init__(self, base_dir: str = ".", project_name: Optional[str] = None):
        """
        Initializes the volume manager.

        :param base_dir: The base directory for resolving relative paths.
        :param project_name: Prefix for named volumes.
        """
        self.base_dir = os.path.abspath(base_dir)
        self.project_name = project_name

    def resolve_source(self, source: str) -> str:
        """
        Resolves the source path of a volume.

        :param source: The source path or volume name.
        :return: The absolute host path, or the project-scoped volume name.
        """
        if not source:
            return ""
        if source.startswith(("/", ".", "~")):
            return os.path.normpath(os.path.join(self.base_dir, os.path.expanduser(source)))
        if self.project_name:
            return f"{self.project_name}_{source}"
        return source

    def bind_argument(self, mount: VolumeMount) -> str:
        """
        Renders a mount as a ``-v`` argument. Anonymous volumes are just the target.
        """
        source = self.resolve_source(mount.source)
        if not source:
            return mount.target
        arg = f"{source}:{mount.target}"
        if mount.mode:
            arg += f":{mount.mode}"
        return arg
