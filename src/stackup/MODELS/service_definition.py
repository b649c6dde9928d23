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
Models for a single service declaration: build instructions, ports, env files,
dependencies, volumes and health checks.
"""
from typing import List, Dict, Optional
from pydantic import BaseModel, Field, model_validator
from enum import Enum


class DependencyCondition(str, Enum):
    """
    What a dependency must reach before its dependents are started.
    """
    STARTED = "service_started"
    HEALTHY = "service_healthy"
    COMPLETED_SUCCESSFULLY = "service_completed_successfully"


class Dependency(BaseModel):
    """
    A single depends_on entry.
    """
    name: str
    condition: DependencyCondition = DependencyCondition.STARTED


class HealthCheck(BaseModel):
    """
    Defines a command to run to check the health of a service.
    Durations are in seconds.
    """
    test: List[str]
    interval: float = 30.0
    timeout: float = 30.0
    retries: int = 3
    start_period: float = 0.0


class BuildSpec(BaseModel):
    """
    Build instructions: a context directory and an optional build file inside it.
    """
    context: str = "."
    dockerfile: Optional[str] = None
    args: Dict[str, str] = {}


class PortMapping(BaseModel):
    """
    A published port. ``host_port`` is None when only the container side is given.
    """
    container_port: int = Field(ge=1, le=65535)
    host_port: Optional[int] = Field(default=None, ge=0, le=65535)
    host_ip: Optional[str] = None
    protocol: str = "tcp"

    def render(self) -> str:
        """Short syntax, as accepted by ``docker run -p``."""
        parts = []
        if self.host_ip:
            parts.append(self.host_ip)
        if self.host_port is not None:
            parts.append(str(self.host_port))
        elif self.host_ip:
            parts.append("")
        parts.append(str(self.container_port))
        spec = ":".join(parts)
        if self.protocol != "tcp":
            spec += f"/{self.protocol}"
        return spec


VOLUME_MODES = {"ro", "rw", "z", "Z", "nocopy", "consistent", "cached", "delegated"}


class VolumeMount(BaseModel):
    """
    Defines a mapping between a host path (or named volume) and a service path.
    ``mode`` keeps the raw option string, e.g. ``ro,z``.
    """
    source: str
    target: str
    mode: Optional[str] = None

    @property
    def options(self) -> List[str]:
        return [o for o in (self.mode or "").split(",") if o]

    @property
    def read_only(self) -> bool:
        return "ro" in self.options

    @property
    def selinux_relabel(self) -> Optional[str]:
        for option in self.options:
            if option in ("z", "Z"):
                return option
        return None

    @property
    def is_bind(self) -> bool:
        """Host paths start with '.', '/' or '~'; anything else is a named volume."""
        return self.source.startswith((".", "/", "~"))


class EnvFileRef(BaseModel):
    """
    Reference to an external key-value file.
    """
    path: str
    required: bool = True


class ServiceDefinition(BaseModel):
    """
    The full definition of a single service, as declared in the descriptor.
    """
    name: str
    image: Optional[str] = None
    build: Optional[BuildSpec] = None
    container_name: Optional[str] = None

    # Execution
    command: List[str] = []
    entrypoint: List[str] = []
    working_dir: Optional[str] = None

    # Environment
    environment: Dict[str, str] = {}
    env_files: List[EnvFileRef] = []

    # Networking
    ports: List[PortMapping] = []

    # Storage
    volumes: List[VolumeMount] = []

    # Lifecycle
    depends_on: List[Dependency] = []
    health_check: Optional[HealthCheck] = None

    @model_validator(mode="after")
    def _image_or_build(self) -> "ServiceDefinition":
        if self.image and self.build:
            raise ValueError(f"service '{self.name}' declares both 'image' and 'build'")
        if not self.image and not self.build:
            raise ValueError(f"service '{self.name}' must declare either 'image' or 'build'")
        return self

    @property
    def dependency_names(self) -> List[str]:
        return [d.name for d in self.depends_on]

    def dependency(self, name: str) -> Optional[Dependency]:
        for dep in self.depends_on:
            if dep.name == name:
                return dep
        return None
