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
Translation of service declarations into container engine command lines.
"""
import os
import shlex
from typing import List, Optional

from ..MODELS.orchestration_config import OrchestrationConfig
from ..MODELS.service_definition import ServiceDefinition
from ..MANAGERS.volume_manager import VolumeManager


class ContainerCommandBuilder:
    """
    Builds docker CLI argv lists for one project.
    """
    def __init__(self, config: OrchestrationConfig, docker_bin: str = "docker"):
        """
        :param config: The orchestration configuration the services belong to.
        :param docker_bin: Engine executable.
        """
        self.config = config
        self.project = config.project_name
        self.docker_bin = docker_bin
        self.volume_manager = VolumeManager(config.project_dir, config.project_name)

    @property
    def network_name(self) -> str:
        return f"{self.project}_default"

    def container_name(self, svc: ServiceDefinition) -> str:
        return svc.container_name or f"{self.project}-{svc.name}-1"

    def image_tag(self, svc: ServiceDefinition) -> str:
        """
        The declared image, or the tag given to the image built for the service.
        """
        return svc.image or f"{self.project}-{svc.name}"

    def labels(self, svc: ServiceDefinition) -> List[str]:
        return [
            "--label", f"io.stackup.project={self.project}",
            "--label", f"io.stackup.service={svc.name}",
        ]

    def build_command(self, svc: ServiceDefinition) -> List[str]:
        """
        ``docker build`` for a service declared with build instructions.
        """
        context = os.path.normpath(os.path.join(self.config.project_dir, svc.build.context))
        cmd = [self.docker_bin, "build", "-t", self.image_tag(svc)]
        if svc.build.dockerfile:
            cmd += ["-f", os.path.normpath(os.path.join(context, svc.build.dockerfile))]
        for key, value in svc.build.args.items():
            cmd += ["--build-arg", f"{key}={value}"]
        cmd.append(context)
        return cmd

    def network_create_command(self) -> List[str]:
        return [self.docker_bin, "network", "create",
                "--label", f"io.stackup.project={self.project}", self.network_name]

    def network_remove_command(self) -> List[str]:
        return [self.docker_bin, "network", "rm", self.network_name]

    def run_command(self, svc: ServiceDefinition, env_file: Optional[str] = None) -> List[str]:
        """
        ``docker run -d`` for a service.

        Environment values are never placed on the command line; the engine
        reads them from ``env_file``.

        :param svc: The service to start.
        :param env_file: Path of a KEY=VALUE file with the container environment.
        :return: The argv list.
        """
        cmd = [self.docker_bin, "run", "-d",
               "--name", self.container_name(svc),
               "--network", self.network_name,
               "--network-alias", svc.name]
        cmd += self.labels(svc)
        for port in svc.ports:
            cmd += ["-p", port.render()]
        for mount in svc.volumes:
            cmd += ["-v", self.volume_manager.bind_argument(mount)]
        if env_file:
            cmd += ["--env-file", env_file]
        if svc.working_dir:
            cmd += ["--workdir", svc.working_dir]
        cmd += self.health_flags(svc)

        args = list(svc.command)
        if svc.entrypoint:
            cmd += ["--entrypoint", svc.entrypoint[0]]
            args = svc.entrypoint[1:] + args
        cmd.append(self.image_tag(svc))
        return cmd + args

    def health_flags(self, svc: ServiceDefinition) -> List[str]:
        hc = svc.health_check
        if not hc:
            return []
        if hc.test[0] == "CMD-SHELL":
            test = " ".join(hc.test[1:])
        elif hc.test[0] == "CMD":
            test = shlex.join(hc.test[1:])
        else:
            test = shlex.join(hc.test)
        return [
            "--health-cmd", test,
            "--health-interval", f"{hc.interval:g}s",
            "--health-timeout", f"{hc.timeout:g}s",
            "--health-retries", str(hc.retries),
            "--health-start-period", f"{hc.start_period:g}s",
        ]

    def stop_command(self, svc: ServiceDefinition, timeout: int = 10) -> List[str]:
        return [self.docker_bin, "stop", "-t", str(timeout), self.container_name(svc)]

    def remove_command(self, svc: ServiceDefinition) -> List[str]:
        return [self.docker_bin, "rm", "-f", self.container_name(svc)]

    def inspect_command(self, svc: ServiceDefinition, fmt: str) -> List[str]:
        return [self.docker_bin, "inspect", "--format", fmt, self.container_name(svc)]

    def logs_command(self, svc: ServiceDefinition, follow: bool = False) -> List[str]:
        cmd = [self.docker_bin, "logs"]
        if follow:
            cmd.append("--follow")
        return cmd + [self.container_name(svc)]
