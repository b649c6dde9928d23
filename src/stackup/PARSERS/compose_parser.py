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
Parsers for compose YAML descriptors.
"""
import logging
import os
import re
import shlex
from typing import Dict, Any, List, Optional

import yaml
from pydantic import ValidationError

from ..errors import ConfigurationError
from ..MODELS.orchestration_config import OrchestrationConfig
from ..MODELS.service_definition import (
    BuildSpec,
    Dependency,
    DependencyCondition,
    EnvFileRef,
    HealthCheck,
    PortMapping,
    ServiceDefinition,
    VOLUME_MODES,
    VolumeMount,
)
from ..UTILS.durations import parse_duration
from ..UTILS.string_interpolation import EnvironmentInterpolator
from .env_parser import EnvParser

logger = logging.getLogger(__name__)

SERVICE_NAME = re.compile(r'^[a-zA-Z0-9][a-zA-Z0-9._-]*$')


def normalize_project_name(name: str) -> str:
    """
    Lowercases a project name and drops characters the engine does not accept.
    """
    normalized = re.sub(r'[^a-z0-9_-]', '', name.lower())
    return normalized.lstrip('_-') or "default"


class ComposeParser:
    """
    Parser for compose files.
    """
    def __init__(self, context: Optional[Dict[str, str]] = None):
        """
        Initializes the parser with an optional environment context for interpolation.

        :param context: Variables for interpolation. When omitted, the host
            environment layered over the project's .env file is used.
        """
        self.context = context

    def parse(self, compose_path: str, project_name: Optional[str] = None) -> OrchestrationConfig:
        """
        Parses a compose file from a path.

        :param compose_path: Path to the compose file.
        :param project_name: Overrides the project name derived from the directory.
        :return: Parsed configuration.
        """
        try:
            with open(compose_path, 'r', encoding='utf-8') as f:
                content = f.read()
        except OSError as e:
            raise ConfigurationError(f"Cannot read compose file {compose_path}: {e.strerror}") from e
        project_dir = os.path.dirname(os.path.abspath(compose_path))
        return self.parse_from_string(content, project_dir=project_dir, project_name=project_name)

    def parse_from_string(self,
                          content: str,
                          project_dir: str = ".",
                          project_name: Optional[str] = None) -> OrchestrationConfig:
        """
        Parses a compose file from a string.

        :param content: YAML content of the compose file.
        :param project_dir: Directory relative paths are resolved against.
        :param project_name: Overrides the project name derived from the directory.
        :return: Parsed configuration.
        """
        project_dir = os.path.abspath(project_dir)
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in compose file: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError("Compose file must be a mapping at the top level")

        context = self._interpolation_context(project_dir)
        data = EnvironmentInterpolator.interpolate_structure(data, context)

        raw_services = data.get('services')
        if not raw_services:
            raise ConfigurationError("Compose file declares no services")
        if not isinstance(raw_services, dict):
            raise ConfigurationError("'services' must be a mapping of service names to definitions")

        services: Dict[str, ServiceDefinition] = {}
        problems: List[ConfigurationError] = []
        for name, spec in raw_services.items():
            name = str(name)
            try:
                services[name] = self._parse_service(name, spec, context)
            except ConfigurationError as e:
                problems.append(e)
        if problems:
            raise ConfigurationError.from_problems(problems)

        return OrchestrationConfig(
            project_name=normalize_project_name(project_name or os.path.basename(project_dir)),
            project_dir=project_dir,
            services=services,
            networks=list(data.get('networks') or {}),
            volumes=list(data.get('volumes') or {}),
        )

    def _interpolation_context(self, project_dir: str) -> Dict[str, str]:
        """
        Host environment over the project-level .env file, unless a context was given.
        """
        if self.context is not None:
            return self.context
        context: Dict[str, str] = {}
        dotenv_path = os.path.join(project_dir, '.env')
        if os.path.isfile(dotenv_path):
            context.update(EnvParser.parse(dotenv_path))
        context.update(os.environ)
        return context

    def _parse_service(self, name: str, spec: Any, context: Dict[str, str]) -> ServiceDefinition:
        """
        Parses a single service definition from a compose file.

        :param name: The name of the service.
        :param spec: The service specification dictionary.
        :param context: Variables used for bare ``environment`` entries.
        :return: A ServiceDefinition instance.
        """
        if not SERVICE_NAME.match(name):
            raise ConfigurationError(f"Invalid service name '{name}'")
        if not isinstance(spec, dict):
            raise ConfigurationError(f"Service '{name}' must be a mapping")

        try:
            return ServiceDefinition(
                name=name,
                image=spec.get('image') or None,
                build=self._parse_build(name, spec.get('build')),
                container_name=spec.get('container_name'),
                command=self._to_command(name, 'command', spec.get('command')),
                entrypoint=self._to_command(name, 'entrypoint', spec.get('entrypoint')),
                working_dir=spec.get('working_dir'),
                environment=self._parse_environment(name, spec.get('environment'), context),
                env_files=self._parse_env_files(name, spec.get('env_file')),
                ports=[m for p in self._to_list(name, 'ports', spec.get('ports')) for m in self._parse_port(name, p)],
                volumes=[self._parse_volume(name, v) for v in self._to_list(name, 'volumes', spec.get('volumes'))],
                depends_on=self._parse_depends_on(name, spec.get('depends_on')),
                health_check=self._parse_health_check(name, spec.get('healthcheck')),
            )
        except ValidationError as e:
            details = "; ".join(err['msg'] for err in e.errors())
            raise ConfigurationError(f"Service '{name}': {details}") from e

    def _parse_build(self, name: str, build: Any) -> Optional[BuildSpec]:
        if build is None:
            return None
        if isinstance(build, str):
            return BuildSpec(context=build)
        if not isinstance(build, dict):
            raise ConfigurationError(f"Service '{name}': build must be a path or a mapping")
        args = build.get('args') or {}
        if isinstance(args, list):
            args = dict(str(a).split('=', 1) if '=' in str(a) else (str(a), '') for a in args)
        elif not isinstance(args, dict):
            raise ConfigurationError(f"Service '{name}': build args must be a list or a mapping")
        return BuildSpec(
            context=build.get('context', '.'),
            dockerfile=build.get('dockerfile'),
            args={str(k): self._to_str(v) for k, v in args.items()},
        )

    def _parse_environment(self, name: str, env_spec: Any, context: Dict[str, str]) -> Dict[str, str]:
        """
        Bare names take their value from the interpolation context and are
        dropped when it does not define them.
        """
        environment: Dict[str, str] = {}
        if env_spec is None:
            return environment
        if isinstance(env_spec, list):
            for e in env_spec:
                if not isinstance(e, str):
                    raise ConfigurationError(f"Service '{name}': invalid environment entry {e!r}")
                if '=' in e:
                    k, v = e.split('=', 1)
                    environment[k] = v
                elif e in context:
                    environment[e] = context[e]
        elif isinstance(env_spec, dict):
            for k, v in env_spec.items():
                k = str(k)
                if v is None:
                    if k in context:
                        environment[k] = context[k]
                elif isinstance(v, (dict, list)):
                    raise ConfigurationError(f"Service '{name}': environment value for {k} must be a scalar")
                else:
                    environment[k] = self._to_str(v)
        else:
            raise ConfigurationError(f"Service '{name}': environment must be a list or a mapping")
        return environment

    def _parse_env_files(self, name: str, env_file: Any) -> List[EnvFileRef]:
        refs = []
        for item in self._to_list(name, 'env_file', env_file):
            if isinstance(item, str):
                refs.append(EnvFileRef(path=item))
            elif isinstance(item, dict) and 'path' in item:
                refs.append(EnvFileRef(path=item['path'], required=bool(item.get('required', True))))
            else:
                raise ConfigurationError(f"Service '{name}': invalid env_file entry {item!r}")
        return refs

    def _parse_port(self, name: str, port: Any) -> List[PortMapping]:
        """
        Expands one ports entry into mappings. Ranges expand to one mapping per port.
        """
        invalid = ConfigurationError(f"Service '{name}': invalid port specification {port!r}")
        if isinstance(port, int):
            return [PortMapping(container_port=port)]
        if isinstance(port, dict):
            if 'target' not in port:
                raise invalid
            published = port.get('published')
            host_ports = self._port_range(str(published), invalid) if published not in (None, '') else [None]
            target = self._port_range(str(port['target']), invalid)
            if len(target) != 1:
                raise invalid
            return [
                PortMapping(container_port=target[0], host_port=h,
                            host_ip=port.get('host_ip'), protocol=port.get('protocol', 'tcp'))
                for h in host_ports
            ]
        if not isinstance(port, str):
            raise invalid

        spec, _, protocol = port.partition('/')
        parts = spec.split(':')
        host_ip = None
        if len(parts) == 1:
            host, container = '', parts[0]
        elif len(parts) == 2:
            host, container = parts
        elif len(parts) == 3:
            host_ip, host, container = parts
        else:
            raise invalid

        container_ports = self._port_range(container, invalid)
        if host:
            host_ports = self._port_range(host, invalid)
            if len(host_ports) != len(container_ports):
                raise invalid
        else:
            host_ports = [None] * len(container_ports)
        return [
            PortMapping(container_port=c, host_port=h, host_ip=host_ip or None, protocol=protocol or 'tcp')
            for h, c in zip(host_ports, container_ports)
        ]

    @staticmethod
    def _port_range(value: str, invalid: ConfigurationError) -> List[int]:
        try:
            if '-' in value:
                start, end = (int(x) for x in value.split('-', 1))
                if end < start:
                    raise invalid
                return list(range(start, end + 1))
            return [int(value)]
        except ValueError:
            raise invalid from None

    def _parse_volume(self, name: str, volume: Any) -> VolumeMount:
        if isinstance(volume, str):
            parts = volume.split(':')
            if len(parts) == 1:
                mount = VolumeMount(source='', target=parts[0])
            elif len(parts) == 2:
                mount = VolumeMount(source=parts[0], target=parts[1])
            elif len(parts) == 3:
                mount = VolumeMount(source=parts[0], target=parts[1], mode=parts[2])
            else:
                raise ConfigurationError(f"Service '{name}': invalid volume specification {volume!r}")
        elif isinstance(volume, dict) and 'target' in volume:
            options = []
            if volume.get('read_only'):
                options.append('ro')
            bind = volume.get('bind') or {}
            if not isinstance(bind, dict):
                raise ConfigurationError(f"Service '{name}': volume bind options must be a mapping")
            selinux = bind.get('selinux')
            if selinux:
                options.append(selinux)
            mount = VolumeMount(source=volume.get('source', ''), target=volume['target'],
                                mode=','.join(options) or None)
        else:
            raise ConfigurationError(f"Service '{name}': invalid volume specification {volume!r}")

        unknown = [o for o in mount.options if o not in VOLUME_MODES]
        if unknown:
            raise ConfigurationError(f"Service '{name}': unknown volume mode {','.join(unknown)!r} for {mount.target}")
        if mount.read_only and 'rw' in mount.options:
            raise ConfigurationError(f"Service '{name}': volume {mount.target} cannot be both 'ro' and 'rw'")
        return mount

    def _parse_depends_on(self, name: str, depends_on: Any) -> List[Dependency]:
        if not depends_on:
            return []
        if isinstance(depends_on, list):
            return [Dependency(name=str(d)) for d in depends_on]
        if isinstance(depends_on, dict):
            deps = []
            for dep_name, options in depends_on.items():
                if options is not None and not isinstance(options, dict):
                    raise ConfigurationError(
                        f"Service '{name}': depends_on options for '{dep_name}' must be a mapping"
                    )
                condition = (options or {}).get('condition', DependencyCondition.STARTED.value)
                try:
                    deps.append(Dependency(name=str(dep_name), condition=DependencyCondition(condition)))
                except ValueError:
                    raise ConfigurationError(
                        f"Service '{name}': unknown depends_on condition {condition!r} for '{dep_name}'"
                    ) from None
            return deps
        raise ConfigurationError(f"Service '{name}': depends_on must be a list or a mapping")

    def _parse_health_check(self, name: str, spec: Any) -> Optional[HealthCheck]:
        if not spec:
            return None
        if not isinstance(spec, dict):
            raise ConfigurationError(f"Service '{name}': healthcheck must be a mapping")
        if spec.get('disable'):
            return None
        test = spec.get('test')
        if isinstance(test, str):
            test = ['CMD-SHELL', test]
        elif test is not None and not isinstance(test, list):
            raise ConfigurationError(f"Service '{name}': healthcheck test must be a string or a list")
        if not test or test[0] == 'NONE':
            return None
        try:
            durations = {
                key: parse_duration(spec[key])
                for key in ('interval', 'timeout', 'start_period') if key in spec
            }
        except ValueError as e:
            raise ConfigurationError(f"Service '{name}': healthcheck {e}") from e
        return HealthCheck(test=[str(t) for t in test], retries=spec.get('retries', 3), **durations)

    @staticmethod
    def _to_command(name: str, key: str, val: Any) -> List[str]:
        """
        Strings are split the way a shell would; lists are taken as is.
        """
        if val is None:
            return []
        if isinstance(val, str):
            try:
                return shlex.split(val)
            except ValueError as e:
                raise ConfigurationError(f"Service '{name}': cannot parse {key}: {e}") from e
        if not isinstance(val, list):
            raise ConfigurationError(f"Service '{name}': {key} must be a string or a list")
        return [str(v) for v in val]

    @staticmethod
    def _to_str(val: Any) -> str:
        if isinstance(val, bool):
            return 'true' if val else 'false'
        return str(val)

    def _to_list(self, name: str, key: str, val: Any) -> List[Any]:
        """
        Helper to ensure a value is a list.

        :param name: The service the value belongs to.
        :param key: The service key holding the value.
        :param val: The value to convert.
        :return: A list.
        :raises ConfigurationError: If the value is neither a list nor a single entry.
        """
        if val is None:
            return []
        if isinstance(val, (str, dict)):
            return [val]
        if not isinstance(val, list):
            raise ConfigurationError(f"Service '{name}': {key} must be a list")
        return val
