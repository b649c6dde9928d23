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
Utilities for string interpolation using environment variables.
"""
import logging
import re
from typing import Any, Dict, Mapping

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


class EnvironmentInterpolator:
    """
    Utility for interpolating environment variables in strings.
    Supports $VAR, ${VAR}, ${VAR:-default}, ${VAR-default}, ${VAR:+value},
    ${VAR+value}, ${VAR:?error}, ${VAR?error} and $$ as a literal dollar.
    """
    # Group 1: escaped $$
    # Group 2: braced name, group 3: modifier, group 4: modifier argument
    # Group 5: bare name
    PATTERN = re.compile(
        r'\$(?:(\$)'
        r'|\{([A-Za-z_][A-Za-z0-9_]*)(?:(:?[-+?])([^}]*))?\}'
        r'|([A-Za-z_][A-Za-z0-9_]*))'
    )

    @classmethod
    def interpolate(cls, template: str, context: Mapping[str, str]) -> str:
        """
        Interpolates environment variables in the template string using the provided context.

        :param template: The string containing ${VAR} placeholders.
        :param context: The environment variables context.
        :return: The interpolated string.
        :raises ConfigurationError: If a ${VAR?error} variable is not set.
        """
        def replace(match):
            if match.group(1):
                return '$'
            var_name = match.group(2) or match.group(5)
            modifier = match.group(3)
            argument = match.group(4) or ''

            value = context.get(var_name)
            is_set = value is not None
            non_empty = bool(value)

            if modifier == ':-':
                return value if non_empty else argument
            if modifier == '-':
                return value if is_set else argument
            if modifier == ':+':
                return argument if non_empty else ''
            if modifier == '+':
                return argument if is_set else ''
            if modifier in (':?', '?'):
                ok = non_empty if modifier == ':?' else is_set
                if not ok:
                    raise ConfigurationError(
                        argument or f"required variable {var_name} is missing a value"
                    )
                return value

            if not is_set:
                logger.warning("The %s variable is not set. Defaulting to a blank string.", var_name)
                return ''
            return value

        return cls.PATTERN.sub(replace, template)

    @classmethod
    def interpolate_structure(cls, data: Any, context: Mapping[str, str]) -> Any:
        """
        Interpolates every string value inside parsed YAML data. Mapping keys are left as is.
        """
        if isinstance(data, str):
            return cls.interpolate(data, context)
        if isinstance(data, dict):
            return {k: cls.interpolate_structure(v, context) for k, v in data.items()}
        if isinstance(data, list):
            return [cls.interpolate_structure(v, context) for v in data]
        return data
