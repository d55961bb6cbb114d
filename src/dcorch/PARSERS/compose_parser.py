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
Read-only inspection of Docker Compose YAML files.
"""
import logging
from pathlib import Path
from typing import Any, Dict, List, Sequence, Union

import yaml

logger = logging.getLogger(__name__)


class ComposeFileInspector:
    """
    Reads the service definitions of an ordered set of compose files
    without invoking Compose. Later files override earlier ones, as with ``-f``.
    """
    def load(self, compose_path: Union[str, Path]) -> Dict[str, Any]:
        """
        Loads one compose file.

        :param compose_path: Path to the compose file.
        :return: The parsed document, empty for an empty file.
        """
        with open(compose_path, 'r') as f:
            content = f.read()
        return self.load_from_string(content)

    def load_from_string(self, content: str) -> Dict[str, Any]:
        data = yaml.safe_load(content)
        if not isinstance(data, dict):
            return {}
        return data

    def merged_services(self, compose_files: Sequence[Union[str, Path]]) -> Dict[str, Dict[str, Any]]:
        """
        Merges the ``services`` sections of the given files in order.
        Keys of a later file replace the same keys of an earlier one, per service.

        :param compose_files: Compose files in override order.
        :return: Service definitions keyed by name, in first-definition order.
        """
        merged: Dict[str, Dict[str, Any]] = {}
        for path in compose_files:
            services = self.load(path).get('services') or {}
            if not isinstance(services, dict):
                logger.warning("Ignoring malformed 'services' section in %s", path)
                continue
            for name, spec in services.items():
                current = merged.setdefault(str(name), {})
                if isinstance(spec, dict):
                    current.update(spec)
        return merged

    def service_names(self, compose_files: Sequence[Union[str, Path]]) -> List[str]:
        """
        Lists every service defined across the given files.
        """
        return list(self.merged_services(compose_files).keys())

    def undefined_services(self,
                           compose_files: Sequence[Union[str, Path]],
                           requested: Sequence[str]) -> List[str]:
        """
        Returns the requested service names that no compose file defines.
        Unreadable files make the check inconclusive and yield an empty list.
        """
        try:
            defined = set(self.service_names(compose_files))
        except (OSError, yaml.YAMLError) as e:
            logger.debug("Could not inspect compose files: %s", e)
            return []
        return [name for name in requested if name not in defined]
