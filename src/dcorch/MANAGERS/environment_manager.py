"""
Managers for building the environment of Compose processes.
"""
import os
from typing import Dict, Mapping, Optional


class EnvironmentManager:
    """
    Merges explicitly configured variables over the current process environment.
    """
    def __init__(self, base_env: Optional[Mapping[str, str]] = None):
        """
        :param base_env: Environment to start from, defaults to ``os.environ`` at call time.
        """
        self.base_env = base_env

    def get_merged_environment(self, explicit_env: Mapping[str, str]) -> Optional[Dict[str, str]]:
        """
        Merges explicit variables over the base environment.

        :param explicit_env: Variables configured for the stack.
        :return: The full environment, or None to inherit unchanged when nothing is configured.
        """
        if not explicit_env and self.base_env is None:
            return None
        merged_env = dict(os.environ if self.base_env is None else self.base_env)
        # Explicit environment variables override everything
        merged_env.update(explicit_env)
        return merged_env
