"""Named environment files (`.env.<name>`) merged into the child environment."""

import os
import re
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import structlog

from deploy_agent.core.exceptions import EnvNotFoundError, InvalidEnvNameError

logger = structlog.get_logger()

ENV_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
ENV_FILE_PREFIX = ".env."


def parse_env(content: str) -> Dict[str, str]:
    """Parse KEY=VALUE lines, skipping comments and blanks."""
    env_vars: Dict[str, str] = {}
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip()

        # Remove quotes if present
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]

        if key:
            env_vars[key] = value
    return env_vars


class EnvFileStore:
    """CRUD over `.env.<name>` files in one directory."""

    def __init__(self, envs_dir: Path):
        self.envs_dir = envs_dir

    def _path_for(self, name: str) -> Path:
        if not isinstance(name, str) or not ENV_NAME_PATTERN.match(name):
            raise InvalidEnvNameError(f"Invalid env name: {name!r}")
        return self.envs_dir / f"{ENV_FILE_PREFIX}{name}"

    def list_names(self) -> List[str]:
        if not self.envs_dir.is_dir():
            return []
        return sorted(
            entry.name[len(ENV_FILE_PREFIX):]
            for entry in self.envs_dir.iterdir()
            if entry.is_file() and entry.name.startswith(ENV_FILE_PREFIX)
        )

    def read(self, name: str) -> str:
        path = self._path_for(name)
        if not path.is_file():
            raise EnvNotFoundError(f"Env not found: {name}")
        return path.read_text(encoding="utf-8")

    def write(self, name: str, content: str) -> None:
        path = self._path_for(name)
        self.envs_dir.mkdir(parents=True, exist_ok=True)
        path.write_text(content or "", encoding="utf-8")
        logger.info("Env file saved", env=name)

    def delete(self, name: str) -> None:
        path = self._path_for(name)
        if not path.is_file():
            raise EnvNotFoundError(f"Env not found: {name}")
        path.unlink()
        logger.info("Env file deleted", env=name)

    def build_environment(
        self, selected_env: Optional[str], base: Optional[Mapping[str, str]] = None
    ) -> Dict[str, str]:
        """Merge the host environment with the selected env file.

        A missing or unreadable env file is logged and the host environment
        is used as-is.
        """
        env = dict(os.environ if base is None else base)
        if not selected_env:
            return env

        try:
            parsed = parse_env(self.read(selected_env))
        except (InvalidEnvNameError, EnvNotFoundError, OSError) as e:
            logger.error("Could not load env file", env=selected_env, error=str(e))
            return env

        env.update(parsed)
        # Log keys only, not values
        logger.info("Loaded environment variables", env=selected_env, var_count=len(parsed), vars=list(parsed.keys()))
        return env
