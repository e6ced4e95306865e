"""
Credentials from the devops-scripts ansible inventory.

Secrets (broker credentials, AWS keys, database names) are never stored
by docks. They are read on demand from the operator's checkout of the
devops-scripts repository::

    $DEVOPS_SCRIPTS_PATH/ansible/<inventory>/variables

where each relevant line has the form ``name=value``.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

from docks.errors import ConfigError

logger = logging.getLogger(__name__)

DEVOPS_SCRIPTS_ENV = "DEVOPS_SCRIPTS_PATH"


def devops_scripts_path() -> Path:
    """
    Return the devops-scripts checkout path.

    Raises:
        ConfigError: If ``DEVOPS_SCRIPTS_PATH`` is unset or empty.
    """
    value = os.environ.get(DEVOPS_SCRIPTS_ENV, "").strip()
    if not value:
        raise ConfigError(f"Missing `{DEVOPS_SCRIPTS_ENV}` env.")
    return Path(value)


class VariablesFile:
    """
    Reader for an ansible ``variables`` file.

    Args:
        inventory: Inventory directory name (e.g. ``"gamma-hosts"``).
        root: devops-scripts checkout; defaults to ``$DEVOPS_SCRIPTS_PATH``.
    """

    def __init__(self, inventory: str, root: Path | None = None) -> None:
        self.inventory = inventory
        self._root = root

    @property
    def path(self) -> Path:
        root = self._root if self._root is not None else devops_scripts_path()
        return root / "ansible" / self.inventory / "variables"

    def get(self, name: str) -> str:
        """
        Return the value of variable *name*.

        Raises:
            ConfigError: If the file or the variable cannot be found.
        """
        return self.all([name])[name]

    def all(self, names: list[str]) -> dict[str, str]:
        """
        Return ``{name: value}`` for every name in *names*.

        Raises:
            ConfigError: If the file is missing or any variable is absent.
        """
        path = self.path
        try:
            text = path.read_text()
        except OSError as exc:
            raise ConfigError(f"Cannot read variables file {path}: {exc}") from exc

        values: dict[str, str] = {}
        for name in names:
            match = re.search(
                rf"^\s*{re.escape(name)}\s*=\s*(.+?)\s*$", text, re.MULTILINE
            )
            if match is None:
                raise ConfigError(f"Variable not found: {name}")
            values[name] = match.group(1)

        logger.debug("Loaded %d variable(s) from %s", len(values), path)
        return values
