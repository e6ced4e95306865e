"""
ProjectConfig: configuration loader for docks.

This module provides:

- find_config_file: Walk up directories to locate .docks.toml
- deep_merge: Recursively merge two dicts (override wins for leaf values)
- DEFAULT_CONFIG: Built-in environment → host maps and service ports
- EnvironmentProfile: A named environment (gamma, delta, production, …)
- ResolvedConfig: Fully resolved config for one environment
- ProjectConfig: Main config object with load/resolve interface

Configuration is the built-in defaults, overlaid by `.docks.toml` and then
`.docks.local.toml` (both optional). The resolution order is:

    DEFAULT_CONFIG → .docks.toml → .docks.local.toml

A `.docks.toml` only needs to list what differs from the defaults::

    [project]
    default_env = "delta"

    [environments.delta.hosts]
    rabbit = "delta-rabbit-2"

    [services.rabbit]
    settle_delay = 8.0

Example:
    >>> resolved = ProjectConfig.load().resolve("gamma")
    >>> resolved.host("rabbit")
    'gamma-rabbit'
    >>> resolved.endpoint("redis").local_port
    52221
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from docks.environment.connector import RemoteEndpointConfig, TunnelKind
from docks.errors import ConfigError

CONFIG_FILENAME = ".docks.toml"
LOCAL_CONFIG_FILENAME = ".docks.local.toml"

_DOCK_ROLE = {"tag:role": ["dock"]}
# Environments without their own cluster are served by the gamma cluster
_DEFAULT_KUBE_CONTEXT = "kubernetes.runnable-gamma.com"

DEFAULT_CONFIG: dict[str, Any] = {
    "project": {"name": "docks", "default_env": "gamma"},
    "ssh": {},
    "services": {
        "rabbit": {
            "tunnel": "ssh",
            "remote_port": 54321,
            "local_port": 56565,
            "settle_delay": 5.0,
        },
        "mongo": {
            "tunnel": "ssh",
            "remote_port": 27017,
            "local_port": 27018,
            "settle_delay": 2.0,
        },
        "redis": {
            "tunnel": "ssh",
            "remote_port": 6379,
            "local_port": 52221,
            "settle_delay": 3.0,
        },
        "swarm": {
            "tunnel": "port_forward",
            "remote_port": 2375,
            "local_port": 53260,
            "settle_delay": 3.0,
            "pod": "swarm-manager",
        },
    },
    "environments": {
        "gamma": {
            "inventory": "gamma-hosts",
            "aws_region": "us-west-2",
            "asg_region": "us-west-2",
            "kube_context": _DEFAULT_KUBE_CONTEXT,
            "hosts": {
                "rabbit": "gamma-rabbit",
                "mongo": "gamma-mongo-a",
                "redis": "gamma-redis",
                "mavis": "mavis.runnable-gamma.com",
            },
            "dock_filters": {**_DOCK_ROLE, "instance.group-name": ["gamma-dock"]},
        },
        "delta": {
            "inventory": "delta-hosts",
            "aws_region": "us-west-2",
            "asg_region": "us-west-2",
            "kube_context": "kubernetes.runnable.com",
            "hosts": {
                "rabbit": "delta-rabbit",
                "mongo": "delta-mongo-a",
                "redis": "beta-redis",
                "mavis": "mavis.runnable.io",
            },
            "dock_filters": {**_DOCK_ROLE, "instance.group-name": ["delta-dock"]},
        },
        "epsilon": {
            "inventory": "epsilon-hosts",
            "aws_region": "us-west-2",
            "asg_region": "us-west-2",
            "kube_context": _DEFAULT_KUBE_CONTEXT,
            "hosts": {
                "rabbit": "epsilon-rabbit",
                "redis": "beta-redis",
                "mavis": "mavis.runnable-beta.com",
            },
            "dock_filters": {**_DOCK_ROLE, "instance.group-name": ["epsilon-dock"]},
        },
        "production": {
            "inventory": "prod-hosts",
            "aws_region": "us-west-2",
            "asg_region": "us-west-1",
            "kube_context": _DEFAULT_KUBE_CONTEXT,
            "hosts": {
                "rabbit": "alpha-rabbit",
                "redis": "alpha-redis",
                "mavis": "mavis.runnable.io",
            },
            "dock_filters": {**_DOCK_ROLE, "instance.group-name": ["alpha-dock-sg"]},
        },
        "staging": {
            "inventory": "stage-hosts",
            "aws_region": "us-west-2",
            "asg_region": "us-west-2",
            "kube_context": _DEFAULT_KUBE_CONTEXT,
            "hosts": {
                "rabbit": "delta-staging-data",
                "redis": "beta-redis",
                "mavis": "mavis-staging-codenow.runnableapp.com",
            },
            "dock_filters": {**_DOCK_ROLE, "tag:env": ["staging"]},
        },
    },
}


# ---------------------------------------------------------------------------
# Utility helpers
# ---------------------------------------------------------------------------


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """
    Walk up from *start_dir* to find `.docks.toml`.

    Args:
        start_dir: Directory to start searching from. Defaults to ``Path.cwd()``.

    Returns:
        Path to the config file, or ``None`` if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate

        parent = current.parent
        if parent == current:
            # Reached filesystem root
            return None
        current = parent


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep-merge two dicts. *override* wins for leaf values.

    Neither input is mutated; a new dict is returned.
    """
    merged: dict[str, Any] = {}

    for key in base.keys() | override.keys():
        if key in base and key in override:
            base_val = base[key]
            over_val = override[key]
            if isinstance(base_val, dict) and isinstance(over_val, dict):
                merged[key] = deep_merge(base_val, over_val)
            else:
                merged[key] = over_val
        elif key in base:
            merged[key] = base[key]
        else:
            merged[key] = override[key]

    return merged


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EnvironmentProfile:
    """
    A named environment from ``[environments.NAME]``.

    Attributes:
        name: Environment name (the TOML key under ``[environments]``).
        hosts: Service name → host alias for this environment.
        config: All remaining key/value pairs (regions, filters, …).
    """

    name: str
    hosts: dict[str, str] = field(default_factory=dict)
    config: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ResolvedConfig:
    """
    Fully resolved config for one environment.

    Produced by :meth:`ProjectConfig.resolve`.

    Attributes:
        env_name: The resolved environment name.
        hosts: Service hosts, with the default environment's hosts filled
            in for services this environment does not list.
        env_config: Environment-specific settings (regions, filters, …).
        services: Service settings (tunnel kind, ports, settle delay).
        ssh: SSH options shared by every tunnel (user, gateway, key).
    """

    env_name: str
    hosts: dict[str, str]
    env_config: dict[str, Any]
    services: dict[str, dict[str, Any]]
    ssh: dict[str, Any] = field(default_factory=dict)

    @property
    def aws_region(self) -> str:
        return self.env_config.get("aws_region", "us-west-2")

    @property
    def asg_region(self) -> str:
        return self.env_config.get("asg_region", self.aws_region)

    @property
    def kube_context(self) -> str:
        return self.env_config.get("kube_context") or _DEFAULT_KUBE_CONTEXT

    @property
    def inventory(self) -> str:
        """Name of the ansible inventory directory holding this env's secrets."""
        return self.env_config.get("inventory", f"{self.env_name}-hosts")

    @property
    def dock_filters(self) -> dict[str, list[str]]:
        return self.env_config.get("dock_filters", dict(_DOCK_ROLE))

    def host(self, service: str) -> str:
        """
        Return the host alias for *service* in this environment.

        Raises:
            ConfigError: If no host is configured for the service.
        """
        try:
            return self.hosts[service]
        except KeyError:
            raise ConfigError(
                f"No {service!r} host configured for environment {self.env_name!r}"
            ) from None

    def service(self, name: str) -> dict[str, Any]:
        """
        Return the settings dict for the service named *name*.

        Raises:
            ConfigError: If no service with that name exists.
        """
        try:
            return self.services[name]
        except KeyError:
            available = ", ".join(sorted(self.services)) or "(none)"
            raise ConfigError(
                f"No service {name!r} in config. Available services: {available}"
            ) from None

    def settle_delay(self, name: str) -> float:
        return float(self.service(name).get("settle_delay", 0.0))

    def endpoint(
        self,
        name: str,
        remote_host: str | None = None,
        local_port: int | None = None,
    ) -> RemoteEndpointConfig:
        """
        Build the tunnel endpoint for service *name*.

        Args:
            name: Service name (``"rabbit"``, ``"redis"``, …).
            remote_host: Override the host (e.g. a pod name discovered at
                runtime for port-forwards).
            local_port: Override the configured local port.

        Returns:
            A RemoteEndpointConfig ready for the TunnelBroker.
        """
        svc = self.service(name)
        try:
            kind = TunnelKind(svc.get("tunnel", "ssh"))
        except ValueError:
            raise ConfigError(
                f"Service {name!r} has unknown tunnel kind {svc.get('tunnel')!r}"
            ) from None

        return RemoteEndpointConfig(
            remote_host=remote_host or self.host(name),
            remote_port=int(svc["remote_port"]),
            local_port=int(local_port or svc["local_port"]),
            tunnel_kind=kind,
            user=self.ssh.get("user"),
            gateway=self.ssh.get("gateway"),
            ssh_key=self.ssh.get("key"),
            context=self.kube_context if kind is TunnelKind.PORT_FORWARD else None,
        )


@dataclass
class ProjectConfig:
    """
    Main configuration: built-in defaults plus ``.docks.toml`` overrides.

    Typical usage::

        config = ProjectConfig.load()
        resolved = config.resolve()          # uses default_env
        resolved = config.resolve("delta")   # explicit environment
    """

    default_env: str
    environments: dict[str, EnvironmentProfile]
    services: dict[str, dict[str, Any]]
    ssh: dict[str, Any] = field(default_factory=dict)
    source: Path | None = None

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, start_dir: Path | None = None) -> ProjectConfig:
        """
        Find and load configuration.

        Walks up from *start_dir* (default: cwd) to locate ``.docks.toml``
        and merges ``.docks.local.toml`` from the same directory. With no
        file at all, the built-in defaults are used.
        """
        config_path = find_config_file(start_dir)
        if config_path is None:
            return cls.from_dict({})

        with open(config_path, "rb") as f:
            data = tomllib.load(f)

        local_path = config_path.parent / LOCAL_CONFIG_FILENAME
        if local_path.is_file():
            with open(local_path, "rb") as f:
                data = deep_merge(data, tomllib.load(f))

        config = cls.from_dict(data)
        config.source = config_path
        return config

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProjectConfig:
        """
        Create a :class:`ProjectConfig` from parsed TOML data.

        *data* is merged over :data:`DEFAULT_CONFIG`; pass ``{}`` for the
        defaults alone.
        """
        merged = deep_merge(DEFAULT_CONFIG, data)

        environments: dict[str, EnvironmentProfile] = {}
        for env_name, env_raw in merged.get("environments", {}).items():
            env_raw = dict(env_raw)  # shallow copy so we can pop
            hosts = dict(env_raw.pop("hosts", {}))
            environments[env_name] = EnvironmentProfile(
                name=env_name, hosts=hosts, config=env_raw
            )

        # "stage" has always been accepted as an alias for "staging"
        if "staging" in environments and "stage" not in environments:
            environments["stage"] = environments["staging"]

        return cls(
            default_env=merged.get("project", {}).get("default_env", "gamma"),
            environments=environments,
            services={
                name: dict(svc) for name, svc in merged.get("services", {}).items()
            },
            ssh=dict(merged.get("ssh", {})),
        )

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, env_name: str | None = None) -> ResolvedConfig:
        """
        Resolve a named environment into a flat config.

        Hosts missing from the environment are taken from the default
        environment.

        Raises:
            ConfigError: If the environment does not exist.
        """
        env_name = env_name or self.default_env
        if env_name not in self.environments:
            available = ", ".join(self.list_environments()) or "(none)"
            raise ConfigError(
                f"Unknown environment {env_name!r}. "
                f"Available environments: {available}"
            )

        profile = self.environments[env_name]
        hosts = dict(profile.hosts)
        default_profile = self.environments.get(self.default_env)
        if default_profile is not None:
            for service, host in default_profile.hosts.items():
                hosts.setdefault(service, host)

        return ResolvedConfig(
            env_name=env_name,
            hosts=hosts,
            env_config=dict(profile.config),
            services={name: dict(svc) for name, svc in self.services.items()},
            ssh=dict(self.ssh),
        )

    def list_environments(self) -> list[str]:
        """Sorted list of environment names."""
        return sorted(self.environments)
