"""Configuration provider following Black Box Design principles."""
import os
from dataclasses import dataclass
from typing import Mapping, Optional, Protocol


@dataclass(frozen=True)
class ImageConfig:
    """Container image and registry configuration."""
    registry: str
    org: str
    name: str
    tag: str
    local_registry_host: str
    local_registry_port: int

    @property
    def image(self) -> str:
        """Fully qualified image reference, e.g. docker.io/org/shopcarts:1.0."""
        return f"{self.registry}/{self.org}/{self.name}:{self.tag}"

    @property
    def local_tag(self) -> str:
        return f"{self.name}:{self.tag}"

    @property
    def local_registry(self) -> str:
        return f"{self.local_registry_host}:{self.local_registry_port}"

    @property
    def local_image(self) -> str:
        """Image reference inside the cluster-local registry."""
        return f"{self.local_registry}/{self.name}:{self.tag}"


@dataclass(frozen=True)
class ClusterConfig:
    """k3d cluster configuration."""
    name: str
    servers: int
    agents: int
    lb_port_mapping: str
    create_timeout: int
    node_ready_timeout: int

    @property
    def context(self) -> str:
        """kubeconfig context k3d creates for the cluster."""
        return f"k3d-{self.name}"


@dataclass(frozen=True)
class DeployConfig:
    """Deployment run configuration."""
    namespace: str
    manifests_dir: str
    base_url: str
    rollout_timeout: float
    poll_interval: float
    apply_retries: int
    retry_delay: float
    command_timeout: float
    log_tail_lines: int


@dataclass(frozen=True)
class Settings:
    """All configuration for one invocation."""
    image: ImageConfig
    cluster: ClusterConfig
    deploy: DeployConfig
    log_level: str = "INFO"


class ConfigProvider(Protocol):
    """Protocol for configuration providers."""

    def get_image_config(self) -> ImageConfig:
        """Get image configuration."""
        ...

    def get_cluster_config(self) -> ClusterConfig:
        """Get cluster configuration."""
        ...

    def get_deploy_config(self) -> DeployConfig:
        """Get deployment configuration."""
        ...

    def get_settings(self) -> Settings:
        """Get every section at once."""
        ...


class EnvConfigProvider:
    """Environment-based configuration provider.

    Variable names and defaults match the Makefile the tool replaces, so
    existing `REGISTRY=... CLUSTER=...` overrides keep working.
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._env = os.environ if environ is None else environ

    def _get(self, key: str, default: str) -> str:
        return self._env.get(key, default)

    def _get_int(self, key: str, default: int, minimum: int = 0) -> int:
        raw = self._get(key, str(default))
        try:
            value = int(raw)
        except ValueError:
            raise ValueError(f"{key} must be an integer, got {raw!r}")
        if value < minimum:
            raise ValueError(f"{key} must be >= {minimum}, got {value}")
        return value

    def _get_float(self, key: str, default: float) -> float:
        raw = self._get(key, str(default))
        try:
            value = float(raw)
        except ValueError:
            raise ValueError(f"{key} must be a number, got {raw!r}")
        if value <= 0:
            raise ValueError(f"{key} must be positive, got {value}")
        return value

    def get_image_config(self) -> ImageConfig:
        """Get image configuration from environment variables."""
        return ImageConfig(
            registry=self._get("REGISTRY", "docker.io"),
            org=self._get("ORG", "your-username"),
            name=self._get("IMAGE_NAME", "shopcarts"),
            tag=self._get("IMAGE_TAG", "1.0"),
            local_registry_host=self._get("LOCAL_REGISTRY_HOST", "registry.localhost"),
            local_registry_port=self._get_int("LOCAL_REGISTRY_PORT", 5001, minimum=1),
        )

    def get_cluster_config(self) -> ClusterConfig:
        """Get cluster configuration from environment variables."""
        return ClusterConfig(
            name=self._get("CLUSTER", "nyu-devops"),
            servers=self._get_int("CLUSTER_SERVERS", 1, minimum=1),
            agents=self._get_int("CLUSTER_AGENTS", 2),
            lb_port_mapping=self._get("LB_PORT_MAPPING", "8080:80@loadbalancer"),
            create_timeout=self._get_int("CLUSTER_CREATE_TIMEOUT", 300, minimum=1),
            node_ready_timeout=self._get_int("NODE_READY_TIMEOUT", 180, minimum=1),
        )

    def get_deploy_config(self) -> DeployConfig:
        """Get deployment configuration from environment variables."""
        return DeployConfig(
            namespace=self._get("NAMESPACE", "shopcarts"),
            manifests_dir=self._get("MANIFESTS_DIR", "k8s"),
            base_url=self._get("BASE_URL", "http://127.0.0.1:8080"),
            rollout_timeout=self._get_float("ROLLOUT_TIMEOUT", 300.0),
            poll_interval=self._get_float("POLL_INTERVAL", 5.0),
            apply_retries=self._get_int("APPLY_RETRIES", 1, minimum=1),
            retry_delay=self._get_float("APPLY_RETRY_DELAY", 2.0),
            command_timeout=self._get_float("COMMAND_TIMEOUT", 120.0),
            log_tail_lines=self._get_int("LOG_TAIL_LINES", 50, minimum=1),
        )

    def get_settings(self) -> Settings:
        return Settings(
            image=self.get_image_config(),
            cluster=self.get_cluster_config(),
            deploy=self.get_deploy_config(),
            log_level=self._get("LOG_LEVEL", "INFO").upper(),
        )
