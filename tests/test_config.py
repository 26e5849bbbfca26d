"""
Tests for environment-based configuration.
"""

import logging

import pytest

from rollgate.config.provider import EnvConfigProvider
from rollgate.logging_config import ExternalNoiseFilter, get_logging_config


class TestEnvConfigProvider:
    """EnvConfigProvider defaults and overrides."""

    def test_defaults(self):
        settings = EnvConfigProvider(environ={}).get_settings()

        assert settings.image.image == "docker.io/your-username/shopcarts:1.0"
        assert settings.image.local_image == "registry.localhost:5001/shopcarts:1.0"
        assert settings.cluster.name == "nyu-devops"
        assert settings.cluster.context == "k3d-nyu-devops"
        assert settings.cluster.agents == 2
        assert settings.cluster.lb_port_mapping == "8080:80@loadbalancer"
        assert settings.deploy.namespace == "shopcarts"
        assert settings.deploy.base_url == "http://127.0.0.1:8080"
        assert settings.deploy.rollout_timeout == 300
        assert settings.deploy.apply_retries == 1
        assert settings.log_level == "INFO"

    def test_overrides(self):
        provider = EnvConfigProvider(environ={
            "REGISTRY": "ghcr.io",
            "ORG": "devops",
            "IMAGE_TAG": "2.0",
            "LOCAL_REGISTRY_PORT": "5050",
            "CLUSTER": "ci",
            "CLUSTER_AGENTS": "0",
            "POLL_INTERVAL": "0.5",
            "LOG_LEVEL": "debug",
        })

        settings = provider.get_settings()

        assert settings.image.image == "ghcr.io/devops/shopcarts:2.0"
        assert settings.image.local_registry == "registry.localhost:5050"
        assert settings.cluster.context == "k3d-ci"
        assert settings.cluster.agents == 0
        assert settings.deploy.poll_interval == 0.5
        assert settings.log_level == "DEBUG"

    @pytest.mark.parametrize("key,value,message", [
        ("LOCAL_REGISTRY_PORT", "abc", "must be an integer"),
        ("CLUSTER_SERVERS", "0", "must be >= 1"),
        ("APPLY_RETRIES", "0", "must be >= 1"),
        ("ROLLOUT_TIMEOUT", "-5", "must be positive"),
        ("POLL_INTERVAL", "soon", "must be a number"),
    ])
    def test_invalid_values(self, key, value, message):
        with pytest.raises(ValueError) as exc_info:
            EnvConfigProvider(environ={key: value}).get_settings()

        assert key in str(exc_info.value)
        assert message in str(exc_info.value)


class TestLoggingConfig:
    def test_level_is_applied_to_rollgate_logger(self):
        config = get_logging_config("DEBUG")

        assert config["loggers"]["rollgate"]["level"] == "DEBUG"
        assert config["root"]["level"] == "WARNING"

    def test_noise_filter(self):
        noise_filter = ExternalNoiseFilter()

        def record(message):
            return logging.LogRecord("rollgate", logging.WARNING, __file__, 1, message, None, None)

        assert noise_filter.filter(record("Warning: extensions/v1beta1 Ingress is deprecated")) is False
        assert noise_filter.filter(record("Applied Deployment 'shopcarts'")) is True
