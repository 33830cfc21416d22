"""Configuration management for the SmartSpend governance layer."""

import os
from typing import Any

import yaml
from dotenv import load_dotenv

from smartspend.governance.rate_limiting.models import RateLimitConfig


class Configuration:
    """Manages configuration and environment variables for SmartSpend."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables."""
        self.load_env()  # Load .env for backend credentials
        self.config_path = config_path or os.path.join(
            os.path.dirname(__file__), "config.yaml"
        )
        self._config = self._load_yaml_config()

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    def _load_yaml_config(self) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(self.config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    def get_config_dict(self) -> dict[str, Any]:
        """Get the full configuration dictionary."""
        return self._config

    def get_api_client_config(self) -> dict[str, Any]:
        """Get AI endpoint client configuration from YAML.

        SMARTSPEND_API_BASE_URL overrides api.base_url when set.

        Returns:
            Dictionary with base_url, timeout, max_retries, retry_delay,
            response_ttl and preload_ttl.

        Raises:
            ValueError: If required parameters are missing or invalid.
        """
        api_config = self._config.get("api", {})

        for key in ["base_url", "timeout", "retry", "response_cache"]:
            if key not in api_config:
                raise ValueError(
                    f"api.{key} must be explicitly configured in config.yaml"
                )

        retry_config = api_config["retry"]
        for key in ["max_retries", "delay"]:
            if key not in retry_config:
                raise ValueError(
                    f"api.retry.{key} must be explicitly configured in config.yaml"
                )

        cache_config = api_config["response_cache"]
        if "ttl" not in cache_config:
            raise ValueError(
                "api.response_cache.ttl must be explicitly configured in config.yaml"
            )

        timeout = api_config["timeout"]
        max_retries = retry_config["max_retries"]
        delay = retry_config["delay"]

        if timeout <= 0:
            raise ValueError("api.timeout must be positive")
        if not isinstance(max_retries, int) or max_retries < 1:
            raise ValueError("api.retry.max_retries must be a positive integer")
        if delay < 0:
            raise ValueError("api.retry.delay must be non-negative")

        return {
            "base_url": os.getenv("SMARTSPEND_API_BASE_URL") or api_config["base_url"],
            "timeout": timeout,
            "max_retries": max_retries,
            "retry_delay": delay,
            "response_ttl": cache_config["ttl"],
            "preload_ttl": cache_config.get("preload_ttl", cache_config["ttl"] * 2),
        }

    def get_rate_limit_configs(self) -> dict[str, RateLimitConfig]:
        """Get per-endpoint rate limit configuration from YAML.

        Returns:
            Mapping of endpoint name to RateLimitConfig.

        Raises:
            ValueError: If an endpoint is missing required keys or has
                invalid values.
        """
        limits_config = self._config.get("rate_limits", {})
        endpoints = limits_config.get("endpoints", {})
        if not endpoints:
            raise ValueError(
                "rate_limits.endpoints must be explicitly configured in config.yaml"
            )

        cleanup_interval = limits_config.get("cleanup_interval", 300)

        configs = {}
        for endpoint, endpoint_config in endpoints.items():
            for key in ["max_requests", "window_seconds"]:
                if key not in endpoint_config:
                    raise ValueError(
                        f"rate_limits.endpoints.{endpoint}.{key} must be explicitly "
                        "configured in config.yaml"
                    )
            configs[endpoint] = RateLimitConfig(
                max_requests=endpoint_config["max_requests"],
                window_seconds=endpoint_config["window_seconds"],
                burst_allowance=endpoint_config.get("burst_allowance", 0),
                skip_if_authenticated=endpoint_config.get("skip_if_authenticated", False),
                admin_bypass=endpoint_config.get("admin_bypass", True),
                cleanup_interval_seconds=cleanup_interval,
            )
        return configs

    def get_request_queue_config(self) -> dict[str, Any]:
        """Get request queue configuration from YAML.

        Raises:
            ValueError: If required queue parameters are missing or invalid.
        """
        queue_config = self._config.get("request_queue", {})

        for key in ["max_concurrent", "min_delay", "max_queue_size"]:
            if key not in queue_config:
                raise ValueError(
                    f"request_queue.{key} must be explicitly configured in config.yaml"
                )

        if queue_config["max_concurrent"] < 1:
            raise ValueError("request_queue.max_concurrent must be at least 1")
        if queue_config["min_delay"] < 0:
            raise ValueError("request_queue.min_delay must be non-negative")
        if queue_config["max_queue_size"] < queue_config["max_concurrent"]:
            raise ValueError("request_queue.max_queue_size must be >= max_concurrent")

        return {
            "max_concurrent": queue_config["max_concurrent"],
            "min_delay": queue_config["min_delay"],
            "max_queue_size": queue_config["max_queue_size"],
        }

    def get_cache_config(self) -> dict[str, Any]:
        """Get memory and durable cache configuration from YAML.

        Raises:
            ValueError: If required cache parameters are missing or invalid.
        """
        cache_config = self._config.get("cache", {})

        for section in ["memory", "durable"]:
            if section not in cache_config:
                raise ValueError(
                    f"cache.{section} must be explicitly configured in config.yaml"
                )

        memory = cache_config["memory"]
        durable = cache_config["durable"]

        for key in ["max_size", "default_ttl"]:
            if key not in memory:
                raise ValueError(
                    f"cache.memory.{key} must be explicitly configured in config.yaml"
                )
        for key in ["path", "prefix", "default_ttl"]:
            if key not in durable:
                raise ValueError(
                    f"cache.durable.{key} must be explicitly configured in config.yaml"
                )

        if memory["max_size"] < 1:
            raise ValueError("cache.memory.max_size must be at least 1")
        if memory["default_ttl"] <= 0 or durable["default_ttl"] <= 0:
            raise ValueError("cache default_ttl values must be positive")
        if not durable["prefix"]:
            raise ValueError("cache.durable.prefix must not be empty")

        return {"memory": {**memory}, "durable": {**durable}}

    def get_capacity_config(self) -> dict[str, Any]:
        """Get capacity planner configuration from YAML."""
        capacity_config = self._config.get("capacity", {})
        return {
            "history_size": capacity_config.get("history_size", 100),
            "thresholds": {**capacity_config.get("thresholds", {})},
        }

    def get_backend_config(self) -> dict[str, Any]:
        """Get hosted database configuration.

        The URL and anon key come from SUPABASE_URL and SUPABASE_ANON_KEY.

        Raises:
            ValueError: If either environment variable is not set.
        """
        url = os.getenv("SUPABASE_URL")
        api_key = os.getenv("SUPABASE_ANON_KEY")
        if not url:
            raise ValueError("SUPABASE_URL not found in environment variables")
        if not api_key:
            raise ValueError("SUPABASE_ANON_KEY not found in environment variables")

        backend_config = self._config.get("backend", {})
        return {
            "url": url,
            "api_key": api_key,
            "timeout": backend_config.get("timeout", 30.0),
        }

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML."""
        return self._config.get("logging", {})
