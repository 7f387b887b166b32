"""
Configuration validation utilities for Sentinel.

This module loads task configuration documents from YAML or JSON files.
Schema validation of the loaded documents happens in
sentinel.tasks.config.parse_task_config, so a document is rejected with a
single ConfigurationError before any data is sent.

Example Usage:
    >>> document = ConfigValidator.load_config("tasks/sentinel/load_users.yaml")
    >>> config = parse_task_config(document, task_id="load_users")

Template Generation:
    ConfigGenerator produces starter documents for the supported task kinds,
    which the CLI and the tests use as known-good inputs.
"""

import json
from pathlib import Path
from typing import Any, Dict

import yaml

from sentinel.core.exceptions.custom_exceptions import ConfigurationError


class ConfigValidator:
    """Configuration validator for task configuration documents"""

    @staticmethod
    def load_config(file_path: str) -> Dict[str, Any]:
        """Load configuration from file"""
        path = Path(file_path)

        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {file_path}")

        if path.suffix.lower() not in [".yaml", ".yml", ".json"]:
            raise ConfigurationError(f"Unsupported file format: {path.suffix}")

        try:
            with open(path, "r") as f:
                if path.suffix.lower() == ".json":
                    document = json.load(f)
                else:
                    document = yaml.safe_load(f)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load configuration: {e}") from e

        if not isinstance(document, dict):
            raise ConfigurationError(
                f"Configuration file must contain a mapping: {file_path}"
            )
        return document


class ConfigGenerator:
    """Generate configuration templates"""

    @staticmethod
    def generate_http_config() -> Dict[str, Any]:
        """Generate an HTTP integration task"""
        return {
            "type": "http",
            "url": "https://api.example.com/v1/records?table=${table}",
            "recordsPerRequest": 100,
            "numberOfThreads": 2,
            "qps": 5,
            "errorOptions": {"retryTimes": 3, "ignoreError": False},
            "next": "notify",
        }

    @staticmethod
    def generate_knot_config() -> Dict[str, Any]:
        """Generate a barrier over two embedded publish tasks"""
        child = {
            "type": "publish",
            "endpoint": "https://bus.example.com/v1/topics/${topic}:publish",
            "topic": "${topic}",
            "message": {"user": "${user_id}"},
        }
        return {
            "type": "knot",
            "embedded": [
                {**child, "id": "publish_a", "attributes": {"lane": "a"}},
                {**child, "id": "publish_b", "attributes": {"lane": "b"}},
            ],
            "next": [{"taskId": "report", "appendedParameters": {"stage": "done"}}],
        }
