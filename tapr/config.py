"""Configuration loader with type-safe dataclasses."""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

import yaml


class ConfigError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


DEFAULT_CONCURRENCY = 5
DEFAULT_TIMEOUT = 10.0  # seconds
DEFAULT_EXPECTED_STATUS = 200

_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}
_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")


def parse_duration(value: object) -> float:
    """Parse a duration into seconds.

    Accepts a bare number (seconds) or a string made of number+unit parts,
    e.g. "500ms", "10s", "2m", "1m30s".

    Raises:
        ConfigError: If the value cannot be parsed.
    """
    if isinstance(value, bool):
        raise ConfigError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        raise ConfigError(f"Invalid duration: {value!r}")

    text = value.strip().lower()
    if not text:
        raise ConfigError("Duration cannot be empty")

    try:
        return float(text)
    except ValueError:
        pass

    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()

    if pos != len(text):
        raise ConfigError(f"Invalid duration: {value!r} (expected e.g. 500ms, 10s, 2m)")
    return total


@dataclass(frozen=True)
class EndpointConfig:
    """A single API endpoint to test.

    The optional timeout overrides the batch-level timeout for this endpoint only.
    """

    name: str
    url: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    body: str | None = None
    expected_status: int = DEFAULT_EXPECTED_STATUS
    timeout: float | None = None

    def __post_init__(self) -> None:
        if not self.url:
            raise ConfigError(f"Endpoint '{self.name}' has no URL")
        if not self.url.startswith(("http://", "https://")):
            raise ConfigError(f"URL must start with http:// or https:// for '{self.name}'")
        if not (100 <= self.expected_status <= 599):
            raise ConfigError(
                f"Invalid expected_status {self.expected_status} for '{self.name}' (must be 100-599)"
            )
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigError(f"Timeout must be positive for '{self.name}'")


@dataclass(frozen=True)
class BatchConfig:
    """Endpoints plus batch-level defaults."""

    endpoints: list[EndpointConfig]
    concurrency: int = DEFAULT_CONCURRENCY
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self) -> None:
        if not self.endpoints:
            raise ConfigError("No endpoints defined in batch config")
        if self.concurrency < 1:
            raise ConfigError(f"Concurrency must be at least 1 (got {self.concurrency})")
        if self.timeout <= 0:
            raise ConfigError(f"Timeout must be positive (got {self.timeout})")


def _parse_headers(data: object, context: str) -> dict[str, str]:
    """Normalize a YAML header mapping into str -> str."""
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{context} must be a mapping of header names to values")
    return {str(key): "" if value is None else str(value) for key, value in data.items()}


def _parse_endpoint_config(data: dict, index: int) -> EndpointConfig:
    """Parse a single endpoint entry."""
    if not isinstance(data, dict):
        raise ConfigError(f"Endpoint entry {index} must be a dictionary")

    url = data.get("url")
    name = data.get("name")
    if not url:
        raise ConfigError(f"Endpoint '{name or index}' has no URL")

    timeout = data.get("timeout")
    body = data.get("body")
    expected_status = data.get("expected_status") or DEFAULT_EXPECTED_STATUS

    try:
        expected_status = int(expected_status)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid expected_status for endpoint '{name or url}': {expected_status!r}")

    return EndpointConfig(
        name=str(name) if name else str(url),
        url=str(url),
        method=str(data.get("method") or "GET").upper(),
        headers=_parse_headers(data.get("headers"), f"Headers for endpoint '{name or url}'"),
        body=str(body) if body is not None else None,
        expected_status=expected_status,
        timeout=parse_duration(timeout) if timeout is not None else None,
    )


def _apply_env_overrides(config_data: dict) -> dict:
    """Apply environment variable overrides to configuration.

    Supported overrides:
    - TAPR_CONCURRENCY: Override concurrency
    - TAPR_TIMEOUT: Override the batch-level timeout
    """
    concurrency = os.environ.get("TAPR_CONCURRENCY")
    if concurrency is not None:
        try:
            config_data["concurrency"] = int(concurrency)
        except ValueError:
            raise ConfigError(f"Invalid TAPR_CONCURRENCY value: {concurrency!r}")

    timeout = os.environ.get("TAPR_TIMEOUT")
    if timeout is not None:
        config_data["timeout"] = timeout

    return config_data


def _read_yaml(path: Path, what: str) -> object:
    """Read and parse a YAML file, mapping failures to ConfigError."""
    if not path.exists():
        raise ConfigError(f"{what} not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse {what.lower()} YAML: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read {what.lower()}: {e}")


def load_batch_config(config_path: str) -> BatchConfig:
    """Load and validate a batch configuration from a YAML file.

    Args:
        config_path: Path to the YAML batch file.

    Returns:
        Validated BatchConfig object.

    Raises:
        ConfigError: If the file cannot be read or configuration is invalid.
    """
    data = _read_yaml(Path(config_path), "Batch config file")

    if data is None:
        raise ConfigError("Batch config file is empty")
    if not isinstance(data, dict):
        raise ConfigError("Batch config must be a YAML dictionary")

    data = _apply_env_overrides(data)

    endpoints_data = data.get("endpoints")
    if not endpoints_data:
        raise ConfigError("No endpoints defined in batch config")
    if not isinstance(endpoints_data, list):
        raise ConfigError("'endpoints' must be a list")

    endpoints = [_parse_endpoint_config(entry, i) for i, entry in enumerate(endpoints_data)]

    concurrency = data.get("concurrency") or DEFAULT_CONCURRENCY
    timeout = data.get("timeout")

    try:
        concurrency = int(concurrency)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid concurrency value: {concurrency!r}")

    return BatchConfig(
        endpoints=endpoints,
        concurrency=concurrency,
        timeout=parse_duration(timeout) if timeout else DEFAULT_TIMEOUT,
    )


def load_headers(headers_path: str) -> dict[str, str]:
    """Load HTTP headers from a YAML mapping file.

    An empty file yields an empty mapping.

    Raises:
        ConfigError: If the file is missing or is not a YAML mapping.
    """
    data = _read_yaml(Path(headers_path), "Headers file")
    return _parse_headers(data, "Headers file")


def parse_inline_headers(header_strings: list[str]) -> dict[str, str]:
    """Parse "Key: Value" strings into a header mapping.

    Splits on the first colon, so values may contain colons (e.g. URLs).

    Raises:
        ConfigError: If a header has no colon or an empty key.
    """
    headers: dict[str, str] = {}
    for header in header_strings:
        key, sep, value = header.partition(":")
        if not sep:
            raise ConfigError(f"Invalid header format: '{header}' (expected 'Key: Value')")
        key = key.strip()
        if not key:
            raise ConfigError(f"Empty header key in: '{header}'")
        headers[key] = value.strip()
    return headers


def merge_headers(*header_maps: dict[str, str] | None) -> dict[str, str]:
    """Combine header mappings; later mappings win on duplicate keys."""
    merged: dict[str, str] = {}
    for headers in header_maps:
        if headers:
            merged.update(headers)
    return merged
