"""Configuration settings for the order-history service."""

import copy
import os
import yaml
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional


DEFAULT_CONFIG: Dict[str, Any] = {
    'upstream': {
        'primary_base_url': 'https://www.binance.com',
        'fallback_base_url': '${BINANCE_PROXY_BASE:}',
        'order_history_path': '/bapi/futures/v1/friendly/future/copy-trade/lead-portfolio/order-history',
        'request_timeout_seconds': 15,
        'business_success_code': '000000',
        'body_snippet_chars': 200,
        'fatal_status_codes': [403, 451],
    },
    'retry': {
        'max_attempts_per_host': 3,
        'min_delay_seconds': 0.30,
        'max_delay_seconds': 0.45,
    },
    'pagination': {
        'page_cap': 3,
        'page_size': 30,
        'page_delay_seconds': 0.3,
    },
    'batch': {
        'default_uids': ['4438679961865098497'],
        'max_per_call': 35,
        'default_lookback_days': 7,
        'default_limit': 50,
    },
    'fingerprint': {
        'enabled': True,
        'chrome_major_min': 113,
        'chrome_major_max': 124,
        'forwarded_for_prefix': 45,
        'locale_cookie': 'locale=en; country=VN',
    },
    'auth': {
        'api_key': '${PROXY_INTERNAL_API_KEY:}',
    },
    'completions': {
        'base_url': 'https://api.openai.com',
        'path': '/v1/chat/completions',
        'api_key': '${OPENAI_API_KEY:}',
        'request_timeout_seconds': 60,
    },
    'logging': {
        'level': '${LOG_LEVEL:INFO}',
        'format': 'json',
        'output': 'stdout',
    },
    'server': {
        'host': '0.0.0.0',
        'port': '${PORT:8080}',
    },
}


@dataclass
class UpstreamConfig:
    """Binance upstream configuration."""
    primary_base_url: str
    order_history_path: str
    fallback_base_url: Optional[str] = None
    request_timeout_seconds: float = 15
    business_success_code: str = '000000'
    body_snippet_chars: int = 200
    fatal_status_codes: List[int] = field(default_factory=lambda: [403, 451])

    def __post_init__(self):
        self.primary_base_url = self.primary_base_url.rstrip('/')
        # Empty env substitution means no fallback hop
        self.fallback_base_url = (self.fallback_base_url or '').rstrip('/') or None
        self.fatal_status_codes = [int(code) for code in self.fatal_status_codes]


@dataclass
class RetryConfig:
    """Per-host retry configuration."""
    max_attempts_per_host: int
    min_delay_seconds: float
    max_delay_seconds: float


@dataclass
class PaginationConfig:
    """Pagination walk configuration."""
    page_cap: int
    page_size: int
    page_delay_seconds: float


@dataclass
class BatchConfig:
    """Request windowing defaults."""
    default_uids: List[str]
    max_per_call: int
    default_lookback_days: int
    default_limit: int


@dataclass
class FingerprintConfig:
    """Outbound request fingerprint configuration."""
    enabled: bool
    chrome_major_min: int
    chrome_major_max: int
    forwarded_for_prefix: int
    locale_cookie: str


@dataclass
class AuthConfig:
    """Shared-secret gate for inbound requests."""
    api_key: Optional[str] = None

    def __post_init__(self):
        self.api_key = self.api_key or None


@dataclass
class CompletionsConfig:
    """Completion API pass-through configuration."""
    base_url: str
    path: str
    api_key: Optional[str] = None
    request_timeout_seconds: float = 60

    def __post_init__(self):
        self.base_url = self.base_url.rstrip('/')
        self.api_key = self.api_key or None


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str
    format: str
    output: str


@dataclass
class ServerConfig:
    """HTTP server configuration."""
    host: str
    port: int

    def __post_init__(self):
        self.port = int(self.port)


@dataclass
class ServiceConfig:
    """Main configuration for the order-history service."""
    upstream: UpstreamConfig
    retry: RetryConfig
    pagination: PaginationConfig
    batch: BatchConfig
    fingerprint: FingerprintConfig
    auth: AuthConfig
    completions: CompletionsConfig
    logging: LoggingConfig
    server: ServerConfig


def load_config(config_file: Optional[str] = None) -> ServiceConfig:
    """Load configuration from an optional YAML file layered over the defaults."""

    config_data = copy.deepcopy(DEFAULT_CONFIG)

    if config_file:
        with open(config_file, 'r') as f:
            file_data = yaml.safe_load(f) or {}
        config_data = _merge(config_data, file_data)

    # Environment variable substitution
    config_data = _substitute_env_vars(config_data)

    return build_config(config_data)


def build_config(config_data: Dict[str, Any]) -> ServiceConfig:
    """Create configuration objects from an already substituted mapping."""
    return ServiceConfig(
        upstream=UpstreamConfig(**config_data['upstream']),
        retry=RetryConfig(**config_data['retry']),
        pagination=PaginationConfig(**config_data['pagination']),
        batch=BatchConfig(**config_data['batch']),
        fingerprint=FingerprintConfig(**config_data['fingerprint']),
        auth=AuthConfig(**config_data['auth']),
        completions=CompletionsConfig(**config_data['completions']),
        logging=LoggingConfig(**config_data['logging']),
        server=ServerConfig(**config_data['server'])
    )


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into ``base``; lists and scalars replace."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _substitute_env_vars(data):
    """Recursively substitute environment variables in configuration."""
    if isinstance(data, dict):
        return {key: _substitute_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars(item) for item in data]
    elif isinstance(data, str) and data.startswith('${') and data.endswith('}'):
        # Extract environment variable name and default value
        env_spec = data[2:-1]

        if ':' in env_spec:
            env_name, default_value = env_spec.split(':', 1)
        else:
            env_name, default_value = env_spec, None

        return os.getenv(env_name, default_value)
    else:
        return data
