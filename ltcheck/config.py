"""
ltcheck Configuration Module
============================
Centralized settings for the checking service, automatic checks, the personal
dictionary and synonyms.

Configuration can be set via:
1. Environment variables (LTCHECK_SERVER_URL=https://...)
2. Config file (ltcheck_config.json, or the path in LTCHECK_CONFIG_FILE)
3. Direct API calls (config.set('check.picky_mode', True))
"""

import os
import json
from pathlib import Path
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field, asdict

from config_logging import get_logger, ValidationError

__version__ = "1.0.0"

logger = get_logger('ltcheck.config')

# Default configuration path
CONFIG_FILE = Path(os.environ.get(
    'LTCHECK_CONFIG_FILE',
    str(Path(__file__).parent.parent / "ltcheck_config.json")
))

AUTO_CHECK_DELAY_MAX_MS = 5000
AUTO_CHECK_DELAY_STEP_MS = 250


# =============================================================================
# ENDPOINTS
# =============================================================================

@dataclass(frozen=True)
class Endpoint:
    """A LanguageTool deployment and its published limits."""
    name: str
    url: str
    requests_per_minute: int
    max_size: int  # Max length of the serialized request data

    @property
    def min_delay_ms(self) -> float:
        """Minimum delay between automatic checks."""
        return (60 / self.requests_per_minute) * 1000


# See https://languagetool.org/http-api/swagger-ui/#
ENDPOINTS: Dict[str, Endpoint] = {
    'standard': Endpoint('standard', 'https://api.languagetool.org', 20, 20000),
    'premium': Endpoint('premium', 'https://api.languagetoolplus.com', 80, 75000),
    'custom': Endpoint('custom', '', 120, 1000000),
}


def normalize_server_url(url: str) -> str:
    """Strip a pasted '/v2/check' suffix and trailing slashes."""
    url = (url or '').strip()
    url = url.rstrip('/')
    if url.endswith('/v2/check'):
        url = url[:-len('/v2/check')]
    return url.rstrip('/')


def endpoint_from_url(url: str) -> str:
    """Name of the endpoint serving ``url`` ('custom' when unknown)."""
    url = normalize_server_url(url)
    for name, endpoint in ENDPOINTS.items():
        if endpoint.url and endpoint.url == url:
            return name
    return 'custom'


def get_endpoint(url: str) -> Endpoint:
    return ENDPOINTS[endpoint_from_url(url)]


def clamp_auto_check_delay(delay_ms: float, url: str) -> float:
    """Keep the auto-check delay within what the endpoint allows."""
    minimum = get_endpoint(url).min_delay_ms
    return max(minimum, min(float(delay_ms), AUTO_CHECK_DELAY_MAX_MS))


# =============================================================================
# SECTIONS
# =============================================================================

@dataclass
class ServerConfig:
    """LanguageTool server and account."""
    server_url: str = ENDPOINTS['standard'].url
    username: Optional[str] = None
    api_key: Optional[str] = None
    timeout: float = 30.0  # seconds, per request

    @property
    def endpoint(self) -> Endpoint:
        return get_endpoint(self.server_url)

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.api_key)


@dataclass
class CheckConfig:
    """What is checked and when."""
    auto_check: bool = False
    auto_check_delay_ms: float = ENDPOINTS['standard'].min_delay_ms
    mother_tongue: Optional[str] = None
    static_language: Optional[str] = None  # None = auto detect
    language_variety: Dict[str, str] = field(default_factory=lambda: {
        "en": "en-US",
        "de": "de-DE",
        "pt": "pt-PT",
        "ca": "ca-ES",
    })
    picky_mode: bool = False
    enabled_categories: str = ""   # Comma-separated
    disabled_categories: str = ""
    enabled_rules: str = ""
    disabled_rules: str = ""


@dataclass
class DictionaryConfig:
    """Personal dictionary and its remote synchronization."""
    words: List[str] = field(default_factory=list)
    sync: bool = False
    # Snapshot of the remote list after the last successful synchronization
    remote_snapshot: List[str] = field(default_factory=list)


@dataclass
class SynonymConfig:
    """Synonym lookup (context menu)."""
    language: Optional[str] = None  # 'en', 'de' or None for disabled


@dataclass
class LTConfig:
    """Master configuration."""
    server: ServerConfig = field(default_factory=ServerConfig)
    check: CheckConfig = field(default_factory=CheckConfig)
    dictionary: DictionaryConfig = field(default_factory=DictionaryConfig)
    synonyms: SynonymConfig = field(default_factory=SynonymConfig)

    def public_dict(self) -> Dict[str, Any]:
        """Settings with the credentials blanked, for error reports."""
        data = asdict(self)
        data['server']['username'] = 'REDACTED'
        data['server']['api_key'] = 'REDACTED'
        return data


# Global configuration instance
_config: Optional[LTConfig] = None


def get_config() -> LTConfig:
    """Get the global configuration."""
    global _config
    if _config is None:
        _config = _load_config()
    return _config


def _load_config(path: Optional[Path] = None) -> LTConfig:
    """Load configuration from file and environment."""
    config = LTConfig()
    path = path or CONFIG_FILE

    if path.exists():
        try:
            with open(path, 'r', encoding='utf-8') as f:
                file_config = json.load(f)
            _apply_dict_to_config(config, file_config)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Could not load config file {path}: {e}")

    _apply_env_to_config(config)
    config.server.server_url = normalize_server_url(config.server.server_url)
    return config


def load_config(path: Path) -> LTConfig:
    """Load a configuration from ``path`` and make it the global one."""
    global _config
    _config = _load_config(Path(path))
    return _config


def _apply_dict_to_config(config: LTConfig, data: Dict[str, Any]):
    """Apply dictionary values to config object."""
    for section_name, section_data in data.items():
        if hasattr(config, section_name) and isinstance(section_data, dict):
            section = getattr(config, section_name)
            for key, value in section_data.items():
                if hasattr(section, key):
                    setattr(section, key, value)


def _apply_env_to_config(config: LTConfig):
    """Apply environment variables to config."""
    env_mappings = {
        'LTCHECK_SERVER_URL': ('server', 'server_url', str),
        'LTCHECK_USERNAME': ('server', 'username', str),
        'LTCHECK_API_KEY': ('server', 'api_key', str),
        'LTCHECK_TIMEOUT': ('server', 'timeout', float),
        'LTCHECK_AUTO_CHECK': ('check', 'auto_check', _parse_bool),
        'LTCHECK_AUTO_CHECK_DELAY_MS': ('check', 'auto_check_delay_ms', float),
        'LTCHECK_MOTHER_TONGUE': ('check', 'mother_tongue', str),
        'LTCHECK_LANGUAGE': ('check', 'static_language', str),
        'LTCHECK_PICKY': ('check', 'picky_mode', _parse_bool),
        'LTCHECK_SYNC_DICTIONARY': ('dictionary', 'sync', _parse_bool),
        'LTCHECK_SYNONYMS': ('synonyms', 'language', str),
    }

    for env_var, (section, key, converter) in env_mappings.items():
        value = os.environ.get(env_var)
        if value is not None:
            try:
                section_obj = getattr(config, section)
                setattr(section_obj, key, converter(value))
            except (ValueError, AttributeError) as e:
                logger.warning(f"Invalid env var {env_var}={value}: {e}")


def _parse_bool(value: str) -> bool:
    """Parse boolean from string."""
    return value.lower() in ('true', '1', 'yes', 'on')


def get(key: str, default: Any = None) -> Any:
    """
    Get a configuration value by dot-notation key.

    Example: get('check.picky_mode') -> False
    """
    obj = get_config()
    for part in key.split('.'):
        if hasattr(obj, part):
            obj = getattr(obj, part)
        else:
            return default
    return obj


def set(key: str, value: Any):
    """
    Set a configuration value by dot-notation key.

    Example: set('check.auto_check', True)
    """
    config = get_config()
    parts = key.split('.')

    if len(parts) != 2:
        raise ValidationError(f"Key must be in format 'section.key': {key}", field=key)

    section_name, attr_name = parts
    if not hasattr(config, section_name):
        raise ValidationError(f"Unknown config section: {section_name}", field=key)
    section = getattr(config, section_name)
    if not hasattr(section, attr_name):
        raise ValidationError(f"Unknown config key: {attr_name}", field=key)

    if key == 'server.server_url':
        value = normalize_server_url(value)
    elif key in ('server.username', 'server.api_key') and value:
        value = ''.join(str(value).split())
    elif key.startswith('check.') and attr_name.endswith(('_categories', '_rules')):
        value = ''.join(str(value or '').split())
    setattr(section, attr_name, value)

    if key in ('server.server_url', 'check.auto_check_delay_ms'):
        config.check.auto_check_delay_ms = clamp_auto_check_delay(
            config.check.auto_check_delay_ms, config.server.server_url)


def save_config(path: Optional[Path] = None):
    """Save current configuration to file."""
    path = path or CONFIG_FILE
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(asdict(get_config()), f, indent=2)


def reset_config():
    """Reset configuration to defaults."""
    global _config
    _config = LTConfig()
