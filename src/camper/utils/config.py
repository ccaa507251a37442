import yaml
import os
import shutil
import logging
from dotenv import load_dotenv

"""
Configuration loading for the Camper client.

Settings come from defaults overridden by environment variables (a .env file
is loaded first when present) and, outside development mode, by
<data_dir>/config.yaml (or an explicit path).
"""

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64; rv:120.0) Gecko/20100101 Firefox/120.0"

# key -> (env var, default, cast)
_NUMERIC_SETTINGS = {
    'volume': ('CAMPER_VOLUME', 100, int),
    'load_timeout': ('CAMPER_LOAD_TIMEOUT', 20.0, float),
    'resolve_timeout': ('CAMPER_RESOLVE_TIMEOUT', 15.0, float),
    'request_timeout': ('CAMPER_REQUEST_TIMEOUT', 15.0, float),
    'page_size': ('CAMPER_PAGE_SIZE', 50, int),
}


def default_data_dir() -> str:
    """~/.config/camper, honouring XDG_CONFIG_HOME."""
    base = os.getenv('XDG_CONFIG_HOME') or os.path.join(os.path.expanduser('~'), '.config')
    return os.path.join(base, 'camper')


def get_mpv_path() -> str:
    """
    Get the mpv path, checking the environment first and then PATH.
    """
    env_mpv = os.getenv('CAMPER_MPV_PATH')
    if env_mpv:
        logger.debug(f"Checking mpv from environment variable: {env_mpv}")
        if os.path.exists(env_mpv):
            logger.info(f"Found mpv from environment variable: {env_mpv}")
            return env_mpv

    found = shutil.which('mpv')
    if found:
        return found

    logger.warning("No mpv found on PATH, falling back to bare 'mpv'")
    return 'mpv'


def _read_number(env_var: str, default, cast):
    raw = os.getenv(env_var)
    if raw is None or raw == '':
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning(f"Invalid value for {env_var}: {raw!r}, using {default}")
        return default


def _normalize(config: dict) -> dict:
    """Coerce numeric settings and clamp the volume."""
    for key, (_, default, cast) in _NUMERIC_SETTINGS.items():
        try:
            config[key] = cast(config.get(key, default))
        except (TypeError, ValueError):
            logger.warning(f"Invalid value for {key}: {config.get(key)!r}, using {default}")
            config[key] = default
        if config[key] < 0:
            config[key] = default

    config['volume'] = max(0, min(100, config['volume']))
    if not config.get('session_db'):
        config['session_db'] = os.path.join(config['data_dir'], 'session.db')
    return config


def load_config(config_path: str = None) -> dict:
    """
    Loads configuration from the environment (development) or config.yaml (production).

    Args:
        config_path: Optional explicit YAML path

    Returns:
        dict: Dictionary containing client configuration
    """
    # Load .env file if it exists
    env_path = os.path.join(os.getcwd(), '.env')
    if os.path.exists(env_path):
        logger.debug(f"Loading .env file from: {env_path}")
        load_dotenv(env_path)

    is_dev = os.getenv('CAMPER_ENV', '').lower() == 'development'
    logger.info(f"Running in {'development' if is_dev else 'production'} mode")

    data_dir = os.getenv('CAMPER_DATA_DIR') or default_data_dir()
    default_config = {
        'data_dir': data_dir,
        'session_db': os.getenv('CAMPER_SESSION_DB', ''),
        'mpv_path': get_mpv_path(),
        'user_agent': os.getenv('CAMPER_USER_AGENT', DEFAULT_USER_AGENT),
        'log_level': os.getenv('LOG_LEVEL', 'INFO'),
        'debug': os.getenv('DEBUG', 'false').lower() == 'true',
    }
    for key, (env_var, default, cast) in _NUMERIC_SETTINGS.items():
        default_config[key] = _read_number(env_var, default, cast)

    config = default_config.copy()

    if not is_dev:
        path = config_path or os.path.join(data_dir, 'config.yaml')
        if os.path.exists(path):
            try:
                with open(path, 'r') as f:
                    yaml_config = yaml.safe_load(f)
                if yaml_config is not None and not isinstance(yaml_config, dict):
                    raise ValueError("top-level YAML value must be a mapping")
                # Merge yaml config with defaults
                config = {**default_config, **(yaml_config or {})}
            except (yaml.YAMLError, ValueError, OSError) as e:
                logger.error(f"Error loading {path}: {e}")
                config = default_config.copy()

    return _normalize(config)
