"""
Configuration constants and settings for the v2stat traffic recorder
"""
import os
import json
# Note: Settings are stored as plain JSON (no encryption)
# Environment variables take precedence over settings.json

# File paths
LOG_FILE = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'v2stat.log')
SETTINGS_FILE = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'settings.json')

# Database locations searched (in order) when no path is configured
DEFAULT_DB_PATHS = [
    'v2stat.db',
    'traffic.db',
    '/var/lib/v2stat/traffic.db',
    '/usr/local/share/v2stat/traffic.db',
    '/opt/apps/v2stat/traffic.db',
]

# =========================================
# Hourly Report Bucketing
# =========================================
# Hour buckets are computed from UTC epoch timestamps shifted by this fixed
# offset (hours). It is not a timezone: DST is never applied.
HOURLY_BUCKET_OFFSET_HOURS = 8

# =========================================
# Stats API (V2Ray / Xray StatsService)
# =========================================
DEFAULT_SERVER = '127.0.0.1:8080'
# gRPC service name per server flavor; the method path is /{service}/QueryStats
STATS_SERVICES = {
    'v2ray': 'v2ray.core.app.stats.command.StatsService',
    'xray': 'xray.app.stats.command.StatsService',
}
DEFAULT_STATS_SERVICE = 'v2ray'
DEFAULT_REQUEST_TIMEOUT = 10  # seconds

# Default settings
DEFAULT_SETTINGS = {
    'interval': 300,  # Seconds between reset-reads of the counters
    'server': DEFAULT_SERVER,
    'db_path': '',  # Empty: search DEFAULT_DB_PATHS
    'log_level': 'info',
    'hour_offset': HOURLY_BUCKET_OFFSET_HOURS,
    'request_timeout': DEFAULT_REQUEST_TIMEOUT,
    'stats_service': DEFAULT_STATS_SERVICE,  # Key of STATS_SERVICES
    'collection_enabled': True,
}

# Environment variable -> (settings key, converter)
ENV_OVERRIDES = {
    'V2STAT_SERVER': ('server', str),
    'V2STAT_DB': ('db_path', str),
    'V2STAT_INTERVAL': ('interval', int),
    'V2STAT_LOG_LEVEL': ('log_level', str),
    'V2STAT_STATS_SERVICE': ('stats_service', str),
}


# Lazy import to avoid circular dependency
def _get_logger():
    """Import logger functions lazily to avoid circular import"""
    from logger import debug, error, warning
    return debug, error, warning


def ensure_settings_file_exists():
    """Create settings.json if it doesn't exist"""
    if not os.path.exists(SETTINGS_FILE):
        with open(SETTINGS_FILE, 'w') as f:
            json.dump(DEFAULT_SETTINGS, f, indent=2)


def _apply_env_overrides(settings):
    for env_name, (key, convert) in ENV_OVERRIDES.items():
        raw = os.getenv(env_name)
        if raw is None or raw == '':
            continue
        try:
            settings[key] = convert(raw)
        except ValueError:
            # Bad override: keep the file/default value
            pass
    return settings


def load_settings():
    """
    Load settings from file or return defaults.

    Missing keys are filled from DEFAULT_SETTINGS, then environment
    overrides are applied.

    Note: This function does NOT use logging to avoid circular dependencies
    since logger.get_logger() calls load_settings().
    """
    settings = DEFAULT_SETTINGS.copy()

    try:
        ensure_settings_file_exists()
        with open(SETTINGS_FILE, 'r') as f:
            stored = json.load(f)
        if isinstance(stored, dict):
            settings.update(stored)
    except (OSError, ValueError):
        pass

    return _apply_env_overrides(settings)


def save_settings(settings):
    """
    Save settings to file.

    Returns:
        bool: True if saved, False otherwise
    """
    debug, error, _ = _get_logger()
    debug(f"Saving settings to file: {settings}")
    try:
        with open(SETTINGS_FILE, 'w') as f:
            json.dump(settings, f, indent=2)
            f.flush()
            os.fsync(f.fileno())

        debug("Settings saved successfully")
        return True
    except OSError as e:
        error(f"Failed to save settings: {e}")
        return False


def resolve_db_path(explicit_path=None):
    """
    Resolve the SQLite database path.

    Args:
        explicit_path: Path given on the command line or in settings

    Returns:
        str or None: The explicit path, else the first existing entry of
        DEFAULT_DB_PATHS, else None
    """
    if explicit_path:
        return explicit_path

    for path in DEFAULT_DB_PATHS:
        if os.path.exists(path):
            return path

    return None
