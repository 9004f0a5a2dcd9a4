"""
v2stat Version Management
Semantic Versioning: MAJOR.MINOR.PATCH
"""

VERSION_MAJOR = 0
VERSION_MINOR = 3
VERSION_PATCH = 0

# Pre-release identifier (optional, e.g., 'alpha', 'beta', 'rc1')
VERSION_PRERELEASE = None


def get_version():
    """
    Get the full version string
    Returns: str - Full version string (e.g., "0.3.0" or "0.3.0-beta")
    """
    version = f"{VERSION_MAJOR}.{VERSION_MINOR}.{VERSION_PATCH}"

    if VERSION_PRERELEASE:
        version += f"-{VERSION_PRERELEASE}"

    return version


def get_version_info():
    """
    Get detailed version information
    Returns: dict - Dictionary with version details
    """
    return {
        'version': get_version(),
        'major': VERSION_MAJOR,
        'minor': VERSION_MINOR,
        'patch': VERSION_PATCH,
        'prerelease': VERSION_PRERELEASE,
    }
