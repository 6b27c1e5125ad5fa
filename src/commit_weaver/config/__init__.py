"""
Configuration loading for commit_weaver.

See :mod:`commit_weaver.config.loader` for the layering of defaults,
user file, project file and environment.
"""

from .loader import DEFAULTS, ConfigError, load_config  # noqa: F401
