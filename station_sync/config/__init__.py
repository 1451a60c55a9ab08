"""Configuration loading"""

from station_sync.config.config_loader import load_config

__all__ = ['load_config']
