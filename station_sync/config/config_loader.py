"""
Configuration loader for the station sync service
"""

import copy
import os
import logging
from pathlib import Path
from typing import Dict, Any, Optional, Union

import yaml
from dotenv import load_dotenv


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path('config/station.yaml')

DEFAULT_CONFIG: Dict[str, Any] = {
    'api': {
        'base_url': 'https://rfid-laundry-backend-production.up.railway.app/api',
        'timeout_seconds': 30.0,
        'token': None
    },
    'store': {
        'data_dir': './data',
        'filename': 'rfid-cache.sqlite',
        'autosave_interval_seconds': 5.0
    },
    'sync': {
        'page_size': 1000,
        'full_sync_max_pages': 500,
        'delta_sync_max_pages': 100,
        'pending_batch_limit': 100,
        'delta_overlap_seconds': 0,
        'auto_sync_enabled': False,
        'auto_sync_interval_seconds': 300
    },
    'server': {
        'host': '127.0.0.1',
        'port': 8765,
        'cors_origins': ['*']
    },
    'logging': {
        'level': 'INFO',
        'file_path': None,
        'json': False,
        'console': True
    }
}


def load_config(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """Load configuration from defaults, YAML and environment (in that order)"""

    # Load environment variables
    load_dotenv()

    config = copy.deepcopy(DEFAULT_CONFIG)

    yaml_path = Path(path) if path else DEFAULT_CONFIG_PATH
    if yaml_path.exists():
        try:
            with open(yaml_path, 'r', encoding='utf-8') as f:
                yaml_config = yaml.safe_load(f)
            if yaml_config:
                _deep_update(config, yaml_config)
                logger.info(f"Configuration loaded from {yaml_path}")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load configuration from {yaml_path}: {e}")
            logger.error("Using default configuration")
    elif path:
        logger.warning(f"Configuration file {yaml_path} not found, using defaults")

    # Override with environment variables
    if os.getenv('STATION_API_BASE_URL'):
        config['api']['base_url'] = os.getenv('STATION_API_BASE_URL')

    if os.getenv('STATION_API_TOKEN'):
        config['api']['token'] = os.getenv('STATION_API_TOKEN')

    if os.getenv('STATION_REQUEST_TIMEOUT'):
        try:
            config['api']['timeout_seconds'] = float(os.getenv('STATION_REQUEST_TIMEOUT'))
        except ValueError:
            logger.warning(f"Ignoring invalid STATION_REQUEST_TIMEOUT: {os.getenv('STATION_REQUEST_TIMEOUT')}")

    if os.getenv('STATION_DATA_DIR'):
        config['store']['data_dir'] = os.getenv('STATION_DATA_DIR')

    if os.getenv('STATION_CACHE_FILE'):
        config['store']['filename'] = os.getenv('STATION_CACHE_FILE')

    if os.getenv('LOG_LEVEL'):
        config['logging']['level'] = os.getenv('LOG_LEVEL', 'INFO').upper()

    return config


def cache_path(config: Dict[str, Any]) -> Path:
    """Snapshot file location derived from the store section"""
    store = config.get('store', {})
    return Path(store.get('data_dir', './data')) / store.get('filename', 'rfid-cache.sqlite')


def _deep_update(base_dict: Dict[str, Any], update_dict: Dict[str, Any]) -> None:
    """Deep update nested dictionary"""
    for key, value in update_dict.items():
        if key in base_dict and isinstance(base_dict[key], dict) and isinstance(value, dict):
            _deep_update(base_dict[key], value)
        else:
            base_dict[key] = value
