"""
Logging Manager for the station sync service
Console and rotating file handlers with token-safe formatting
"""

import json
import logging
import logging.handlers
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


class SecuritySafeFormatter(logging.Formatter):
    """Formatter that masks bearer tokens and credential-looking values"""

    BEARER_PATTERN = re.compile(r'(Bearer\s+)[A-Za-z0-9\-._~+/]+=*', re.IGNORECASE)

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.sensitive_fields = {'password', 'secret', 'token', 'authorization', 'api_key'}
        self._field_patterns = [
            (field, re.compile(rf'{field}["\']?\s*[:=]\s*["\']?([^"\s,}}]+)', re.IGNORECASE))
            for field in self.sensitive_fields
        ]

    def format(self, record):
        record.msg = self._sanitize_message(record.getMessage())
        record.args = None
        return super().format(record)

    def _sanitize_message(self, message: str) -> str:
        message = self.BEARER_PATTERN.sub(r'\1***', message)
        lowered = message.lower()
        for field, pattern in self._field_patterns:
            if field in lowered:
                message = pattern.sub(f'{field}=***', message)
        return message


class JSONFormatter(SecuritySafeFormatter):
    """One JSON object per line"""

    def format(self, record):
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'component': record.name,
            'message': self._sanitize_message(record.getMessage()),
            'metadata': {
                'filename': record.filename,
                'lineno': record.lineno,
                'funcName': record.funcName
            }
        }

        if record.exc_info:
            log_data['stack_trace'] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False)


class LoggingManager:
    """Configures the root logger from the ``logging`` config section"""

    DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    def __init__(self):
        self.configured = False
        self.handlers: List[logging.Handler] = []

    def configure(self, config: Optional[Dict[str, Any]] = None, force: bool = False) -> None:
        if self.configured and not force:
            return
        if force:
            self.shutdown()

        config = config or {}
        level = getattr(logging, str(config.get('level', 'INFO')).upper(), logging.INFO)

        root_logger = logging.getLogger()
        root_logger.setLevel(level)

        if config.get('console', True):
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(level)
            if config.get('json'):
                console_handler.setFormatter(JSONFormatter())
            else:
                console_handler.setFormatter(SecuritySafeFormatter(self.DEFAULT_FORMAT))
            root_logger.addHandler(console_handler)
            self.handlers.append(console_handler)

        file_path = config.get('file_path')
        if file_path:
            Path(file_path).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                filename=file_path,
                maxBytes=int(config.get('file_max_bytes', 5 * 1024 * 1024)),
                backupCount=int(config.get('file_backup_count', 3)),
                encoding='utf-8'
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(JSONFormatter())
            root_logger.addHandler(file_handler)
            self.handlers.append(file_handler)

        self.configured = True
        logging.getLogger(__name__).debug("Logging system configured")

    def shutdown(self) -> None:
        root_logger = logging.getLogger()
        for handler in self.handlers:
            root_logger.removeHandler(handler)
            try:
                handler.close()
            except Exception as e:
                print(f"Error closing log handler: {e}", file=sys.stderr)

        self.handlers.clear()
        self.configured = False


# Global logging manager
logging_manager = LoggingManager()


def configure_logging(config: Optional[Dict[str, Any]] = None) -> LoggingManager:
    logging_manager.configure(config)
    return logging_manager
