import asyncio
import logging
import os
import sys
import time
from datetime import datetime
from functools import wraps
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from pathlib import Path
from pythonjsonlogger import jsonlogger

PERFORMANCE_LOGGER = 'taipulse.performance'


class EnhancedJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter with the standard TaiPulse fields"""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        log_record['timestamp'] = datetime.utcnow().isoformat() + 'Z'
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['function'] = record.funcName
        log_record['line'] = record.lineno
        log_record['module'] = record.module

        log_record['application'] = 'TaiPulse'
        log_record['environment'] = os.getenv('ENVIRONMENT', 'unknown')
        log_record['process_id'] = os.getpid()

        if hasattr(record, 'duration_ms'):
            log_record['duration_ms'] = record.duration_ms

        if hasattr(record, 'extra_fields'):
            log_record.update(record.extra_fields)


class ColorFormatter(logging.Formatter):
    """Color formatter for console output"""

    grey = "\x1b[38;20m"
    green = "\x1b[32;20m"
    yellow = "\x1b[33;20m"
    red = "\x1b[31;20m"
    bold_red = "\x1b[31;1m"
    reset = "\x1b[0m"

    FORMATS = {
        logging.DEBUG: f"{grey}%(asctime)s [%(levelname)s] %(name)s:%(funcName)s:%(lineno)d - %(message)s{reset}",
        logging.INFO: f"{green}%(asctime)s [%(levelname)s] %(name)s:%(funcName)s - %(message)s{reset}",
        logging.WARNING: f"{yellow}%(asctime)s [%(levelname)s] %(name)s:%(funcName)s - %(message)s{reset}",
        logging.ERROR: f"{red}%(asctime)s [%(levelname)s] %(name)s:%(funcName)s - %(message)s{reset}",
        logging.CRITICAL: f"{bold_red}%(asctime)s [%(levelname)s] %(name)s:%(funcName)s - %(message)s{reset}",
    }

    def format(self, record):
        log_fmt = self.FORMATS.get(record.levelno, self.FORMATS[logging.DEBUG])
        formatter = logging.Formatter(log_fmt, datefmt='%Y-%m-%d %H:%M:%S')
        return formatter.format(record)


def setup_logging(log_level: str = "INFO", log_dir: str = "logs"):
    """
    Root logging setup:
    - JSON main log, rotated daily
    - Separate error log
    - Performance log (log_performance decorator)
    - Colored console output
    """
    log_path = Path(log_dir)
    log_path.mkdir(exist_ok=True)

    logger = logging.getLogger()
    logger.setLevel(getattr(logging, log_level.upper()))
    logger.handlers.clear()

    json_formatter = EnhancedJsonFormatter(
        '%(timestamp)s %(level)s %(logger)s %(function)s:%(lineno)d %(message)s'
    )

    # 1. Main JSON log
    main_handler = TimedRotatingFileHandler(
        filename=log_path / "taipulse.log",
        when='midnight',
        interval=1,
        backupCount=14,
        encoding='utf-8',
    )
    main_handler.setLevel(logging.DEBUG)
    main_handler.setFormatter(json_formatter)
    logger.addHandler(main_handler)

    # 2. Errors only
    error_handler = RotatingFileHandler(
        filename=log_path / "taipulse_errors.log",
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding='utf-8',
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(json_formatter)
    logger.addHandler(error_handler)

    # 3. Performance
    perf_handler = RotatingFileHandler(
        filename=log_path / "taipulse_perf.log",
        maxBytes=5 * 1024 * 1024,
        backupCount=3,
        encoding='utf-8',
    )
    perf_handler.setLevel(logging.INFO)
    perf_handler.setFormatter(EnhancedJsonFormatter(
        '%(timestamp)s %(level)s %(logger)s %(function)s %(message)s'
    ))
    perf_logger = logging.getLogger(PERFORMANCE_LOGGER)
    perf_logger.setLevel(logging.INFO)
    perf_logger.handlers.clear()
    perf_logger.addHandler(perf_handler)
    perf_logger.propagate = False

    # 4. Console
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.INFO)
    console.setFormatter(ColorFormatter())
    logger.addHandler(console)

    # 5. Noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logger.info(f"Logging initialized at level {log_level}")
    logger.info(f"Log directory: {log_path.absolute()}")

    return logger


def log_performance(logger_name: str = PERFORMANCE_LOGGER):
    """Decorator to log function duration"""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.time()
            try:
                return func(*args, **kwargs)
            finally:
                duration_ms = (time.time() - start_time) * 1000
                logging.getLogger(logger_name).info(
                    f"Function {func.__name__} completed",
                    extra={'duration_ms': duration_ms}
                )

        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            start_time = time.time()
            try:
                return await func(*args, **kwargs)
            finally:
                duration_ms = (time.time() - start_time) * 1000
                logging.getLogger(logger_name).info(
                    f"Async function {func.__name__} completed",
                    extra={'duration_ms': duration_ms}
                )

        return async_wrapper if asyncio.iscoroutinefunction(func) else wrapper
    return decorator
