"""
Centralized Logging Utilities and Decorators

Provides the logging setup shared by the crawler, the ledger and the
download workers, plus a decorator that times whole pipeline phases.

Usage:
    from birdsong_scraper.logger import setup_logging, log_function

    logger = setup_logging(
        logger_name="pipeline",
        log_file="logs/scraper.log",
        verbose=True,
    )

    @log_function(logger_name="ledger", log_execution_time=True)
    def reconcile_with_disk(self, directory):
        ...
"""

import functools
import logging
import time
from pathlib import Path
from typing import Optional, Callable, Any

# Loggers of every component, attached to the same handlers by setup_logging
COMPONENT_LOGGERS = ("discovery", "crawl", "ledger", "downloader", "converter")


def setup_logging(
    logger_name: str,
    log_file: str = "logs/scraper.log",
    verbose: bool = False,
    level: int = logging.INFO,
    include_components: bool = False,
) -> logging.Logger:
    """
    Set up logging with file and optional console handlers.

    Args:
        logger_name: Name for the logger (e.g., "pipeline")
        log_file: Path to log file (default: "logs/scraper.log")
        verbose: If True, add console handler with DEBUG level (default: False)
        level: Base logging level (default: logging.INFO)
        include_components: If True, component loggers ("ledger", "downloader",
            ...) write to the same handlers

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    # Avoid adding multiple handlers if already configured
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG if verbose else level)

    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handlers = []

    file_handler = logging.FileHandler(log_path)
    file_handler.setLevel(level)
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    handlers.append(file_handler)

    # Console handler for verbose mode
    if verbose:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(logging.Formatter("DEBUG: %(message)s"))
        handlers.append(console_handler)

    for handler in handlers:
        logger.addHandler(handler)

    if include_components:
        for name in COMPONENT_LOGGERS:
            component = logging.getLogger(name)
            if component.handlers:
                continue
            component.setLevel(logger.level)
            for handler in handlers:
                component.addHandler(handler)

    return logger


def log_function(
    logger_name: Optional[str] = None,
    level: int = logging.INFO,
    log_args: bool = False,
    log_result: bool = False,
    log_execution_time: bool = True,
) -> Callable:
    """
    Decorator to automatically log function entry, exit, execution time, and exceptions.

    Unlike setup_logging this never attaches handlers: an unconfigured logger
    simply propagates to the root logger, which keeps library use and tests
    free of log files.

    Args:
        logger_name: Custom logger name (if None, uses the decorated function's module name)
        level: Log level for entry/exit messages (default: logging.INFO)
        log_args: If True, log function arguments (default: False)
        log_result: If True, log return value (default: False)
        log_execution_time: If True, log execution duration (default: True)

    Returns:
        Decorated function with logging

    Example:
        @log_function(logger_name="crawl", log_args=True)
        def crawl_catalog(start_url, session, config):
            ...
    """

    def decorator(func: Callable) -> Callable:
        name = logger_name or func.__module__

        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            logger = logging.getLogger(name)

            func_name = func.__qualname__
            log_msg = f"Calling {func_name}"

            if log_args and (args or kwargs):
                args_repr = [repr(a) for a in args]
                kwargs_repr = [f"{k}={v!r}" for k, v in kwargs.items()]
                log_msg += f" with args: {', '.join(args_repr + kwargs_repr)}"

            logger.log(level, log_msg)

            start_time = time.time()

            try:
                result = func(*args, **kwargs)

                execution_time = time.time() - start_time
                completion_msg = f"Completed {func_name}"

                if log_execution_time:
                    completion_msg += f" in {execution_time:.2f}s"

                if log_result:
                    completion_msg += f" with result: {result!r}"

                logger.log(level, completion_msg)

                return result

            except Exception as e:
                execution_time = time.time() - start_time
                logger.error(
                    f"Exception in {func_name} after {execution_time:.2f}s: {type(e).__name__}: {e}",
                    exc_info=True,
                )
                raise

        return wrapper

    return decorator


def log_with_timer(logger_name: Optional[str] = None) -> Callable:
    """
    Simple decorator that logs function entry/exit with execution time.

    Example:
        @log_with_timer("converter")
        def convert_directory(directory, converter):
            ...
    """
    return log_function(
        logger_name=logger_name,
        log_args=False,
        log_result=False,
        log_execution_time=True,
    )
