"""
Logging configuration for compose-harness

Provides structured logging with console output and optional file logging.
Compose invocations can be directed to dedicated files in the log directory.
"""

import logging
import logging.handlers
import re
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional


def setup_logging(
    log_dir: str = "logs",
    verbose: bool = False,
    log_level: Optional[str] = None,
    enable_file_logging: bool = False,
) -> logging.Logger:
    """
    Set up logging for harness operations.

    Args:
        log_dir: Directory for log files
        verbose: Enable verbose console output
        log_level: Override log level (DEBUG, INFO, WARNING, ERROR)
        enable_file_logging: Whether to write logs to files

    Returns:
        Configured logger instance
    """
    if log_level:
        level = getattr(logging, log_level.upper(), logging.INFO)
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    formatter = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    log_path = Path(log_dir)
    if enable_file_logging:
        log_path.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_path / f"compose_harness_{timestamp}.log"

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,  # 10MB files, 5 backups
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    logger = logging.getLogger("compose_harness")
    logger.debug(f"Logging initialized - Level: {logging.getLevelName(level)}")
    if enable_file_logging:
        logger.debug(f"Log directory: {log_path.absolute()}")

    return logger


def get_subprocess_log_file(operation: str, log_dir: str = "logs") -> str:
    """
    Generate timestamped log file path for compose invocations.

    Args:
        operation: Operation name (e.g., 'compose_up', 'compose_down')
        log_dir: Base log directory

    Returns:
        Full path to log file for subprocess output
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = Path(log_dir) / "compose" / f"{operation}_{timestamp}.log"
    log_file.parent.mkdir(parents=True, exist_ok=True)
    return str(log_file)


def mask_sensitive_data(message: str) -> str:
    """
    Mask sensitive information in log messages.

    Args:
        message: Log message that may contain sensitive data

    Returns:
        Message with sensitive information masked
    """
    # KEY=value pairs for password, secret and token style variables
    message = re.sub(
        r"([A-Za-z_]*(?:PASSWORD|SECRET|TOKEN)[A-Za-z_]*)=[^\s]+",
        r"\1=***",
        message,
        flags=re.IGNORECASE,
    )

    # Credentials embedded in URLs
    message = re.sub(r"://([^:/\s]+):([^@\s]+)@", r"://\1:***@", message)

    return message


class SubprocessLogHandler:
    """
    Handler for compose invocations with dedicated logging.
    """

    def __init__(
        self, operation: str, log_dir: str = "logs", write_to_file: bool = False
    ):
        """
        Initialize subprocess log handler.

        Args:
            operation: Name of the operation being logged
            log_dir: Base directory for log files
            write_to_file: Whether to also write a dedicated log file
        """
        self.operation = operation
        self.log_file: Optional[str] = None
        self.logger = logging.getLogger(f"compose_harness.subprocess.{operation}")

        # Reuse the file handler of a logger already set up for this operation
        for existing in self.logger.handlers:
            if isinstance(existing, logging.FileHandler):
                self.log_file = existing.baseFilename

        if write_to_file and self.log_file is None:
            self.log_file = get_subprocess_log_file(operation, log_dir)
            handler = logging.FileHandler(self.log_file)
            handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s - %(levelname)s - %(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )
            )
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.DEBUG)

    def log_command(self, command: list[str]) -> None:
        """Log the command being executed."""
        masked_command = [mask_sensitive_data(arg) for arg in command]
        self.logger.info(f"Executing command: {' '.join(masked_command)}")

    def log_output(self, output: str, level: int = logging.INFO) -> None:
        """Log subprocess output."""
        if output.strip():
            masked_output = mask_sensitive_data(output.strip())
            self.logger.log(level, masked_output)

    def log_completion(self, return_code: int, elapsed_time: float) -> None:
        """Log subprocess completion."""
        if return_code == 0:
            self.logger.info(
                f"{self.operation} completed successfully in {elapsed_time:.2f}s"
            )
        else:
            self.logger.error(
                f"{self.operation} failed with return code {return_code} after {elapsed_time:.2f}s"
            )

    def get_log_file_path(self) -> Optional[str]:
        """Get the path to the log file for this operation, if any."""
        return self.log_file


def configure_third_party_loggers() -> None:
    """Configure third-party library loggers to reduce noise."""
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


configure_third_party_loggers()
