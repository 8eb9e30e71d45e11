#!/usr/bin/env python3
"""
RPKI Dash Error Handling Utilities

Provides standardized error formatting and exit-code mapping for consistent
error reporting across the batch job.

Error Format Standards:
- INFO: "✓ {message}"                    # Success messages
- WARNING: "⚠ {message}"                 # Warning messages
- ERROR: "✗ {message}"                   # Error messages
- FATAL: "✗ Fatal: {message}"            # Run-aborting errors
- USAGE: "Usage: {usage_help}"           # Usage guidance
"""

import logging
from functools import wraps
from typing import Optional, Union


class ErrorSeverity:
    """Error severity levels for consistent classification"""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"
    USAGE = "usage"


class RPKIDashError(Exception):
    """Base exception class for RPKI Dash with standardized error handling"""

    def __init__(self, message: str, severity: str = ErrorSeverity.ERROR,
                 guidance: Optional[str] = None, technical_details: Optional[str] = None):
        self.message = message
        self.severity = severity
        self.guidance = guidance
        self.technical_details = technical_details
        super().__init__(message)


class ValidationError(RPKIDashError):
    """Raised when parameter validation fails"""

    def __init__(self, message: str, parameter: str = None, guidance: str = None):
        self.parameter = parameter
        super().__init__(message, ErrorSeverity.ERROR, guidance)


class ConfigurationError(RPKIDashError):
    """Raised when configuration is invalid or missing"""
    pass


class FeedError(RPKIDashError):
    """Raised when a remote feed cannot be retrieved or decoded"""

    def __init__(self, url: str, reason: str):
        self.url = url
        super().__init__(
            f"Failed to fetch {url}: {reason}",
            ErrorSeverity.FATAL,
            "Check network connectivity and the feed URL, then restart the run",
        )


class StageError(RPKIDashError):
    """Raised at a stage barrier when a worker failed fatally"""

    def __init__(self, stage: str, item, cause: BaseException):
        self.stage = stage
        self.item = item
        self.cause = cause
        super().__init__(
            f"{stage} aborted: {cause}",
            ErrorSeverity.FATAL,
            "A failed run must be restarted from the beginning",
            technical_details=f"item={item!r} error={type(cause).__name__}",
        )


class ErrorFormatter:
    """Centralized error message formatting with consistent symbols and styles"""

    SYMBOLS = {
        ErrorSeverity.INFO: "✓",
        ErrorSeverity.WARNING: "⚠",
        ErrorSeverity.ERROR: "✗",
        ErrorSeverity.FATAL: "✗ Fatal:",
        ErrorSeverity.USAGE: "Usage:"
    }

    @classmethod
    def format_message(cls, message: str, severity: str = ErrorSeverity.ERROR,
                       guidance: Optional[str] = None) -> str:
        """Format a message with the appropriate symbol and structure"""
        symbol = cls.SYMBOLS.get(severity, "•")
        formatted = f"{symbol} {message}"

        if guidance:
            formatted += f"\n  Suggestion: {guidance}"

        return formatted

    @classmethod
    def format_error(cls, error: Union[Exception, RPKIDashError],
                     hide_technical: bool = True) -> str:
        """Format an exception with appropriate level of detail"""
        if isinstance(error, RPKIDashError):
            formatted = cls.format_message(error.message, error.severity, error.guidance)
            if not hide_technical and error.technical_details:
                formatted += f"\n  Technical: {error.technical_details}"
            return formatted

        error_type = type(error).__name__
        message = str(error)

        if isinstance(error, FileNotFoundError):
            guidance = "Check that the file path is correct and the file exists"
            return cls.format_message(f"File not found: {message}",
                                      ErrorSeverity.ERROR, guidance)
        elif isinstance(error, PermissionError):
            guidance = "Check file permissions or run with appropriate privileges"
            return cls.format_message(f"Permission denied: {message}",
                                      ErrorSeverity.ERROR, guidance)
        elif isinstance(error, ValueError):
            guidance = "Verify input parameters and try again"
            return cls.format_message(f"Invalid input: {message}",
                                      ErrorSeverity.ERROR, guidance)
        elif isinstance(error, KeyboardInterrupt):
            return cls.format_message("Operation interrupted by user", ErrorSeverity.WARNING)
        else:
            if hide_technical:
                return cls.format_message("Unexpected error occurred", ErrorSeverity.ERROR,
                                          "Check logs for details or run with --verbose")
            return cls.format_message(f"Unexpected {error_type}: {message}",
                                      ErrorSeverity.ERROR)


class ParameterValidator:
    """Parameter validation with range checks and user guidance"""

    @staticmethod
    def validate_workers(workers: int, parameter_name: str = "workers") -> int:
        """Validate the admission gate capacity"""
        if workers <= 0:
            raise ValidationError(
                f"Worker count must be positive, got {workers}",
                parameter_name,
                "Use a positive integer (the default is 20)"
            )
        if workers > 256:
            logger = logging.getLogger('rpki_dash.validation')
            logger.warning(f"Very high worker count ({workers}) - the record store will serialize writes anyway")
        return workers

    @staticmethod
    def validate_snapshot_date(date: str, parameter_name: str = "date") -> str:
        """Validate a YYYY-MM-DD snapshot date"""
        from datetime import datetime

        try:
            datetime.strptime(date, "%Y-%m-%d")
        except (TypeError, ValueError):
            raise ValidationError(
                f"Snapshot date must be YYYY-MM-DD, got '{date}'",
                parameter_name,
                "Use a calendar date such as 2024-01-31"
            )
        return date


def handle_errors(logger_name: str = None, hide_technical: bool = True):
    """Decorator for standardized error handling in command functions"""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            logger = logging.getLogger(logger_name or f'rpki_dash.{func.__name__}')

            try:
                return func(*args, **kwargs)
            except RPKIDashError as e:
                logger.error(f"{e.severity.title()} in {func.__name__}: {e.message}")
                print(ErrorFormatter.format_error(e, hide_technical))

                if e.severity == ErrorSeverity.FATAL:
                    return 2
                elif e.severity == ErrorSeverity.ERROR:
                    return 1
                else:
                    return 0

            except KeyboardInterrupt:
                logger.info(f"Command {func.__name__} interrupted by user")
                print(ErrorFormatter.format_message("Operation interrupted by user",
                                                    ErrorSeverity.WARNING))
                return 130

            except Exception as e:
                logger.exception(f"Unexpected error in {func.__name__}: {e}")
                print(ErrorFormatter.format_error(e, hide_technical))
                return 1

        return wrapper
    return decorator


def print_success(message: str):
    """Print a success message with consistent formatting"""
    print(ErrorFormatter.format_message(message, ErrorSeverity.INFO))


def print_warning(message: str, guidance: str = None):
    """Print a warning message with consistent formatting"""
    print(ErrorFormatter.format_message(message, ErrorSeverity.WARNING, guidance))


__all__ = [
    'ErrorSeverity', 'RPKIDashError', 'ValidationError', 'ConfigurationError',
    'FeedError', 'StageError', 'ErrorFormatter', 'ParameterValidator',
    'handle_errors', 'print_success', 'print_warning',
]
