"""
Standardized Error Handling for polykv
======================================

Exception taxonomy and helpers shared by the codec, the collection layer and
every storage backend.

Propagation rules:
- InvalidKeyError / InvalidValueError / TypeMismatchError are raised before
  any backend I/O is attempted.
- CodecError never leaves the codec; decode falls back to a default instead.
- CryptoError and BackendUnavailableError surface unchanged to the caller and
  are never retried here.
"""

import functools
import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Type, Union

logger = logging.getLogger(__name__)


class PolykvError(Exception):
    """Base exception for all polykv errors."""

    log_level = logging.ERROR

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.context = context or {}
        super().__init__(message)

        context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
        logger.log(
            self.log_level,
            f"{type(self).__name__}: {message}"
            + (f" ({context_str})" if context_str else "")
        )


class ConfigurationError(PolykvError):
    """Raised when database configuration is invalid."""

    pass


class InvalidKeyError(PolykvError):
    """Raised when a key (or table name) fails validation."""

    pass


class InvalidValueError(PolykvError):
    """Raised when a value cannot be stored."""

    pass


class TypeMismatchError(PolykvError):
    """Raised when a stored value has the wrong shape for an operation."""

    pass


class CodecError(PolykvError):
    """Raised inside the codec when a stored string cannot be decoded."""

    # Recovered by the codec itself; the fallback path logs the warning
    log_level = logging.DEBUG


class CryptoError(PolykvError):
    """Raised when decryption or decompression of persisted data fails."""

    pass


class BackendUnavailableError(PolykvError):
    """Raised when the underlying storage medium rejects an operation."""

    pass


def with_error_handling(
    error_type: Type[PolykvError] = BackendUnavailableError,
    context: Optional[Dict[str, Any]] = None,
):
    """
    Decorator converting foreign exceptions raised by a storage medium.

    polykv errors pass through untouched; anything else (driver errors,
    OSError, ...) is re-raised as ``error_type`` chained to the original.

    Args:
        error_type: Type of PolykvError to raise
        context: Additional context to include in the error
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except PolykvError:
                raise
            except Exception as e:
                error_context = (context or {}).copy()
                error_context.update(
                    {
                        "function": func.__name__,
                        "original_error": str(e),
                        "original_error_type": type(e).__name__,
                    }
                )
                # Backend methods carry the table they operate on
                table = getattr(args[0], "table", None) if args else None
                if table is not None:
                    error_context["table"] = table

                raise error_type(f"Error in {func.__name__}: {e}", error_context) from e

        return wrapper

    return decorator


@contextmanager
def operation_context(operation: str, **context):
    """
    Context manager for storage operations with timing and failure logging.

    Args:
        operation: Description of the operation
        **context: Additional context for logging
    """
    logger.debug(f"Starting operation: {operation}", extra=context)
    start_time = time.time()

    try:
        yield
        duration = time.time() - start_time
        logger.debug(f"Operation completed: {operation} ({duration:.3f}s)", extra=context)
    except PolykvError:
        logger.error(f"Operation failed: {operation}", extra=context)
        raise
    except Exception as e:
        logger.error(f"Unexpected error in operation: {operation} - {e}", extra=context)
        raise


def validate_file_path(file_path: Union[str, Path], must_exist: bool = False) -> Path:
    """
    Validate and normalize file paths with proper error handling.

    Args:
        file_path: File path to validate
        must_exist: Whether the file must already exist

    Returns:
        Validated Path object

    Raises:
        BackendUnavailableError: If path validation fails
    """
    try:
        path = Path(file_path)

        if not path.name:
            raise BackendUnavailableError(
                "Invalid file path: empty filename", {"file_path": str(file_path)}
            )

        if must_exist and not path.exists():
            raise BackendUnavailableError(
                f"Required file does not exist: {path}", {"file_path": str(file_path)}
            )

        if not must_exist:
            path.parent.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Ensured directory exists: {path.parent}")

        return path

    except OSError as e:
        raise BackendUnavailableError(
            f"File system error: {e}",
            {"file_path": str(file_path), "must_exist": must_exist},
        ) from e


def safe_file_operation(operation: str, file_path: Path, func: Callable, *args, **kwargs):
    """
    Perform a file operation, mapping OS failures to BackendUnavailableError.

    Args:
        operation: Description of the operation
        file_path: File being operated on
        func: Function to call
        *args, **kwargs: Arguments for the function

    Returns:
        Result of the function call
    """
    with operation_context(operation, file_path=str(file_path)):
        try:
            return func(*args, **kwargs)
        except PermissionError as e:
            raise BackendUnavailableError(
                f"Permission denied for {operation}: {file_path}",
                {"operation": operation, "file_path": str(file_path)},
            ) from e
        except OSError as e:
            raise BackendUnavailableError(
                f"File system error during {operation}: {e}",
                {"operation": operation, "file_path": str(file_path)},
            ) from e


def handle_import_errors(module_name: str, required_for: Optional[str] = None) -> Callable:
    """
    Decorator turning a missing optional driver into a ConfigurationError.

    Args:
        module_name: Name of the distribution to install
        required_for: What functionality requires this module
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except ImportError as e:
                error_msg = f"Missing dependency '{module_name}'"
                if required_for:
                    error_msg += f" required for {required_for}"

                context = {
                    "module_name": module_name,
                    "required_for": required_for,
                    "function": func.__name__,
                }

                logger.error(f"{error_msg}. Install with: pip install {module_name}")
                raise ConfigurationError(error_msg, context) from e

        return wrapper

    return decorator
