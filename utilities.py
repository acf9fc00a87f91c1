import inspect
import math
import os
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from rich import print as _print

# Log types hidden when RESXSHRINK_LOG_LEVEL=quiet
QUIET_SUPPRESSED = {'DEBUG', 'STATE', 'PROGRESS'}

def Print(logType: str, message: str) -> None:
    """
    Prints a log message with timestamp, function name, symbols wrapping the logType, and the message.
    """
    try:
        logTypeUpper = logType.upper()
        if os.environ.get('RESXSHRINK_LOG_LEVEL', '').lower() == 'quiet' and logTypeUpper in QUIET_SUPPRESSED:
            return

        # Mapping of logType to symbols
        logTypeSymbols = {
            'SUCCESS': ('^^^', '^^^'),
            'FAILURE': ('###', '###'),
            'STATE': ('~~~', '~~~'),
            'INFO': ('---', '---'),
            'IMPORTANT': ('===', '==='),
            'CRITICAL': ('***', '***'),
            'EXCEPTION': ('!!!', '!!!'),
            'WARNING': ('(((', ')))'),
            'DEBUG': ('[[[', ']]]'),
            'ATTEMPT': ('???', '???'),
            'STARTING': ('>>>', '>>>'),
            'PROGRESS': ('vvv', 'vvv'),
            'COMPLETED': ('<<<', '<<<'),
            'HEADER': ('###', '###'),
        }

        # Mapping of logType to styles
        logTypeStyles = {
            'SUCCESS': 'green',
            'FAILURE': 'red bold',
            'STATE': 'cyan',
            'INFO': 'blue',
            'IMPORTANT': 'magenta',
            'CRITICAL': 'red bold',
            'EXCEPTION': 'red bold',
            'WARNING': 'yellow',
            'DEBUG': 'white',
            'ATTEMPT': 'cyan',
            'STARTING': 'green',
            'PROGRESS': 'blue',
            'COMPLETED': 'green',
            'HEADER': 'magenta bold',
        }

        # Get current timestamp with microseconds
        current_time = time.time()
        timestamp = datetime.fromtimestamp(current_time, tz=timezone.utc).isoformat(timespec='microseconds') + 'Z'

        # Get symbols for the logType
        symbols = logTypeSymbols.get(logTypeUpper, ('', ''))
        before_symbol, after_symbol = symbols

        # Construct the formatted logType with symbols
        formattedLogType = f"{before_symbol} {logTypeUpper} {after_symbol}"

        # Apply style if available
        style = logTypeStyles.get(logTypeUpper, '')
        if style:
            formattedLogType = f"[{style}]{formattedLogType}[/{style}]"

        # Get the caller function name
        caller_frame = inspect.stack()[1]
        function_name = caller_frame.function

        # If the caller is Print, get the next frame
        if function_name == 'Print':
            caller_frame = inspect.stack()[2]
            function_name = caller_frame.function

        # Pad the function name for alignment (optional)
        functionNamePadding = 40
        paddedFunctionName = function_name.ljust(functionNamePadding)

        # Construct the output line
        output_line = f"{timestamp} {formattedLogType} {paddedFunctionName} {message}"

        # Print the output using rich
        _print(output_line)

    except Exception as e:
        error_message = f"Something went wrong when attempting to print.\nError: {e}"
        print(error_message)


# Characters rejected in container paths
_UNSAFE_PATH_CHARS = re.compile(r'[<>"|?*\x00]')

MAX_PATH_LENGTH = 260


@dataclass
class ValidationResult:
    """Outcome of validating a user-supplied value."""
    is_valid: bool
    value: Optional[Path] = None
    error_message: str = ""

    @classmethod
    def valid(cls, value: Path) -> "ValidationResult":
        return cls(is_valid=True, value=value)

    @classmethod
    def invalid(cls, message: str) -> "ValidationResult":
        return cls(is_valid=False, error_message=message)


def validate_file_path(file_path) -> ValidationResult:
    """
    Validate a file path and resolve it to an absolute path.

    Rejects empty paths, paths longer than MAX_PATH_LENGTH and paths
    containing characters that are unsafe to pass to external tools.
    The file does not have to exist.
    """
    if file_path is None:
        return ValidationResult.invalid("File path cannot be null or empty")

    text = str(file_path)
    if not text.strip():
        return ValidationResult.invalid("File path cannot be null or empty")

    if len(text) > MAX_PATH_LENGTH:
        return ValidationResult.invalid(f"File path exceeds maximum length ({MAX_PATH_LENGTH} characters)")

    if _UNSAFE_PATH_CHARS.search(text):
        return ValidationResult.invalid("File path contains invalid characters")

    try:
        return ValidationResult.valid(Path(text).expanduser().absolute())
    except (OSError, RuntimeError) as e:
        return ValidationResult.invalid(f"Invalid file path: {e}")


_SIZE_SUFFIXES = ["bytes", "KB", "MB", "GB", "TB", "PB", "EB", "ZB", "YB"]


def to_file_size(value: int, decimal_places: int = 1) -> str:
    """
    Convert a byte count to a human-readable string, e.g. 1536 -> '1.5 KB'.
    """
    if decimal_places < 0:
        raise ValueError("decimal_places must be >= 0")
    if value < 0:
        return "-" + to_file_size(-value, decimal_places)
    if value < 1024:
        return f"{value:,} bytes"

    magnitude = min(int(math.log(value, 1024)), len(_SIZE_SUFFIXES) - 1)
    adjusted = value / (1 << (magnitude * 10))

    # Roll over to the next unit instead of printing "1000.0 KB"
    if round(adjusted, decimal_places) >= 1000 and magnitude < len(_SIZE_SUFFIXES) - 1:
        magnitude += 1
        adjusted /= 1024

    return f"{adjusted:,.{decimal_places}f} {_SIZE_SUFFIXES[magnitude]}"


def safe_delete(path: Optional[Path]) -> bool:
    """
    Delete a file if it exists. Never raises.

    Returns:
        True if a file was removed
    """
    if path is None:
        return False
    try:
        path = Path(path)
        if path.exists():
            path.unlink()
            return True
    except OSError as e:
        Print("WARNING", f"Could not delete {path}: {e}")
    return False
