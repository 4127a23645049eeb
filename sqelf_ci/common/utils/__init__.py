from sqelf_ci.common.utils.retry import (
    RetryConfig,
    async_retry,
    calculate_delay,
)
from sqelf_ci.common.utils.hash_utils import (
    hash_file,
    hash_bytes,
)
from sqelf_ci.common.utils.file_utils import (
    ensure_directory,
    empty_directory,
    relative_tree,
    iter_lines,
    get_file_size,
    copy_executable,
)
from sqelf_ci.common.utils.time_utils import (
    utc_now,
    format_duration,
    parse_iso_datetime,
    to_iso_format,
    Deadline,
    Timer,
)

__all__ = [
    "RetryConfig",
    "async_retry",
    "calculate_delay",
    "hash_file",
    "hash_bytes",
    "ensure_directory",
    "empty_directory",
    "relative_tree",
    "iter_lines",
    "get_file_size",
    "copy_executable",
    "utc_now",
    "format_duration",
    "parse_iso_datetime",
    "to_iso_format",
    "Deadline",
    "Timer",
]
