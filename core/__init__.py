"""Shared core utilities for command execution, configuration and templating."""

from .template import TemplateError, TemplateResolver
from .command_runner import (
    CommandError,
    CommandResult,
    CommandRunner,
    RecordedCommand,
    RecordingCommandRunner,
    SubprocessCommandRunner,
    normalize_returncode,
)
from .config_loader import (
    ConfigLoader,
    FILE_LOADERS,
    find_config_file,
    load_config_file,
    merge_mappings,
    normalize_string_list,
)

__all__ = [
    "TemplateError",
    "TemplateResolver",
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "RecordedCommand",
    "RecordingCommandRunner",
    "SubprocessCommandRunner",
    "normalize_returncode",
    "ConfigLoader",
    "FILE_LOADERS",
    "find_config_file",
    "load_config_file",
    "merge_mappings",
    "normalize_string_list",
]
