"""Placeholder resolution for configuration values."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping
import re


_PLACEHOLDER_PATTERN = re.compile(r"\{\{([^{}]+)\}\}")
_SINGLE_PLACEHOLDER_PATTERN = re.compile(r"^\s*\{\{([^{}]+)\}\}\s*$")


class TemplateError(ValueError):
    """Raised when template resolution fails."""


@dataclass(slots=True)
class TemplateResolver:
    """Resolves ``{{dotted.path}}`` placeholders using a nested mapping context.

    A value that consists of a single placeholder resolves to the referenced
    object itself, keeping its type. Placeholders embedded in longer strings
    are substituted with ``str()`` of the resolved value. Referenced values
    are resolved recursively, so ``{{app.bundle}}`` may itself point at
    ``{{app.module}}``; a reference back to a path already being resolved
    raises :class:`TemplateError`.
    """

    context: Mapping[str, Any]
    _cache: dict[str, Any] = field(default_factory=dict, init=False, repr=False)

    def resolve(self, value: Any) -> Any:
        return self._resolve_value(value, stack=[])

    def _resolve_value(self, value: Any, *, stack: list[str]) -> Any:
        if isinstance(value, str):
            return self._resolve_string(value, stack=stack)
        if isinstance(value, list):
            return [self._resolve_value(item, stack=list(stack)) for item in value]
        if isinstance(value, tuple):
            return tuple(self._resolve_value(item, stack=list(stack)) for item in value)
        if isinstance(value, dict):
            return {key: self._resolve_value(val, stack=list(stack)) for key, val in value.items()}
        return value

    def _resolve_string(self, value: str, *, stack: list[str]) -> Any:
        placeholder_match = _SINGLE_PLACEHOLDER_PATTERN.match(value)
        if placeholder_match:
            path = placeholder_match.group(1).strip()
            return self._resolve_path(path, stack=stack)
        return self._substitute(value, stack=stack)

    def _substitute(self, text: str, *, stack: list[str]) -> str:
        def replacement(match: re.Match[str]) -> str:
            path = match.group(1).strip()
            result = self._resolve_path(path, stack=stack)
            if isinstance(result, (dict, list, tuple)):
                raise TemplateError(f"Placeholder '{path}' resolves to a container and cannot be embedded in text")
            return str(result)

        if not _PLACEHOLDER_PATTERN.search(text):
            return text
        return _PLACEHOLDER_PATTERN.sub(replacement, text)

    def _resolve_path(self, path: str, *, stack: list[str]) -> Any:
        if path in self._cache:
            return self._cache[path]
        if path in stack:
            cycle = " -> ".join(stack + [path])
            raise TemplateError(f"Circular dependency detected: {cycle}")

        raw_value = self._lookup_raw(path)
        stack.append(path)
        resolved = self._resolve_value(raw_value, stack=stack)
        stack.pop()
        self._cache[path] = resolved
        return resolved

    def _lookup_raw(self, path: str) -> Any:
        current: Any = self.context
        for part in path.split("."):
            if isinstance(current, Mapping) and part in current:
                current = current[part]
                continue
            raise TemplateError(f"Cannot resolve path '{path}' in template context")
        return current


__all__ = ["TemplateError", "TemplateResolver"]
