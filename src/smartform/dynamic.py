"""Dynamic function service.

Named callables that compute option lists and other runtime data from the
current form state, with a TTL result cache and helpers for turning results
into options and searching, filtering, sorting and paging them.

Functions take `(args, form_state)`; transformers take `(data, params)`.
Schemas reference both by name only.

Usage:
    service = DynamicFunctionService(ttl=60)
    service.register_function("cities", lambda args, state: CITIES[args["country"]])
    service.execute("cities", {"country": "${country}"}, {"country": "NZ"})
"""

import json
import logging
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from smartform.errors import FunctionError, ResolutionError, SmartFormError
from smartform.expressions.evaluator import ExpressionEngine
from smartform.expressions.parser import reference_path
from smartform.expressions.template import contains_expression, parse_template
from smartform.paths import MISSING, get_path
from smartform.schema.types import Option

logger = logging.getLogger(__name__)

DynamicFunction = Callable[[dict[str, Any], Mapping[str, Any]], Any]
DataTransformer = Callable[[Any, dict[str, Any]], Any]


@dataclass
class _CacheEntry:
    stored_at: float
    value: Any


class DynamicFunctionService:
    """Registry and cached executor for dynamic functions.

    Cache entries are keyed by function name plus the sorted-key JSON form of
    the resolved arguments. A ttl of 0 disables caching. Expired entries are
    dropped whenever a new result is stored. Failures are never cached. A miss
    invokes the function outside the lock, so two concurrent misses may both
    invoke it; the later result wins.
    """

    def __init__(
        self,
        ttl: float = 300.0,
        engine: ExpressionEngine | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.engine = engine
        self._clock = clock
        self._functions: dict[str, DynamicFunction] = {}
        self._transformers: dict[str, DataTransformer] = {}
        self._cache: dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def register_function(self, name: str, fn: DynamicFunction) -> None:
        """Register a function; re-registering replaces it and drops its cache."""
        with self._lock:
            self._functions[name] = fn
        self.invalidate(name)

    def register_transformer(self, name: str, fn: DataTransformer) -> None:
        with self._lock:
            self._transformers[name] = fn

    def has_function(self, name: str) -> bool:
        return name in self._functions

    def list_functions(self) -> list[str]:
        return sorted(self._functions)

    def list_transformers(self) -> list[str]:
        return sorted(self._transformers)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def execute(
        self,
        name: str,
        args: Mapping[str, Any] | None = None,
        form_state: Mapping[str, Any] | None = None,
        use_cache: bool = True,
    ) -> Any:
        """Run a function with its arguments resolved against the form state.

        Raises:
            ResolutionError: No function is registered under name
            FunctionError: The function raised
        """
        fn = self._functions.get(name)
        if fn is None:
            raise ResolutionError(f"Unknown dynamic function: {name}")

        form_state = form_state or {}
        resolved = self.resolve_arguments(args or {}, form_state)

        caching = use_cache and self.ttl > 0
        key = cache_key(name, resolved) if caching else ""
        if caching:
            with self._lock:
                entry = self._cache.get(key)
                if entry is not None and self._clock() - entry.stored_at < self.ttl:
                    self._hits += 1
                    logger.debug("Cache hit for %s", name)
                    return entry.value
                self._misses += 1
            logger.debug("Cache miss for %s", name)

        try:
            result = fn(resolved, form_state)
        except SmartFormError:
            raise
        except Exception as e:
            raise FunctionError(name, str(e)) from e

        if caching:
            now = self._clock()
            with self._lock:
                self._purge_expired(now)
                self._cache[key] = _CacheEntry(now, result)
        return result

    def _purge_expired(self, now: float) -> None:
        # Caller holds the lock
        expired = [key for key, entry in self._cache.items() if now - entry.stored_at >= self.ttl]
        for key in expired:
            del self._cache[key]
        if expired:
            logger.debug("Purged %d expired cache entries", len(expired))

    def transform(self, name: str, data: Any, params: Mapping[str, Any] | None = None) -> Any:
        """Apply a registered transformer.

        Raises:
            ResolutionError: No transformer is registered under name
            FunctionError: The transformer raised
        """
        fn = self._transformers.get(name)
        if fn is None:
            raise ResolutionError(f"Unknown transformer: {name}")
        try:
            return fn(data, dict(params or {}))
        except SmartFormError:
            raise
        except Exception as e:
            raise FunctionError(name, str(e)) from e

    def resolve_arguments(self, args: Any, form_state: Mapping[str, Any]) -> Any:
        """Replace `${...}` references inside args (recursively) with values."""
        if isinstance(args, str):
            return self._resolve_argument(args, form_state)
        if isinstance(args, Mapping):
            return {key: self.resolve_arguments(value, form_state) for key, value in args.items()}
        if isinstance(args, (list, tuple)):
            return [self.resolve_arguments(value, form_state) for value in args]
        return args

    def _resolve_argument(self, text: str, form_state: Mapping[str, Any]) -> Any:
        if not contains_expression(text):
            return text
        try:
            template = parse_template(text)
        except SmartFormError as e:
            logger.warning("Leaving unparseable argument %r as is: %s", text, e)
            return text

        single = template.single_expression
        path = reference_path(single.ast) if single is not None else None
        if path is not None:
            value = get_path(form_state, path)
            if value is not MISSING:
                return value
            if self.engine is None:
                return text

        if self.engine is None:
            return text
        try:
            return self.engine.evaluate(text, form_state)
        except SmartFormError as e:
            logger.warning("Leaving unresolved argument %r as is: %s", text, e)
            return text

    # -------------------------------------------------------------------------
    # Cache
    # -------------------------------------------------------------------------

    def invalidate(self, name: str | None = None) -> int:
        """Drop cached results for one function, or all of them.

        Returns:
            Number of entries removed
        """
        with self._lock:
            if name is None:
                removed = len(self._cache)
                self._cache.clear()
                return removed
            prefix = f"{name}:"
            keys = [key for key in self._cache if key.startswith(prefix)]
            for key in keys:
                del self._cache[key]
            return len(keys)

    def cache_info(self) -> dict[str, Any]:
        with self._lock:
            return {
                "size": len(self._cache),
                "hits": self._hits,
                "misses": self._misses,
                "ttl": self.ttl,
            }


def cache_key(name: str, args: Any) -> str:
    return f"{name}:{json.dumps(args, sort_keys=True, default=str)}"


@dataclass
class DynamicFieldConfig:
    """A function call plus an optional transformer applied to its result."""

    function_name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    transformer_name: str = ""
    transformer_params: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DynamicFieldConfig":
        return cls(
            function_name=data.get("functionName", ""),
            arguments=dict(data.get("arguments") or {}),
            transformer_name=data.get("transformerName", ""),
            transformer_params=dict(data.get("transformerParams") or {}),
        )

    def execute_with_form_state(
        self, service: DynamicFunctionService, form_state: Mapping[str, Any]
    ) -> Any:
        result = service.execute(self.function_name, self.arguments, form_state)
        if self.transformer_name:
            result = service.transform(self.transformer_name, result, self.transformer_params)
        return result


# -----------------------------------------------------------------------------
# Options helpers
# -----------------------------------------------------------------------------


def options_from_result(result: Any) -> list[Option]:
    """Turn a function result into options.

    Accepts a list of Options, a list of mappings (value, label falling back
    to name, title, then the value; a mapping without `value` is its own
    value), a list of scalars, or a mapping of value -> label (or value ->
    mapping with label/name).

    Raises:
        FunctionError: The result has no option form
    """
    if result is None:
        return []
    if isinstance(result, Mapping):
        options = []
        for key, item in result.items():
            if isinstance(item, Mapping):
                label = item.get("label", item.get("name", key))
            else:
                label = item
            options.append(Option(value=key, label=str(label)))
        return options
    if isinstance(result, (list, tuple)):
        return [_option(item) for item in result]
    raise FunctionError("options", f"Cannot convert {type(result).__name__} to options")


def _option(item: Any) -> Option:
    if isinstance(item, Option):
        return item
    if isinstance(item, Mapping) and "value" not in item:
        label = item.get("label", item.get("name", item.get("title")))
        return Option(value=dict(item), label=str(label) if label is not None else str(item))
    return Option.from_dict(item)


def filter_options(options: list[Option], criteria: Mapping[str, Any] | None) -> list[Option]:
    """Options matching every criterion.

    `search` is a case-insensitive substring of value or label, `values` an
    allowed-values list; any other key must equal that key of a mapping
    value (options with non-mapping values never match it).
    """
    if not criteria:
        return list(options)
    return [option for option in options if _matches(option, criteria)]


def _matches(option: Option, criteria: Mapping[str, Any]) -> bool:
    for key, expected in criteria.items():
        if key == "search":
            if isinstance(expected, str) and not _contains_text(option, expected):
                return False
        elif key == "values":
            if isinstance(expected, (list, tuple)) and option.value not in expected:
                return False
        else:
            if not isinstance(option.value, Mapping):
                return False
            actual = get_path(option.value, key)
            if actual is MISSING or actual != expected:
                return False
    return True


def _contains_text(option: Option, search: str) -> bool:
    needle = search.lower()
    return needle in str(option.value).lower() or needle in option.label.lower()


def search_options(options: list[Option], search: str) -> list[Option]:
    if not search:
        return list(options)
    return [option for option in options if _contains_text(option, search)]


def sort_options(options: list[Option], field: str = "label", direction: str = "asc") -> list[Option]:
    """Stable sort by value, label or a dotted path into mapping values.

    Values compare by their string form; options lacking the field go last
    in either direction.
    """
    present: list[tuple[str, Option]] = []
    missing: list[Option] = []
    for option in options:
        key = _sort_key(option, field)
        if key is None:
            missing.append(option)
        else:
            present.append((key, option))

    present.sort(key=lambda pair: pair[0], reverse=direction.lower() == "desc")
    return [option for _, option in present] + missing


def _sort_key(option: Option, field: str) -> str | None:
    if field == "value":
        return str(option.value)
    if field == "label":
        return option.label
    if not isinstance(option.value, Mapping):
        return None
    value = get_path(option.value, field)
    return None if value is MISSING else str(value)


def search_and_sort(options: list[Option], params: Mapping[str, Any] | None) -> list[Option]:
    """Apply `search`, `filters`, `sort`/`sortDir`, then `offset`/`limit`."""
    params = params or {}
    result = list(options)

    search = params.get("search")
    if isinstance(search, str) and search:
        result = search_options(result, search)

    filters = params.get("filters")
    if isinstance(filters, Mapping) and filters:
        result = filter_options(result, filters)

    sort = params.get("sort")
    if isinstance(sort, str) and sort:
        result = sort_options(result, sort, str(params.get("sortDir") or "asc"))

    offset = _int_param(params.get("offset"))
    limit = _int_param(params.get("limit"))
    if offset:
        if offset >= len(result):
            return []
        result = result[offset:]
    if limit:
        result = result[:limit]
    return result


def _int_param(value: Any) -> int:
    if isinstance(value, bool) or value is None:
        return 0
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0
