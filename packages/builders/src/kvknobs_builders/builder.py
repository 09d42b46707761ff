"""Key/value configuration builder base class.

``KeyValueConfigBuilder`` is the substitution engine. Concrete builders only
supply a backing source through two methods, ``get_value`` and
``get_all_values``; this class handles modes, prefixes, character maps,
token expansion, caching, error wrapping and lazy initialization.

The host drives a builder at two points for each section:

1. ``process_raw_xml`` with the raw XML element (Token mode only)
2. ``process_section`` with the parsed section (Strict and Greedy modes)

Example:
    ```python
    class DictConfigBuilder(KeyValueConfigBuilder):
        def __init__(self, values):
            super().__init__()
            self.values = values

        def get_value(self, key):
            return self.values.get(key)

        def get_all_values(self, prefix):
            return [(k, v) for k, v in self.values.items() if k.startswith(prefix)]

    builder = DictConfigBuilder({"Greeting": "hello"})
    builder.initialize("dict", {"mode": "Greedy"})
    builder.process_section(AppSettingsSection())
    ```

Extension contract:
    Subclasses that override ``lazy_initialize`` must call the base
    implementation first. Options are ready once it returns. The base class
    holds its initialization lock for the whole override, so source state a
    subclass sets there is published before any other thread gets to
    ``get_value`` or ``get_all_values``.

    ``get_value`` may be called more than once for the same key when
    several threads look it up for the first time together. While a call
    is processing a section, ``current_section`` names that section for the
    calling thread only.
"""

import logging
import threading
from contextlib import contextmanager
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from typing import Callable, Iterable, Iterator, List, Mapping, Tuple

from kvknobs_common import ConfigurationError

from .adapters import SectionAdapter, SectionAdapterRegistry, section_adapters
from .cache import ValueCache
from .exceptions import (
    GET_ALL_VALUES_PHASE,
    GET_VALUE_PHASE,
    INITIALIZATION_PHASE,
    wrap_builder_error,
)
from .options import (
    CHAR_MAP_TAG,
    DEFAULT_TOKEN_PATTERN,
    ENABLED_TAG,
    ESCAPE_EXPANDED_VALUES_TAG,
    MODE_TAG,
    OPTIONAL_TAG,
    PREFIX_TAG,
    STRIP_PREFIX_TAG,
    TOKEN_PATTERN_TAG,
    BuilderConfig,
    BuilderOptions,
    KeyValueEnabled,
    KeyValueMode,
    compile_token_pattern,
    parse_bool,
    parse_char_map,
    parse_enum,
    parse_mode,
)
from .sections import AppSettingsSection, ConfigSection
from .tokens import expand_tokens, has_capture_group, resolve_tokens

logger = logging.getLogger(__name__)

AppSettingsAccessor = Callable[[], "Mapping[str, str] | AppSettingsSection | None"]


class KeyValueConfigBuilder(ABC):
    """Base class for builders backed by a simple key/value source.

    Attributes:
        name: Configured name of this builder, used in error messages
        DEFAULT_ENABLED: ``enabled`` value used when neither ``enabled``
            nor ``optional`` is configured
    """

    DEFAULT_ENABLED = KeyValueEnabled.ENABLED
    APP_SETTINGS_SECTION = AppSettingsSection.default_name

    def __init__(self) -> None:
        self.name = type(self).__name__
        self._options = BuilderOptions()
        self._mode = KeyValueMode.STRICT
        self._enabled = self.DEFAULT_ENABLED
        self._config = BuilderConfig(enabled=self.DEFAULT_ENABLED)
        self._cache = ValueCache()
        self._adapters: SectionAdapterRegistry = section_adapters
        self._app_settings: AppSettingsAccessor | None = None
        self._config_root: str | None = None
        self._section_state = threading.local()

        self._init_lock = threading.RLock()
        self._init_started = False
        self._init_complete = False
        self._init_error: Exception | None = None
        self._source_available = True

    # ------------------------------------------------------------------
    # Source contract
    # ------------------------------------------------------------------

    @abstractmethod
    def get_value(self, key: str) -> str | None:
        """Look up a single value.

        Args:
            key: Source key. Prefix handling has already been applied.

        Returns:
            The value, or None when the source has nothing for the key
        """

    @abstractmethod
    def get_all_values(self, prefix: str) -> Iterable[Tuple[str, str | None]]:
        """Get every (key, value) pair whose key starts with ``prefix``.

        Returns an empty collection, not an error, when there is nothing.
        """

    def validate_key(self, key: str) -> bool:
        """Whether ``key`` is a valid key for the backing source."""
        return True

    def map_key(self, key: str) -> str:
        """Translate a key into the source's key alphabet (``charMap`` by default)."""
        return self._config.apply_char_map(key)

    def update_key(self, raw_key: str) -> str:
        """Transform a key before it is written back to a section."""
        return raw_key

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def initialize(
        self,
        name: str | None,
        config: Mapping[str, str] | None = None,
        *,
        app_settings: AppSettingsAccessor | None = None,
        config_root: str | None = None,
        adapters: SectionAdapterRegistry | None = None,
    ) -> None:
        """Configure the builder.

        Only ``enabled`` and ``mode`` are parsed here. Everything else waits
        for ``lazy_initialize``, which runs the first time a setting or the
        source is needed.

        Args:
            name: Configured builder name
            config: Option bag; option names are case-insensitive
            app_settings: Accessor for the current application settings,
                used to resolve tokens inside option values
            config_root: Directory that relative paths resolve against
            adapters: Section adapter registry (process-wide default if None)

        Raises:
            KeyValueBuilderConfigError: If ``enabled`` or ``mode`` is invalid
        """
        self.name = name or type(self).__name__
        self._options = BuilderOptions(config)
        self._app_settings = app_settings
        self._config_root = config_root
        if adapters is not None:
            self._adapters = adapters

        try:
            self._enabled = self._parse_enabled(self._options)
            if self._enabled is KeyValueEnabled.DISABLED:
                logger.debug("Builder '%s' is disabled", self.name)
                return

            if MODE_TAG in self._options:
                self._mode = parse_mode(self._options[MODE_TAG])
        except Exception as e:
            raise wrap_builder_error(e, self.name, INITIALIZATION_PHASE)

    def _parse_enabled(self, options: BuilderOptions) -> KeyValueEnabled:
        if ENABLED_TAG in options:
            return parse_enum(KeyValueEnabled, options[ENABLED_TAG], ENABLED_TAG)
        if OPTIONAL_TAG in options:
            optional = parse_bool(options[OPTIONAL_TAG], OPTIONAL_TAG)
            return KeyValueEnabled.OPTIONAL if optional else KeyValueEnabled.ENABLED
        return self.DEFAULT_ENABLED

    def lazy_initialize(self, name: str, options: BuilderOptions) -> None:
        """Parse the remaining options.

        Subclasses extend this to set up their source and must call the
        base implementation first.
        """
        token_pattern = compile_token_pattern(
            options.get(TOKEN_PATTERN_TAG) or DEFAULT_TOKEN_PATTERN
        )
        if not has_capture_group(token_pattern):
            logger.warning(
                "Builder '%s': token pattern '%s' has no capture group; "
                "tokens will be left untouched",
                name,
                token_pattern.pattern,
            )

        strip_prefix = options.get(STRIP_PREFIX_TAG)
        escape_values = options.get(ESCAPE_EXPANDED_VALUES_TAG)
        char_map = options.get(CHAR_MAP_TAG)

        self._config = BuilderConfig(
            mode=self._mode,
            key_prefix=self.resolve_setting(PREFIX_TAG) or "",
            strip_prefix=(
                parse_bool(strip_prefix, STRIP_PREFIX_TAG) if strip_prefix is not None else False
            ),
            enabled=self._enabled,
            escape_expanded_values=(
                parse_bool(escape_values, ESCAPE_EXPANDED_VALUES_TAG)
                if escape_values is not None
                else False
            ),
            token_pattern=token_pattern,
            char_map=parse_char_map(char_map) if char_map else (),
        )

    def ensure_initialized(self) -> None:
        """Run lazy initialization exactly once.

        Other threads block until it has finished. A re-entrant call from the
        initializing thread returns immediately. Disabled builders never
        initialize and supply no values.
        """
        if self._enabled is KeyValueEnabled.DISABLED:
            self._source_available = False
            return

        if self._init_complete:
            self._raise_init_error()
            return

        with self._init_lock:
            if self._init_started:
                self._raise_init_error()
                return
            self._init_started = True

            try:
                logger.debug("Lazy initializing builder '%s'", self.name)
                self.lazy_initialize(self.name, self._options)
            except Exception as e:
                if self.is_optional and not isinstance(e, ConfigurationError):
                    logger.warning(
                        "Optional builder '%s' failed to initialize and will supply no values: %s",
                        self.name,
                        e,
                    )
                    self._source_available = False
                else:
                    self._init_error = wrap_builder_error(e, self.name, INITIALIZATION_PHASE)
            finally:
                self._init_complete = True

            self._raise_init_error()

    def _raise_init_error(self) -> None:
        if self._init_error is not None:
            raise self._init_error

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    @property
    def mode(self) -> KeyValueMode:
        return self._mode

    @property
    def enabled(self) -> KeyValueEnabled:
        return self._enabled

    @property
    def is_optional(self) -> bool:
        return self._enabled is KeyValueEnabled.OPTIONAL

    @property
    def config(self) -> BuilderConfig:
        self.ensure_initialized()
        return self._config

    @property
    def key_prefix(self) -> str:
        return self.config.key_prefix

    @property
    def strip_prefix(self) -> bool:
        return self.config.strip_prefix

    @property
    def token_pattern(self) -> str:
        return self.config.token_pattern.pattern

    @property
    def escape_expanded_values(self) -> bool:
        return self.config.escape_expanded_values

    @property
    def char_map(self) -> Tuple[Tuple[str, str], ...]:
        return self.config.char_map

    @property
    def options(self) -> BuilderOptions:
        return self._options

    @property
    def config_root(self) -> str | None:
        return self._config_root

    @property
    def current_section(self) -> str | None:
        """Name of the section this builder is processing, if any."""
        return getattr(self._section_state, "name", None)

    @contextmanager
    def _processing(self, section_name: str) -> Iterator[None]:
        # Per thread, so concurrent callers each see their own section
        previous = self.current_section
        self._section_state.name = section_name
        try:
            yield
        finally:
            self._section_state.name = previous

    def resolve_setting(self, tag: str) -> str | None:
        """Get an option value with ``${key}`` tokens resolved from app settings.

        The literal text is kept when there is no app-settings accessor, when
        a token has no matching setting, and while this builder is itself
        processing the app-settings section, whose values are incomplete.

        Args:
            tag: Option name

        Returns:
            The resolved option value, or None if the option is not set
        """
        value = self._options.get(tag)
        if value is None or self._app_settings is None:
            return value
        if self._is_processing_app_settings():
            return value

        settings = self._app_settings()
        if settings is None:
            return value

        return resolve_tokens(value, settings.get)

    def _is_processing_app_settings(self) -> bool:
        section = self.current_section
        return section is not None and section.casefold() == self.APP_SETTINGS_SECTION.casefold()

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def process_raw_xml(self, raw_xml: ET.Element) -> ET.Element:
        """Expand tokens in a section's raw XML (Token mode only).

        Args:
            raw_xml: Raw section element

        Returns:
            A re-parsed element when tokens were expanded, else ``raw_xml``
        """
        if self._enabled is KeyValueEnabled.DISABLED or self._mode is not KeyValueMode.TOKEN:
            return raw_xml

        text = ET.tostring(raw_xml, encoding="unicode")
        with self._processing(raw_xml.tag):
            expanded = self.expand_text(text)
        if expanded == text:
            return raw_xml
        return ET.fromstring(expanded)

    def expand_text(self, text: str) -> str:
        """Replace tokens in raw text with source values.

        Disabled builders return ``text`` unchanged without initializing.
        """
        if not text or self._enabled is KeyValueEnabled.DISABLED:
            return text

        config = self.config
        return expand_tokens(
            text,
            config.token_pattern,
            self._get_value_internal,
            escape_values=config.escape_expanded_values,
        )

    def process_section(self, section: ConfigSection) -> ConfigSection:
        """Substitute values into a parsed section (Strict and Greedy modes).

        The section is modified in place and returned. Sections with no
        registered adapter pass through untouched.
        """
        if self._enabled is KeyValueEnabled.DISABLED or self._mode is KeyValueMode.TOKEN:
            return section

        adapter = self._adapters.get_adapter(section)
        if adapter is None:
            return section

        with self._processing(section.section_name):
            self.ensure_initialized()
            if self._mode is KeyValueMode.STRICT:
                self._process_strict(adapter)
            elif self._mode is KeyValueMode.GREEDY:
                self._process_greedy(adapter)

        return section

    def _process_strict(self, adapter: SectionAdapter) -> None:
        for item in adapter.items():
            value = self._get_value_internal(item.key)
            if value is not None:
                adapter.insert_or_update(self.update_key(item.key), value, item.key, item.handle)

    def _process_greedy(self, adapter: SectionAdapter) -> None:
        self._ensure_greedy_initialized()
        prefix = self.map_key(self._config.key_prefix)
        for key, value in self._cache.items():
            if value is None or not key.casefold().startswith(prefix.casefold()):
                continue
            old_key = key[len(prefix):] if self._config.strip_prefix else key
            new_key = self.update_key(adapter.get_original_case(old_key))
            adapter.insert_or_update(new_key, value, old_key)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _get_value_internal(self, key: str) -> str | None:
        if not key:
            return None

        self.ensure_initialized()
        if not self._source_available:
            return None

        config = self._config
        mapped_key = self.map_key(key)
        mapped_prefix = self.map_key(config.key_prefix)

        # Without stripping, only keys that carry the prefix are looked up
        if not config.strip_prefix and not mapped_key.casefold().startswith(
            mapped_prefix.casefold()
        ):
            return None

        source_key = mapped_prefix + mapped_key if config.strip_prefix else mapped_key
        if not self.validate_key(source_key):
            return None

        return self._cache.get_or_fetch(source_key, self._fetch_value)

    def _fetch_value(self, key: str) -> str | None:
        try:
            return self.get_value(key)
        except Exception as e:
            if self.is_optional and not isinstance(e, ConfigurationError):
                logger.warning("Optional builder '%s' could not get '%s': %s", self.name, key, e)
                return None
            raise wrap_builder_error(e, self.name, GET_VALUE_PHASE, context={"key": key})

    def _ensure_greedy_initialized(self) -> None:
        if self._cache.populated:
            return

        prefix = self.map_key(self._config.key_prefix)
        if not self._source_available or not self.validate_key(prefix):
            self._cache.populate_once(list)
            return

        self._cache.populate_once(lambda: self._fetch_all_values(prefix))

    def _fetch_all_values(self, prefix: str) -> List[Tuple[str, str | None]]:
        try:
            return list(self.get_all_values(prefix))
        except Exception as e:
            if self.is_optional and not isinstance(e, ConfigurationError):
                logger.warning(
                    "Optional builder '%s' could not get values for prefix '%s': %s",
                    self.name,
                    prefix,
                    e,
                )
                return []
            raise wrap_builder_error(
                e, self.name, GET_ALL_VALUES_PHASE, context={"prefix": prefix}
            )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, mode={self._mode.value})"
