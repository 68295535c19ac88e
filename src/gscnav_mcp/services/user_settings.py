"""User settings read by the search-analytics client and keyword classifier.

Branded keyword rules, funnel category patterns, the default Search Console
property and the last sync timestamp live outside the client. Every read
goes to the provider so edits take effect on the next call.
"""

import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from pydantic import ValidationError as PydanticValidationError

from gscnav_mcp.core.config import Settings
from gscnav_mcp.core.exceptions import StorageError
from gscnav_mcp.models.keyword_rules import BrandedKeywordRule, KeywordCategoryPatterns

logger = logging.getLogger(__name__)

BRANDED_RULES_KEY = "branded_keyword_rules"
CATEGORY_PATTERNS_KEY = "keyword_category_patterns"
DEFAULT_PROPERTY_KEY = "gsc_property"
LAST_SYNC_KEY = "last_gsc_sync"


@runtime_checkable
class UserSettingsProvider(Protocol):
    """Source of per-user settings."""

    def get_branded_keyword_rules(self) -> list[BrandedKeywordRule]: ...

    def get_keyword_category_patterns(self) -> KeywordCategoryPatterns: ...

    def get_default_property(self) -> str | None: ...

    def get_last_sync(self) -> datetime | None: ...

    def set_last_sync(self, when: datetime) -> None: ...


def parse_branded_rules(raw: Any) -> list[BrandedKeywordRule]:
    """Parse stored rules, skipping malformed entries."""
    if not isinstance(raw, list):
        if raw is not None:
            logger.warning("Branded keyword rules are not a list; ignoring them")
        return []

    rules = []
    for index, item in enumerate(raw):
        try:
            rules.append(BrandedKeywordRule.model_validate(item))
        except PydanticValidationError as e:
            logger.warning(f"Skipping invalid branded keyword rule {index}: {e}")
    return rules


def parse_category_patterns(raw: Any) -> KeywordCategoryPatterns:
    """Parse stored category patterns, falling back to empty lists."""
    if raw is None:
        return KeywordCategoryPatterns()
    try:
        return KeywordCategoryPatterns.model_validate(raw)
    except PydanticValidationError as e:
        logger.warning(f"Invalid keyword category patterns: {e}")
        return KeywordCategoryPatterns()


class InMemoryUserSettings:
    """Settings held in process memory."""

    def __init__(
        self,
        branded_rules: list[BrandedKeywordRule | dict[str, Any]] | None = None,
        category_patterns: KeywordCategoryPatterns | dict[str, Any] | None = None,
        default_property: str | None = None,
    ):
        self.branded_rules = parse_branded_rules(branded_rules or [])
        self.category_patterns = (
            category_patterns
            if isinstance(category_patterns, KeywordCategoryPatterns)
            else parse_category_patterns(category_patterns)
        )
        self.default_property = default_property
        self.last_sync: datetime | None = None

    def get_branded_keyword_rules(self) -> list[BrandedKeywordRule]:
        return list(self.branded_rules)

    def get_keyword_category_patterns(self) -> KeywordCategoryPatterns:
        return self.category_patterns

    def get_default_property(self) -> str | None:
        return self.default_property

    def get_last_sync(self) -> datetime | None:
        return self.last_sync

    def set_last_sync(self, when: datetime) -> None:
        self.last_sync = when


class JsonFileUserSettings:
    """Settings stored in a JSON document on disk.

    The file is re-read on every access. Layout::

        {
            "branded_keyword_rules": [{"id": "1", "type": "contains", "value": "acme"}],
            "keyword_category_patterns": {"tofu": ["^what"], "mofu": [], "bofu": ["buy"]},
            "gsc_property": "sc-domain:example.com",
            "last_gsc_sync": "2024-01-31T12:00:00+00:00"
        }
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.error(f"User settings file {self.path} is not valid JSON: {e}")
            return {}
        except OSError as e:
            raise StorageError(f"Failed to read user settings {self.path}: {e}") from e

        if not isinstance(data, dict):
            logger.error(f"User settings file {self.path} must contain a JSON object")
            return {}
        return data

    def _save(self, data: dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageError(f"Failed to write user settings {self.path}: {e}") from e

    def get_branded_keyword_rules(self) -> list[BrandedKeywordRule]:
        return parse_branded_rules(self._load().get(BRANDED_RULES_KEY))

    def get_keyword_category_patterns(self) -> KeywordCategoryPatterns:
        return parse_category_patterns(self._load().get(CATEGORY_PATTERNS_KEY))

    def get_default_property(self) -> str | None:
        value = self._load().get(DEFAULT_PROPERTY_KEY)
        return value if isinstance(value, str) and value else None

    def get_last_sync(self) -> datetime | None:
        value = self._load().get(LAST_SYNC_KEY)
        if not isinstance(value, str):
            return None
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            logger.warning(f"Ignoring malformed last sync timestamp: {value!r}")
            return None

    def set_last_sync(self, when: datetime) -> None:
        data = self._load()
        data[LAST_SYNC_KEY] = when.isoformat()
        self._save(data)


def create_user_settings(settings: Settings) -> UserSettingsProvider:
    """Build the file-backed settings provider at the configured path."""
    path = settings.resolved_user_settings_path
    logger.info(f"Reading user settings from {path}")
    return JsonFileUserSettings(path)
