"""Controlled taxonomy loading and tag validation.

The taxonomy is the closed vocabulary every model-produced tag must belong to.
Tags outside it are hallucinations: they are split off by validate() and must
never be stored as classifications.

The source is a versioned JSON document:

    {
        "metadata": {"version", "generated_date", "total_tags", "description",
                     "structure", "naming_convention"},
        "verticals": {"<vertical>": {"tag_count": int,
                                     "categories": {"<category>": [tags]}}},
        "flat_tag_list": [tags],
        "synonym_mappings": {"<synonym>": "<tag>"},   # optional
        "validation": {...}                            # optional
    }

TaxonomyProvider owns the loaded value for the process. It loads lazily on
first use, caches the immutable Taxonomy, and can be cleared or reloaded.
There is no fallback vocabulary: a missing or malformed document raises
TaxonomyLoadError.
"""

from __future__ import annotations

import json
import threading
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Literal

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from tagging.core.exceptions import TaxonomyLoadError, UnknownTagError, ValidationError
from tagging.core.logging import get_logger

logger = get_logger(__name__)


# =============================================================================
# Source Document Schema
# =============================================================================


class TaxonomyMetadata(BaseModel):
    version: str
    generated_date: str
    total_tags: int = Field(..., ge=0)
    description: str
    structure: str
    naming_convention: str


class TaxonomyVertical(BaseModel):
    tag_count: int = Field(..., ge=0)
    categories: dict[str, list[str]]


class TaxonomyValidationReport(BaseModel):
    naming_convention_compliance: str
    duplicates_found: int
    brand_names_found: int
    special_characters_found: int
    vertical_distribution: dict[str, int]


class TaxonomyDocument(BaseModel):
    """Schema of the taxonomy JSON document."""

    metadata: TaxonomyMetadata
    verticals: dict[str, TaxonomyVertical]
    flat_tag_list: list[str]
    synonym_mappings: dict[str, str] = Field(default_factory=dict)
    validation: TaxonomyValidationReport | None = None


# =============================================================================
# Immutable Taxonomy
# =============================================================================


@dataclass(frozen=True, slots=True)
class TagValidation:
    """Stable partition of candidate tags.

    Every input tag lands in exactly one list, in input order.
    """

    valid: list[str]
    invalid: list[str]

    @property
    def has_hallucinations(self) -> bool:
        return bool(self.invalid)


def _normalize_vertical(name: str) -> str:
    # "Food & Cooking" -> "food-cooking"
    return "-".join(name.lower().replace(" & ", "-").split())


def _normalize_category(name: str) -> str:
    return "-".join(name.lower().split())


def _vertical_display_name(slug: str) -> str:
    return " & ".join(word.capitalize() for word in slug.split("-"))


def _category_display_name(slug: str) -> str:
    return " ".join(word.capitalize() for word in slug.split("-"))


@dataclass(frozen=True, slots=True)
class Taxonomy:
    """Loaded, read-only taxonomy.

    Safe for unsynchronized concurrent reads once built.
    """

    version: str
    total_tag_count: int
    flat_tags: tuple[str, ...]
    tags: frozenset[str]
    groupings: MappingProxyType[str, MappingProxyType[str, tuple[str, ...]]]
    vertical_tag_counts: MappingProxyType[str, int]
    synonyms: MappingProxyType[str, str]

    @classmethod
    def from_document(cls, document: TaxonomyDocument) -> Taxonomy:
        """Build a Taxonomy, enforcing the structural invariants.

        Raises:
            ValueError: If the flat list has duplicates or a grouped tag is
                missing from the flat list
        """
        flat = tuple(document.flat_tag_list)
        tags = frozenset(flat)
        if len(tags) != len(flat):
            duplicates = sorted(tag for tag, count in Counter(flat).items() if count > 1)
            raise ValueError(f"flat_tag_list contains duplicates: {duplicates}")

        groupings: dict[str, MappingProxyType[str, tuple[str, ...]]] = {}
        for vertical_slug, vertical in document.verticals.items():
            categories = {
                category_slug: tuple(category_tags)
                for category_slug, category_tags in vertical.categories.items()
            }
            missing = [
                tag
                for category_tags in categories.values()
                for tag in category_tags
                if tag not in tags
            ]
            if missing:
                raise ValueError(
                    f"vertical '{vertical_slug}' has tags missing from flat_tag_list: {missing}"
                )
            groupings[vertical_slug] = MappingProxyType(categories)

        return cls(
            version=document.metadata.version,
            total_tag_count=document.metadata.total_tags,
            flat_tags=flat,
            tags=tags,
            groupings=MappingProxyType(groupings),
            vertical_tag_counts=MappingProxyType(
                {slug: vertical.tag_count for slug, vertical in document.verticals.items()}
            ),
            synonyms=MappingProxyType(dict(document.synonym_mappings)),
        )

    def is_valid_tag(self, tag: str) -> bool:
        """Exact, case-sensitive membership check."""
        return tag in self.tags

    def validate(self, candidate_tags: list[str]) -> TagValidation:
        """Partition candidate tags into taxonomy members and hallucinations.

        No synonym resolution or case folding is applied.
        """
        valid: list[str] = []
        invalid: list[str] = []
        for tag in candidate_tags:
            (valid if tag in self.tags else invalid).append(tag)
        return TagValidation(valid=valid, invalid=invalid)

    def canonicalize(self, tag_or_synonym: str) -> str:
        """Resolve a synonym to its canonical tag.

        Raises:
            UnknownTagError: If neither the input nor its synonym target is a
                taxonomy tag
        """
        target = self.synonyms.get(tag_or_synonym)
        if target is not None and target in self.tags:
            return target
        if tag_or_synonym in self.tags:
            return tag_or_synonym
        raise UnknownTagError(tag_or_synonym)

    def _vertical_key(self, vertical_name: str) -> str:
        key = _normalize_vertical(vertical_name)
        if key not in self.groupings:
            available = ", ".join(self.groupings)
            raise ValidationError(
                f'Vertical "{vertical_name}" not found. Available verticals: {available}',
                details={"vertical": vertical_name},
            )
        return key

    def tags_by_vertical(self, vertical_name: str) -> list[str]:
        """Get every tag of a vertical, by slug or display name."""
        categories = self.groupings[self._vertical_key(vertical_name)]
        return [tag for category_tags in categories.values() for tag in category_tags]

    def tags_by_category(self, vertical_name: str, category_name: str) -> list[str]:
        """Get the tags of one category within a vertical."""
        vertical_key = self._vertical_key(vertical_name)
        categories = self.groupings[vertical_key]
        category_key = _normalize_category(category_name)
        if category_key not in categories:
            available = ", ".join(categories)
            raise ValidationError(
                f'Category "{category_name}" not found in {vertical_name}. '
                f"Available: {available}",
                details={"vertical": vertical_name, "category": category_name},
            )
        return list(categories[category_key])

    def format_for_prompt(self, style: Literal["flat", "grouped"] = "grouped") -> str:
        """Render the vocabulary for injection into a model prompt."""
        if style == "flat":
            return ", ".join(self.flat_tags)

        lines: list[str] = []
        for vertical_slug, categories in self.groupings.items():
            lines.append(f"\n{_vertical_display_name(vertical_slug).upper()}:")
            for category_slug, category_tags in categories.items():
                category_name = _category_display_name(category_slug)
                lines.append(f"  {category_name}: {', '.join(category_tags)}")
        return "\n".join(lines)

    def stats(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "total_tags": self.total_tag_count,
            "verticals": [
                {"name": _vertical_display_name(slug), "tag_count": count}
                for slug, count in self.vertical_tag_counts.items()
            ],
        }


# =============================================================================
# Loading
# =============================================================================


def load_taxonomy(path: str | Path) -> Taxonomy:
    """Read, validate and build the taxonomy at path.

    Raises:
        TaxonomyLoadError: If the file is missing, is not JSON, or fails
            structural validation
    """
    source = Path(path)
    try:
        raw = source.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise TaxonomyLoadError(f"Taxonomy file not found: {source}", path=str(source)) from e
    except OSError as e:
        raise TaxonomyLoadError(f"Taxonomy file unreadable: {e}", path=str(source)) from e

    try:
        document = TaxonomyDocument.model_validate(json.loads(raw))
        taxonomy = Taxonomy.from_document(document)
    except json.JSONDecodeError as e:
        raise TaxonomyLoadError(f"Taxonomy file is not valid JSON: {e}", path=str(source)) from e
    except (PydanticValidationError, ValueError) as e:
        raise TaxonomyLoadError(f"Invalid taxonomy file at {source}: {e}", path=str(source)) from e

    if taxonomy.total_tag_count != len(taxonomy.flat_tags):
        logger.warning(
            f"Taxonomy metadata reports {taxonomy.total_tag_count} tags "
            f"but flat_tag_list has {len(taxonomy.flat_tags)}",
            extra={"taxonomy_version": taxonomy.version, "path": str(source)},
        )

    logger.info(
        f"Loaded taxonomy v{taxonomy.version} from {source} ({len(taxonomy.flat_tags)} tags)",
        extra={
            "taxonomy_version": taxonomy.version,
            "tag_count": len(taxonomy.flat_tags),
            "vertical_count": len(taxonomy.groupings),
        },
    )
    return taxonomy


class TaxonomyProvider:
    """Lazily loaded, cached taxonomy owned by the composition root.

    Usage:
        provider = TaxonomyProvider(settings.taxonomy_path)
        validation = provider.get().validate(["bread-baking", "made-up-tag"])
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._taxonomy: Taxonomy | None = None
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_loaded(self) -> bool:
        return self._taxonomy is not None

    def get(self) -> Taxonomy:
        """Return the cached taxonomy, loading it on first use.

        Raises:
            TaxonomyLoadError: If loading fails
        """
        taxonomy = self._taxonomy
        if taxonomy is not None:
            return taxonomy
        with self._lock:
            if self._taxonomy is None:
                self._taxonomy = load_taxonomy(self._path)
            return self._taxonomy

    def clear(self) -> None:
        """Drop the cached taxonomy; the next get() reloads it."""
        with self._lock:
            self._taxonomy = None

    def reload(self) -> Taxonomy:
        """Load the taxonomy again, replacing the cached value only on success."""
        taxonomy = load_taxonomy(self._path)
        with self._lock:
            self._taxonomy = taxonomy
        return taxonomy
