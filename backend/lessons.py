"""
Lesson catalog for the HCV trainer.

The curriculum is defined once as plain data (``LESSONS``), validated into
immutable ``Lesson`` models at startup and handed to every component that
needs it as a ``LessonCatalog``.
"""
import json
import logging
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

logger = logging.getLogger(__name__)

WELCOME_LESSON_KEY = "welcome"


class CatalogError(Exception):
    """Raised when lesson data cannot be turned into a usable catalog."""


class ChartKind(str, Enum):
    INCOME_LIMITS = "income_limits"
    RENT_SHARE = "rent_share"
    GENERIC = "generic"


class ProcessKind(str, Enum):
    APPLICATION = "application"
    VOUCHER = "voucher"
    GENERIC = "generic"


def classify_topic(text: str) -> Tuple[ChartKind, ProcessKind]:
    """Derives chart/process tags for a topic given only as prose."""
    lowered = text.lower()

    chart = ChartKind.GENERIC
    if "income" in lowered or "eligibility" in lowered:
        chart = ChartKind.INCOME_LIMITS
    elif "payment" in lowered or "rent" in lowered:
        chart = ChartKind.RENT_SHARE

    process = ProcessKind.GENERIC
    if "application" in lowered:
        process = ProcessKind.APPLICATION
    elif "voucher" in lowered or "housing search" in lowered:
        process = ProcessKind.VOUCHER

    return chart, process


class Topic(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str = Field(min_length=1)
    chart: ChartKind = ChartKind.GENERIC
    process: ProcessKind = ProcessKind.GENERIC

    @model_validator(mode="before")
    @classmethod
    def _from_plain_string(cls, data):
        # Untagged topics get their tags from the wording.
        if isinstance(data, str):
            chart, process = classify_topic(data)
            return {"title": data, "chart": chart, "process": process}
        return data


class Lesson(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: str = ""
    topics: Tuple[Topic, ...] = ()

    @property
    def topic_titles(self) -> List[str]:
        return [topic.title for topic in self.topics]

    def to_public_dict(self) -> Dict:
        """Shape served by the query endpoints: topics as plain strings."""
        return {"title": self.title, "description": self.description, "topics": self.topic_titles}


# --- Built-in HCV curriculum ---
LESSONS: Dict[str, Dict] = {
    "welcome": {
        "title": "Welcome to HCV Training",
        "description": "Introduction to Housing Choice Voucher program",
        "topics": [
            "What is HCV and why it exists",
            "Who administers the program",
            "Basic program overview",
        ],
    },
    "eligibility": {
        "title": "HCV Eligibility Requirements",
        "description": "Understanding who qualifies for HCV assistance",
        "topics": [
            {"title": "Income limits and calculations", "chart": "income_limits"},
            "Family composition requirements",
            "Citizenship and immigration status",
            "Background check requirements",
        ],
    },
    "application": {
        "title": "Application Process",
        "description": "How to apply for HCV assistance",
        "topics": [
            {"title": "Finding your local PHA", "process": "application"},
            {"title": "Required documents", "process": "application"},
            {"title": "Waiting list process", "process": "application"},
            {"title": "Application timeline", "process": "application"},
        ],
    },
    "income": {
        "title": "Income and Asset Calculations",
        "description": "Understanding HCV income calculations",
        "topics": [
            {"title": "Annual income definition", "chart": "income_limits"},
            "Asset calculations",
            {"title": "Income exclusions", "chart": "income_limits"},
            "Reporting requirements",
        ],
    },
    "payment": {
        "title": "Payment Standards and Rent",
        "description": "How HCV rent calculations work",
        "topics": [
            {"title": "Payment standards", "chart": "rent_share"},
            {"title": "Utility allowances", "chart": "rent_share"},
            {"title": "Rent calculation methods", "chart": "rent_share"},
            {"title": "Minimum rent requirements", "chart": "rent_share"},
        ],
    },
    "voucher": {
        "title": "Voucher Process",
        "description": "Using your HCV voucher",
        "topics": [
            {"title": "Voucher issuance", "process": "voucher"},
            {"title": "Housing search process", "process": "voucher"},
            {"title": "HQS inspections", "process": "voucher"},
            {"title": "Lease requirements", "process": "voucher"},
        ],
    },
    "rights": {
        "title": "Tenant Rights and Responsibilities",
        "description": "Understanding your HCV obligations",
        "topics": [
            "Tenant responsibilities",
            "Landlord obligations",
            "Program violations",
            "Appeal processes",
        ],
    },
}


class LessonCatalog:
    """Read-only, ordered lookup of lessons by key."""

    def __init__(self, lessons: List[Lesson]):
        by_key: Dict[str, Lesson] = {}
        for lesson in lessons:
            if lesson.key in by_key:
                raise CatalogError(f"Duplicate lesson key '{lesson.key}'")
            by_key[lesson.key] = lesson
        if WELCOME_LESSON_KEY not in by_key:
            raise CatalogError(f"Catalog must define a '{WELCOME_LESSON_KEY}' lesson")
        self._lessons = by_key

    @classmethod
    def from_mapping(cls, data: Dict[str, Dict]) -> "LessonCatalog":
        if not isinstance(data, dict):
            raise CatalogError("Lesson data must be a mapping of lesson key to lesson")
        lessons = []
        for key, entry in data.items():
            if not isinstance(entry, dict):
                raise CatalogError(f"Lesson '{key}' must be an object")
            try:
                lessons.append(Lesson(key=key, **entry))
            except (ValidationError, TypeError) as e:
                raise CatalogError(f"Lesson '{key}' is malformed: {e}") from e
        return cls(lessons)

    def get(self, key: str) -> Optional[Lesson]:
        return self._lessons.get(key)

    def lesson_or_fallback(self, key: str) -> Lesson:
        lesson = self._lessons.get(key)
        if lesson is None:
            return Lesson(key=key or "unknown", title=key or "unknown")
        return lesson

    def keys(self) -> List[str]:
        return list(self._lessons)

    def __iter__(self) -> Iterator[Lesson]:
        return iter(self._lessons.values())

    def __contains__(self, key) -> bool:
        return key in self._lessons

    def __len__(self) -> int:
        return len(self._lessons)

    def overview(self) -> str:
        overview = "Welcome to HCV Training! Here's your complete lesson plan:\n\n"
        for index, lesson in enumerate(self, start=1):
            overview += f"{index}. {lesson.title}\n   {lesson.description}\n   Topics: {', '.join(lesson.topic_titles)}\n\n"
        overview += "Which lesson would you like to start with? Just say the lesson name or number!"
        return overview


def load_catalog(path: Optional[str] = None) -> LessonCatalog:
    """
    Builds the lesson catalog.

    Args:
        path (str, optional): JSON file with the same shape as ``LESSONS``.
            When omitted, the built-in curriculum is used.

    Returns:
        LessonCatalog: the validated, immutable catalog.

    Raises:
        CatalogError: if the file is unreadable or the data is malformed.
    """
    if not path:
        catalog = LessonCatalog.from_mapping(LESSONS)
        logger.info(f"Loaded built-in lesson catalog with {len(catalog)} lessons")
        return catalog

    catalog_file = Path(path)
    try:
        with catalog_file.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise CatalogError(f"Could not read lesson catalog '{catalog_file}': {e}") from e

    catalog = LessonCatalog.from_mapping(data)
    logger.info(f"Loaded {len(catalog)} lessons from {catalog_file}")
    return catalog
