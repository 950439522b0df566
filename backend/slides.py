"""
Slide content for the visual channel.

``resolve_slide`` turns a position in a lesson into a ``SlideData`` payload the
browser can render. It does no I/O and always returns a slide, degrading to
generic content when nothing specific is known about the topic.
"""
import time
from enum import Enum
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from lessons import ChartKind, Lesson, ProcessKind, Topic


class SlideKind(str, Enum):
    TITLE = "title"
    CONTENT = "content"
    CHART = "chart"
    PROCESS = "process"


class ChartPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    value: float


def now_ms() -> int:
    return int(time.time() * 1000)


class SlideData(BaseModel):
    """One visual aid. Serialized with the browser's field names (``by_alias=True``)."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: SlideKind
    title: str
    content: List[str]
    chart_data: Optional[List[ChartPoint]] = Field(default=None, alias="chartData")
    process_steps: Optional[List[str]] = Field(default=None, alias="processSteps")
    timestamp: int = Field(default_factory=now_ms)

    def to_wire(self) -> Dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# --- Canned slide content ---
TOPIC_CONTENT: Dict[str, List[str]] = {
    "What is HCV and why it exists": [
        "Federal housing assistance program",
        "Helps low-income families afford housing",
        "Provides housing stability",
        "Reduces homelessness",
    ],
    "Income limits and calculations": [
        "Based on Area Median Income (AMI)",
        "Typically 80% of AMI for eligibility",
        "Varies by family size and location",
        "Updated annually by HUD",
    ],
    "Family composition requirements": [
        "At least one family member must be elderly, disabled, or have children",
        "All household members must be listed",
        "Income of all members counts toward eligibility",
        "Changes in family size affect assistance",
    ],
    "Application process": [
        "Contact local Public Housing Agency (PHA)",
        "Complete application with required documents",
        "Join waiting list if eligible",
        "Wait for voucher availability",
    ],
}

GENERIC_CONTENT = [
    "Detailed information about this topic",
    "Key concepts and requirements",
    "Important considerations",
    "Next steps and actions",
]

CHART_SERIES: Dict[ChartKind, List[ChartPoint]] = {
    ChartKind.INCOME_LIMITS: [
        ChartPoint(label="Family of 1", value=35000),
        ChartPoint(label="Family of 2", value=40000),
        ChartPoint(label="Family of 3", value=45000),
        ChartPoint(label="Family of 4", value=50000),
    ],
    ChartKind.RENT_SHARE: [
        ChartPoint(label="Tenant Portion", value=30),
        ChartPoint(label="HCV Assistance", value=70),
        ChartPoint(label="Total Rent", value=100),
    ],
    ChartKind.GENERIC: [
        ChartPoint(label="Category A", value=40),
        ChartPoint(label="Category B", value=35),
        ChartPoint(label="Category C", value=25),
    ],
}

PROCESS_STEPS: Dict[ProcessKind, List[str]] = {
    ProcessKind.APPLICATION: [
        "Contact PHA",
        "Submit Application",
        "Provide Documents",
        "Join Waiting List",
        "Receive Voucher",
    ],
    ProcessKind.VOUCHER: [
        "Receive Voucher",
        "Find Housing",
        "Landlord Approval",
        "HQS Inspection",
        "Sign Lease",
    ],
    ProcessKind.GENERIC: ["Step 1", "Step 2", "Step 3", "Step 4"],
}


def clamp_index(lesson: Lesson, topic_index: int) -> int:
    return min(max(topic_index, 0), max(len(lesson.topics) - 1, 0))


def current_topic(lesson: Lesson, topic_index: int) -> Topic:
    """The topic at ``topic_index``, clamped into range. Topic-less lessons teach their own title."""
    if not lesson.topics:
        return Topic(title=lesson.title)
    return lesson.topics[clamp_index(lesson, topic_index)]


def resolve_slide(
    kind: SlideKind,
    lesson: Lesson,
    topic_index: int,
    custom_content: Optional[Sequence[str]] = None,
) -> SlideData:
    kind = SlideKind(kind)
    topic = current_topic(lesson, topic_index)
    custom = list(custom_content) if custom_content else None

    if kind == SlideKind.TITLE:
        return SlideData(
            type=kind,
            title=lesson.title,
            content=[
                lesson.description,
                f"Topic {clamp_index(lesson, topic_index) + 1} of {len(lesson.topics)}",
                topic.title,
            ],
        )

    if kind == SlideKind.CHART:
        return SlideData(
            type=kind,
            title=f"{topic.title} - Data Visualization",
            content=custom or [f"Visual representation of {topic.title}"],
            chart_data=list(CHART_SERIES[topic.chart]),
        )

    if kind == SlideKind.PROCESS:
        return SlideData(
            type=kind,
            title=f"{topic.title} - Process Flow",
            content=custom or [f"Step-by-step process for {topic.title}"],
            process_steps=list(PROCESS_STEPS[topic.process]),
        )

    return SlideData(
        type=SlideKind.CONTENT,
        title=topic.title,
        content=custom or list(TOPIC_CONTENT.get(topic.title, GENERIC_CONTENT)),
    )
