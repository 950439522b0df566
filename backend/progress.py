"""
Lesson progress for a tutoring session.

The transition functions are pure: they take the catalog and the current
``ProgressState`` and return a ``Transition`` carrying the next state, the slide
to show (if any) and the text the tutor should say. ``TutorSession`` applies
transitions for one room and hands slides to a publisher.
"""
import logging
import math
from typing import List, NamedTuple, Optional, Protocol, Sequence

from pydantic import BaseModel, ConfigDict, Field

from lessons import WELCOME_LESSON_KEY, LessonCatalog
from slides import SlideData, SlideKind, current_topic, resolve_slide

logger = logging.getLogger(__name__)

NO_ACTIVE_LESSON = "No lesson is currently active. Use start_lesson to begin a lesson first."


class ProgressState(BaseModel):
    model_config = ConfigDict(frozen=True)

    lesson_key: str = WELCOME_LESSON_KEY
    topic_index: int = Field(default=0, ge=0)


class Transition(NamedTuple):
    state: ProgressState
    slide: Optional[SlideData]
    message: str


def start_lesson(catalog: LessonCatalog, state: ProgressState, key: Optional[str] = None) -> Transition:
    if not key:
        return Transition(state, None, catalog.overview())

    lesson_key = key.strip().lower()
    # Numbers refer to the positions shown in the overview.
    if lesson_key.isdecimal() and 1 <= int(lesson_key) <= len(catalog):
        lesson_key = catalog.keys()[int(lesson_key) - 1]
    lesson = catalog.get(lesson_key)
    if lesson is None:
        return Transition(
            state,
            None,
            f"I don't have a lesson called \"{key}\". Available lessons are: {', '.join(catalog.keys())}",
        )

    new_state = ProgressState(lesson_key=lesson_key, topic_index=0)
    message = f"Starting Lesson: {lesson.title}\n\n{lesson.description}\n\n"
    message += "We'll cover these topics:\n"
    for index, title in enumerate(lesson.topic_titles, start=1):
        message += f"{index}. {title}\n"
    message += f"\nLet's begin with the first topic: {current_topic(lesson, 0).title}"

    return Transition(new_state, resolve_slide(SlideKind.TITLE, lesson, 0), message)


def next_topic(catalog: LessonCatalog, state: ProgressState) -> Transition:
    lesson = catalog.get(state.lesson_key)
    if lesson is None:
        return Transition(state, None, NO_ACTIVE_LESSON)

    last_index = max(len(lesson.topics) - 1, 0)
    if state.topic_index + 1 > last_index:
        completed = ProgressState(lesson_key=state.lesson_key, topic_index=last_index)
        slide = SlideData(
            type=SlideKind.CONTENT,
            title="Lesson Complete",
            content=[
                f"Congratulations! You've completed the {lesson.title} lesson.",
                f"Topics covered: {len(lesson.topics)}",
                "Would you like to start a new lesson or review any topics?",
            ],
        )
        message = (
            f"We've completed all topics in the {lesson.title} lesson! "
            "Would you like to start a new lesson or review any topics?"
        )
        return Transition(completed, slide, message)

    new_state = ProgressState(lesson_key=state.lesson_key, topic_index=state.topic_index + 1)
    topic = current_topic(lesson, new_state.topic_index)
    message = f"Moving to topic {new_state.topic_index + 1}: {topic.title}\n\nLet me explain this topic in detail..."
    return Transition(new_state, resolve_slide(SlideKind.CONTENT, lesson, new_state.topic_index), message)


def lesson_status(catalog: LessonCatalog, state: ProgressState) -> str:
    lesson = catalog.get(state.lesson_key)
    if lesson is None or not lesson.topics:
        return "No lesson is currently active."

    total = len(lesson.topics)
    position = state.topic_index + 1
    # Halves round up.
    percent = math.floor(100 * position / total + 0.5)
    return (
        f"Current Lesson: {lesson.title}\n"
        f"Topic {position} of {total}: {current_topic(lesson, state.topic_index).title}\n\n"
        f"Progress: {percent}% complete"
    )


def generate_slide(
    catalog: LessonCatalog,
    state: ProgressState,
    kind: SlideKind,
    custom_content: Optional[Sequence[str]] = None,
) -> Transition:
    lesson = catalog.get(state.lesson_key)
    if lesson is None:
        return Transition(state, None, "No lesson is currently active. Please start a lesson first.")

    slide = resolve_slide(kind, lesson, state.topic_index, custom_content)
    topic = current_topic(lesson, state.topic_index)
    return Transition(state, slide, f"[Visual slide generated and displayed for: {topic.title}]")


class SlidePublisher(Protocol):
    def publish_slide(self, room_name: str, slide: SlideData) -> None: ...

    def publish_message(self, room_name: str, message: str, message_type: str = "agent-speech") -> None: ...


class TutorSession:
    """Owns the progress of one room and publishes the slides its transitions produce."""

    def __init__(self, catalog: LessonCatalog, room_name: str, publisher: SlidePublisher,
                 state: Optional[ProgressState] = None):
        self.catalog = catalog
        self.room_name = room_name
        self.publisher = publisher
        self.state = state or ProgressState()

    def _apply(self, transition: Transition) -> str:
        self.state = transition.state
        if transition.slide is not None:
            logger.info(f"Publishing {transition.slide.type.value} slide '{transition.slide.title}' to room {self.room_name}")
            self.publisher.publish_slide(self.room_name, transition.slide)
        return transition.message

    def start_lesson(self, key: Optional[str] = None) -> str:
        return self._apply(start_lesson(self.catalog, self.state, key))

    def next_topic(self) -> str:
        return self._apply(next_topic(self.catalog, self.state))

    def status(self) -> str:
        return lesson_status(self.catalog, self.state)

    def generate_slide(self, kind: SlideKind, custom_content: Optional[List[str]] = None) -> str:
        return self._apply(generate_slide(self.catalog, self.state, kind, custom_content))

    def reset(self, key: str = WELCOME_LESSON_KEY) -> None:
        """Points the session at the start of ``key`` without announcing it."""
        if key not in self.catalog:
            raise KeyError(key)
        self.state = ProgressState(lesson_key=key, topic_index=0)

    def say(self, message: str, message_type: str = "agent-speech") -> None:
        self.publisher.publish_message(self.room_name, message, message_type)
