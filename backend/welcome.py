"""Timed welcome monologue the agent plays right after joining a room."""
import asyncio
import logging
from typing import Awaitable, Callable, List, NamedTuple, Optional

from lessons import WELCOME_LESSON_KEY
from progress import TutorSession
from slides import SlideKind

logger = logging.getLogger(__name__)


class WelcomeStep(NamedTuple):
    delay_seconds: float
    slide: Optional[SlideKind]
    text: str


WELCOME_SCRIPT: List[WelcomeStep] = [
    WelcomeStep(
        1.0,
        None,
        "Welcome to HCV Training! I'm your HCV learning assistant with visual slides. "
        "Let me start with our welcome lesson.",
    ),
    WelcomeStep(
        2.0,
        SlideKind.TITLE,
        "Let's begin with understanding what HCV is and why this program exists. HCV stands for Housing Choice "
        "Voucher, which is a federal program that helps low-income families afford decent, safe, and sanitary "
        "housing in the private market.",
    ),
    WelcomeStep(
        3.0,
        SlideKind.CONTENT,
        "The program was created to provide housing stability, reduce homelessness, and give families the freedom "
        "to choose where they want to live. As we go through each topic, I'll be showing you visual slides to help "
        "explain the concepts.",
    ),
]


async def run_welcome_script(
    speak: Callable[[str], Awaitable[None]],
    tutor: TutorSession,
    script: List[WelcomeStep] = WELCOME_SCRIPT,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
):
    """
    Plays ``script`` in order: wait, show the step's slide for the current
    welcome topic, then speak. Spoken lines are mirrored to the room as text.
    """
    tutor.reset(WELCOME_LESSON_KEY)
    for step in script:
        await sleep(step.delay_seconds)
        if step.slide is not None:
            tutor.generate_slide(step.slide)
        tutor.say(step.text)
        try:
            await speak(step.text)
        except Exception as e:
            logger.error(f"Welcome script interrupted: {e}", exc_info=True)
            return
