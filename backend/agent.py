# ======================================================
# HCV Training voice agent with visual slides
# ======================================================
"""
LiveKit voice agent for the HCV trainer.

The agent teaches the scripted curriculum, answers eligibility/rent/glossary
questions and pushes a slide to the relay server every time the lesson moves.

Run with:
    python agent.py dev
"""
import asyncio
import logging
from typing import Annotated, List, Optional

from dotenv import load_dotenv
from pydantic import Field
from livekit.agents import (
    Agent,
    AgentSession,
    JobContext,
    JobProcess,
    MetricsCollectedEvent,
    RunContext,
    WorkerOptions,
    cli,
    function_tool,
    metrics,
)
from livekit.plugins import azure, google, silero

import hcv_tools
from config import settings
from lessons import CatalogError, LessonCatalog, load_catalog
from progress import TutorSession
from relay_client import SlideRelayClient
from slides import SlideKind
from welcome import run_welcome_script

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("agent")
load_dotenv(".env.local")

INSTRUCTIONS = """
You are a specialized HCV (Housing Choice Voucher) Training Assistant with a structured lesson plan and visual slides.

Your role is to:
- Provide structured HCV education through guided lessons
- Progress through topics systematically, one topic at a time
- Help users understand eligibility, rent calculations, payment standards and procedures
- Be patient, encouraging and accurate about HUD regulations and PHA requirements

LESSON STRUCTURE:
- Use `start_lesson` without a lesson to present the lesson plan, or with a lesson key to begin it
- Use `next_topic` when the user is ready to move on and `get_current_lesson` when they ask where they are
- Use `generate_slide` with chart or process slides when a picture would help
- Ask comprehension questions and give practical examples

Available lessons: {lessons}

You speak clearly and conversationally. Never read markdown or slide markup aloud.
"""


class HCVTrainingAgent(Agent):
    def __init__(self, tutor: TutorSession):
        self.tutor = tutor
        super().__init__(instructions=INSTRUCTIONS.format(lessons=", ".join(tutor.catalog.keys())))

    @function_tool
    async def check_eligibility(
        self,
        context: RunContext,
        family_size: Annotated[int, Field(description="Number of people in the family")],
        annual_income: Annotated[float, Field(description="Total annual household income in dollars")],
        location: Annotated[Optional[str], Field(description="City or state, for area-specific income limits")] = None,
    ) -> str:
        """Check if a family might be eligible for HCV assistance based on their income and family size."""
        logger.info(f"Eligibility check: family of {family_size}, income {annual_income}")
        return hcv_tools.check_eligibility(family_size, annual_income, location)

    @function_tool
    async def calculate_rent(
        self,
        context: RunContext,
        adjusted_income: Annotated[float, Field(description="Monthly adjusted income (after deductions)")],
        total_rent: Annotated[float, Field(description="Total monthly rent for the unit")],
        payment_standard: Annotated[Optional[float], Field(description="Local payment standard, if known")] = None,
    ) -> str:
        """Calculate how much rent a family would pay with HCV assistance."""
        return hcv_tools.calculate_rent(adjusted_income, total_rent, payment_standard)

    @function_tool
    async def explain_hcv_term(
        self,
        context: RunContext,
        term: Annotated[str, Field(description="The HCV term or concept to explain")],
    ) -> str:
        """Explain HCV-related terms and concepts to help users understand the program better."""
        return hcv_tools.explain_term(term)

    @function_tool
    async def start_lesson(
        self,
        context: RunContext,
        lesson_type: Annotated[
            Optional[str],
            Field(description="The lesson to start (welcome, eligibility, application, income, payment, voucher, rights), or empty for the overview"),
        ] = None,
    ) -> str:
        """Start a specific HCV lesson or show the lesson plan overview."""
        return self.tutor.start_lesson(lesson_type)

    @function_tool
    async def next_topic(self, context: RunContext) -> str:
        """Move to the next topic in the current lesson."""
        return self.tutor.next_topic()

    @function_tool
    async def get_current_lesson(self, context: RunContext) -> str:
        """Get information about the current lesson and progress."""
        return self.tutor.status()

    @function_tool
    async def generate_slide(
        self,
        context: RunContext,
        slide_type: Annotated[str, Field(description="Type of slide: title, content, chart, or process")],
        custom_content: Annotated[Optional[List[str]], Field(description="Custom bullet points for the slide")] = None,
    ) -> str:
        """Generate a visual slide for the current topic."""
        try:
            kind = SlideKind(slide_type.strip().lower())
        except ValueError:
            return f"Unknown slide type '{slide_type}'. Use title, content, chart, or process."
        return self.tutor.generate_slide(kind, custom_content)


def prewarm(proc: JobProcess):
    # Load VAD once per worker and store in proc.userdata
    proc.userdata["vad"] = silero.VAD.load()


async def entrypoint(ctx: JobContext):
    ctx.log_context_fields = {"room": ctx.job.room.name}

    try:
        catalog: LessonCatalog = load_catalog(settings.LESSON_CATALOG_PATH)
    except CatalogError as e:
        logger.error(f"!!! STARTUP FAILED !!! Lesson catalog is unusable: {e}", exc_info=True)
        raise

    room_name = ctx.job.room.name or settings.DEFAULT_ROOM_NAME
    relay_client = SlideRelayClient(settings.WEB_INTERFACE_URL, settings.RELAY_TIMEOUT_SECONDS)
    relay_client.start()
    tutor = TutorSession(catalog, room_name, relay_client)
    logger.info(f"Starting HCV tutoring session for room {room_name}; slides go to {settings.WEB_INTERFACE_URL}")

    session = AgentSession(
        stt=google.STT(),
        llm=google.LLM(
            model=settings.GENERATION_MODEL_NAME,
            vertexai=bool(settings.GOOGLE_CLOUD_PROJECT_ID),
            project=settings.GOOGLE_CLOUD_PROJECT_ID,
        ),
        tts=azure.TTS(
            voice=settings.AZURE_VOICE_NAME,
            speech_key=settings.AZURE_SPEECH_KEY,
            speech_region=settings.AZURE_SPEECH_REGION,
        ),
        vad=ctx.proc.userdata["vad"],
    )

    usage_collector = metrics.UsageCollector()

    @session.on("metrics_collected")
    def _on_metrics_collected(ev: MetricsCollectedEvent):
        metrics.log_metrics(ev.metrics)
        usage_collector.collect(ev.metrics)

    async def log_usage():
        summary = usage_collector.get_summary()
        logger.info(f"Usage: {summary}")

    ctx.add_shutdown_callback(log_usage)
    ctx.add_shutdown_callback(relay_client.aclose)

    await session.start(agent=HCVTrainingAgent(tutor), room=ctx.room)
    await ctx.connect()

    if settings.WELCOME_SCRIPT_ENABLED:
        async def speak(text: str):
            await session.say(text, allow_interruptions=True)

        welcome_task = asyncio.create_task(run_welcome_script(speak, tutor))

        async def stop_welcome():
            welcome_task.cancel()

        ctx.add_shutdown_callback(stop_welcome)


if __name__ == "__main__":
    cli.run_app(WorkerOptions(entrypoint_fnc=entrypoint, prewarm_fnc=prewarm))
