# backend/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv
from typing import List, Optional

# Load environment variables from .env file.
# This makes them available to the relay server and the agent worker before any other code runs.
load_dotenv()

class Settings(BaseSettings):
    """
    Defines the application's configuration settings, loaded from the .env file.
    """
    # Relay server settings
    WEB_INTERFACE_URL: str = "http://localhost:8000"  # Where the agent pushes slide events
    RELAY_TIMEOUT_SECONDS: float = 3.0
    CLIENT_SEND_TIMEOUT_SECONDS: float = 3.0
    CLIENT_OUTBOX_SIZE: int = 100
    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://127.0.0.1:8000"]

    # Curriculum settings
    DEFAULT_ROOM_NAME: str = "hcv-training-room"
    LESSON_CATALOG_PATH: Optional[str] = None  # JSON file overriding the built-in lessons
    WELCOME_SCRIPT_ENABLED: bool = True

    # LiveKit settings (read by the livekit-agents CLI as well)
    LIVEKIT_URL: Optional[str] = None
    LIVEKIT_API_KEY: Optional[str] = None
    LIVEKIT_API_SECRET: Optional[str] = None

    # Google Cloud settings
    GOOGLE_CLOUD_PROJECT_ID: Optional[str] = None
    GENERATION_MODEL_NAME: str = "gemini-2.5-flash"

    # Azure settings
    AZURE_SPEECH_KEY: Optional[str] = None
    AZURE_SPEECH_REGION: Optional[str] = None
    AZURE_VOICE_NAME: str = "en-US-JennyNeural"

    # This tells Pydantic to read from the .env file.
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

# Create a single, globally accessible settings object
settings = Settings()
