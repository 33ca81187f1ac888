"""
Configuration models for the call bridge.

Pydantic v2 models give validation and type safety for the YAML file and
its environment overrides.
"""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class ServerConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8087)
    # Each room is served on its own websocket path (/<room>)
    rooms: List[str] = Field(default_factory=lambda: ["calls"])
    ping_interval: Optional[float] = Field(default=20.0)
    ping_timeout: Optional[float] = Field(default=20.0)
    max_message_size: Optional[int] = Field(default=1024 * 1024)

    @field_validator("rooms")
    @classmethod
    def _rooms_not_empty(cls, value: List[str]) -> List[str]:
        rooms = [room.strip().strip("/") for room in value if room and room.strip().strip("/")]
        if not rooms:
            raise ValueError("at least one room is required")
        return rooms


class GoogleConfig(BaseModel):
    project_id: str
    email: Optional[str] = None
    private_key: Optional[str] = None

    @property
    def has_service_account(self) -> bool:
        return bool(self.email and self.private_key)


class RecognitionConfig(BaseModel):
    language_code: str = Field(default="bg-BG")
    audio_encoding: str = Field(default="AUDIO_ENCODING_LINEAR_16")
    single_utterance: bool = Field(default=True)


class SynthesisConfig(BaseModel):
    language_code: str = Field(default="bg-BG")
    ssml_gender: str = Field(default="NEUTRAL")
    voice_name: Optional[str] = None
    audio_encoding: str = Field(default="LINEAR16")
    # Tag sent to the socket client alongside synthesized audio
    audio_content_type: str = Field(default="raw")


class GreetingConfig(BaseModel):
    enabled: bool = Field(default=True)
    # Event used when the setup message carries no context of its own
    event_name: Optional[str] = None


class CommandApiConfig(BaseModel):
    enabled: bool = Field(default=True)
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=15000)
    api_token: Optional[str] = None


class LoggingConfig(BaseModel):
    level: str = Field(default="info")


class AppConfig(BaseModel):
    server: ServerConfig = Field(default_factory=ServerConfig)
    google: GoogleConfig
    recognition: RecognitionConfig = Field(default_factory=RecognitionConfig)
    synthesis: SynthesisConfig = Field(default_factory=SynthesisConfig)
    greeting: GreetingConfig = Field(default_factory=GreetingConfig)
    command_api: CommandApiConfig = Field(default_factory=CommandApiConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
