import logging
import os
from pydantic import BaseModel, Field, field_validator
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseModel):
    question_batch_size: int = int(os.getenv("QUESTION_BATCH_SIZE", "10"))
    question_time_limit: int = int(os.getenv("QUESTION_TIME_LIMIT", "120"))
    tick_seconds: float = float(os.getenv("TICK_SECONDS", "1.0"))
    advance_delay_seconds: float = float(os.getenv("ADVANCE_DELAY_SECONDS", "1.5"))
    points_per_correct: int = int(os.getenv("POINTS_PER_CORRECT", "10"))
    max_level: int = int(os.getenv("MAX_LEVEL", "10"))
    generation_chunk_size: int = int(os.getenv("GENERATION_CHUNK_SIZE", "5"))
    max_generation_rounds: int = int(os.getenv("MAX_GENERATION_ROUNDS", "3"))
    words_file: str | None = os.getenv("WORDS_FILE")
    log_level: str = Field(default=os.getenv("LOG_LEVEL", "INFO"), validate_default=True)

    @field_validator("log_level", mode="before")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        # unknown names fall back to INFO
        name = str(value or "").strip().upper()
        if not isinstance(logging.getLevelName(name), int):
            return "INFO"
        return name

settings = Settings()
