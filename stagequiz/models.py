from enum import Enum
from pydantic import BaseModel, ConfigDict
from typing import Optional

class Mode(str, Enum):
    WORD = "word"
    ARITHMETIC = "arithmetic"

class Phase(str, Enum):
    MODE_SELECT = "mode_select"
    LOADING = "loading"
    ACTIVE = "active"
    SCORING = "scoring"
    ERROR = "error"

class Question(BaseModel):
    model_config = ConfigDict(frozen=True)

    prompt: str
    answer: str

class SessionSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    phase: Phase
    mode: Optional[Mode] = None
    stage: int
    score: int
    question: Optional[str] = None
    question_index: int
    total_questions: int
    time_remaining: int
    message: Optional[str] = None
    hint: Optional[str] = None
    loading: bool = False
    error: Optional[str] = None

class StartSessionResponse(BaseModel):
    session_id: str

class SelectModeRequest(BaseModel):
    mode: Mode

class SubmitAnswerRequest(BaseModel):
    text: str

class SubmitAnswerResponse(BaseModel):
    correct: bool
    snapshot: SessionSnapshot
