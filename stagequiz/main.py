from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import ORJSONResponse
from fastapi.middleware.cors import CORSMiddleware
import logging
import uuid
from time import perf_counter
from .state import GameController, InvalidTransition, session_store
from .models import SelectModeRequest, SessionSnapshot, StartSessionResponse, SubmitAnswerRequest, SubmitAnswerResponse
from .services.question_bank import QuestionBankBuilder
from .services.word_pool import load_word_pool
from .config import settings

logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger("stagequiz")

builder = QuestionBankBuilder(load_word_pool(settings.words_file), settings)

@asynccontextmanager
async def lifespan(app: FastAPI):
	logger.info({
		"event": "api_startup",
		"words": len(builder.words),
		"batch_size": settings.question_batch_size,
		"time_limit": settings.question_time_limit,
	})
	yield
	session_store.clear()

app = FastAPI(title="stagequiz", default_response_class=ORJSONResponse, lifespan=lifespan)

app.add_middleware(
	CORSMiddleware,
	allow_origins=["*"],
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

def _controller(session_id: str) -> GameController:
	if not session_store.has_session(session_id):
		raise HTTPException(status_code=404, detail="session_not_found")
	return session_store.get(session_id)

@app.middleware("http")
async def timing_middleware(request: Request, call_next):
	start = perf_counter()
	response = await call_next(request)
	duration_ms = int((perf_counter() - start) * 1000)
	logger.debug({
		"event": "request_timing",
		"method": request.method,
		"path": request.url.path,
		"status_code": response.status_code,
		"duration_ms": duration_ms,
	})
	return response

@app.get("/")
def health_root():
	return {"ok": True}

@app.post("/api/session/start", response_model=StartSessionResponse)
async def start_session():
	session_id = str(uuid.uuid4())
	session_store.create_session(session_id, GameController(builder, settings))
	logger.debug({"event": "session_started", "session_id": session_id})
	return StartSessionResponse(session_id=session_id)

@app.get("/api/session/{session_id}", response_model=SessionSnapshot)
async def get_session(session_id: str):
	return _controller(session_id).snapshot()

@app.post("/api/session/{session_id}/mode", response_model=SessionSnapshot)
async def select_mode(session_id: str, payload: SelectModeRequest):
	controller = _controller(session_id)
	snapshot = await controller.select_mode(payload.mode)
	logger.debug({"event": "mode_ready", "session_id": session_id, "mode": payload.mode.value, "phase": snapshot.phase.value})
	return snapshot

@app.post("/api/session/{session_id}/answer", response_model=SubmitAnswerResponse)
async def submit_answer(session_id: str, payload: SubmitAnswerRequest):
	controller = _controller(session_id)
	try:
		correct = controller.submit_answer(payload.text)
	except InvalidTransition as e:
		raise HTTPException(status_code=409, detail=str(e))
	return SubmitAnswerResponse(correct=correct, snapshot=controller.snapshot())

@app.post("/api/session/{session_id}/hint", response_model=SessionSnapshot)
async def reveal_hint(session_id: str):
	controller = _controller(session_id)
	try:
		controller.reveal_hint()
	except InvalidTransition as e:
		raise HTTPException(status_code=409, detail=str(e))
	return controller.snapshot()

@app.post("/api/session/{session_id}/menu", response_model=SessionSnapshot)
async def back_to_menu(session_id: str):
	return _controller(session_id).back_to_menu()

@app.delete("/api/session/{session_id}")
async def end_session(session_id: str):
	_controller(session_id)
	session_store.drop_session(session_id)
	logger.debug({"event": "session_ended", "session_id": session_id})
	return {"ok": True}
