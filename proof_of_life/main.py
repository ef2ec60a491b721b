from fastapi import FastAPI, UploadFile, File, HTTPException, Form
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import logging
import math
import uuid
from dataclasses import asdict
from typing import Dict, List, Optional

from .clock import VirtualClock
from .config import get_config
from .exceptions import ConfigurationError, VideoProcessingError
from .face_locator import SUPPORTED
from .models.challenges import Challenge, ChallengeGenerator
from .models.messages import describe, hint
from .sequence import SequenceController, sequence_horizon
from .video_processor import (
    DEFAULT_FPS,
    VideoFrameSource,
    cleanup_temp_file,
    extract_frames,
    get_video_info,
    save_uploaded_file,
)

config = get_config()

# Logging setup
logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Proof-of-Life API",
    description="Challenge-response liveness verification (blink, head turns) on recorded video.",
    version="1.0.0"
)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- In-memory storage for sessions and services ---
# In a production environment, use a more robust solution like Redis.
sessions: Dict[str, List[Challenge]] = {}
challenge_generator = None


@app.on_event("startup")
async def startup_event():
    """Application startup initialization."""
    global challenge_generator

    logger.info("Initializing services...")
    try:
        config.validate_configuration()
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e.message}")
        raise

    challenge_generator = ChallengeGenerator(
        [Challenge(name) for name in config.CHALLENGES],
        shuffle=config.RANDOMIZE_CHALLENGES
    )
    if not SUPPORTED.face_detector:
        logger.warning("Platform face detector unavailable; using the luminance heuristic.")
    logger.info("Services initialized.")


def validate_video_file(file: UploadFile):
    """Validates the uploaded video file."""
    if not file.content_type or not file.content_type.startswith("video/"):
        raise HTTPException(status_code=400, detail="Invalid file type. Must be a video.")


def analyzed_frame_limit(challenge_count: int, fps: float) -> int:
    """Frames a run can reach at ``fps``, capped by MAX_ANALYZED_FRAMES."""
    fps = fps if fps and fps > 0 else DEFAULT_FPS
    reachable = math.ceil(sequence_horizon(challenge_count, config) * fps) + 1
    return min(reachable, config.MAX_ANALYZED_FRAMES)


@app.get("/", include_in_schema=False)
async def root():
    return {"message": "Proof-of-Life API is running. See /docs for details."}


@app.get("/health")
async def health():
    return {"status": "ok", "capabilities": asdict(SUPPORTED)}


@app.post("/liveness/session/start", summary="Start a new liveness session")
async def start_liveness_session(locale: Optional[str] = None) -> JSONResponse:
    """
    Starts a new liveness session.

    Generates a session ID and the challenge sequence the user has to
    perform, together with the hints the client should display.
    """
    session_id = str(uuid.uuid4())
    locale = locale or config.DEFAULT_LOCALE

    challenge_sequence = challenge_generator.generate()
    sessions[session_id] = challenge_sequence

    steps = ([Challenge.PREPARE] if config.REQUIRE_PREPARE else []) + challenge_sequence

    logger.info(f"Started session {session_id} with challenges: {[c.value for c in challenge_sequence]}")

    return JSONResponse(content={
        "session_id": session_id,
        "challenges": [c.value for c in challenge_sequence],
        "hints": {c.value: hint(c, locale) for c in steps},
        "timeouts": {
            "prepare_seconds": config.PREPARE_TIMEOUT_SECONDS,
            "challenge_seconds": config.CHALLENGE_TIMEOUT_SECONDS
        }
    })


@app.post("/liveness/check", summary="Perform liveness check for a session")
async def liveness_check(
    session_id: str = Form(...),
    file: UploadFile = File(...),
    locale: Optional[str] = Form(None)
) -> JSONResponse:
    """
    Runs the session's challenge sequence against an uploaded recording.

    The video is replayed at its own frame rate: every wait of the sequence
    advances the video clock instead of real time.
    """
    if session_id not in sessions:
        raise HTTPException(status_code=404, detail="Invalid or expired session ID.")

    challenge_sequence = sessions[session_id]
    locale = locale or config.DEFAULT_LOCALE
    temp_file_path = None

    try:
        validate_video_file(file)
        temp_file_path = await save_uploaded_file(file)

        video_info = get_video_info(temp_file_path)
        if video_info["duration"] > config.MAX_VIDEO_DURATION_SECONDS:
            raise HTTPException(
                status_code=400,
                detail=f"Video duration exceeds {config.MAX_VIDEO_DURATION_SECONDS:g} second limit."
            )

        max_frames = analyzed_frame_limit(len(challenge_sequence), video_info["fps"])
        frames = extract_frames(temp_file_path, max_frames=max_frames)
        if not frames:
            raise HTTPException(status_code=400, detail="Could not extract frames from video.")

        clock = VirtualClock()
        source = VideoFrameSource(frames, video_info["fps"], clock)
        controller = SequenceController(source, challenge_sequence, config=config, clock=clock)

        logger.info(f"Session {session_id}: running challenges {[c.value for c in challenge_sequence]}")
        result = await controller.run()

        return JSONResponse(content={
            "status": "SUCCESS" if result.alive else "FAILURE",
            "message": describe(result.reason, locale),
            "result": result.to_dict(),
            "video_info": video_info
        })

    except HTTPException:
        raise
    except VideoProcessingError as e:
        logger.warning(f"Session {session_id}: {e.message}")
        raise HTTPException(status_code=400, detail=e.message)
    except Exception as e:
        logger.error(f"Error during liveness check for session {session_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"An internal error occurred: {e}")
    finally:
        # Sessions are single-use
        if session_id in sessions:
            del sessions[session_id]
            logger.info(f"Session {session_id} cleaned up.")
        if temp_file_path:
            cleanup_temp_file(temp_file_path)
            logger.info(f"Cleaned up temp file: {temp_file_path}")
