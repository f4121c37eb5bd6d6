"""Recording processing endpoints.

For a stage-by-stage map see `app.pipelines.recording.flow.RecordingAnalysisPipeline`.
`POST /recordings/{id}/audio-ready` only schedules work; the retrying
processor runs as a background task and owns every status transition.
"""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, HTTPException, status

from app.controllers.dependencies import ProcessorDep, RepositoryDep
from app.domain.errors import RecordingNotFoundError
from app.pipelines.recording.flow import RecordingAnalysisPipeline
from app.pipelines.recording.retry import RecordingProcessor
from app.views import (
    AudioReadyRequest,
    AudioReadyResponse,
    ErrorResponse,
    RecordingResponse,
    UtteranceResponse,
)

router = APIRouter(prefix="/recordings", tags=["recordings"])

logger = logging.getLogger(__name__)

PIPELINE_STAGES = tuple(RecordingAnalysisPipeline.describe())
"""Ordered pipeline metadata used for quick reference and debugging."""

_NOT_FOUND = {404: {"model": ErrorResponse}}


async def _run_processor(processor: RecordingProcessor, recording_id: UUID) -> None:
    try:
        await processor.process(recording_id)
    except RecordingNotFoundError:
        logger.warning("Recording %s disappeared before processing started", recording_id)


@router.post(
    "/{recording_id}/audio-ready",
    response_model=AudioReadyResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={**_NOT_FOUND, 409: {"model": ErrorResponse}},
)
async def audio_ready(
    recording_id: UUID,
    payload: AudioReadyRequest,
    background_tasks: BackgroundTasks,
    repository: RepositoryDep,
    processor: ProcessorDep,
) -> AudioReadyResponse:
    """Schedule analysis of an uploaded recording."""

    recording = await repository.get(recording_id)
    if recording is None or recording.user_id != payload.user_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Recording not found",
        )
    if recording.is_terminal:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Recording already {recording.analysis_status.value.lower()}",
        )

    background_tasks.add_task(_run_processor, processor, recording_id)
    logger.info("Scheduled analysis for recording %s", recording_id)
    return AudioReadyResponse(recording_id=recording_id)


@router.get("/{recording_id}", response_model=RecordingResponse, responses=_NOT_FOUND)
async def get_recording(recording_id: UUID, repository: RepositoryDep) -> RecordingResponse:
    recording = await repository.get(recording_id)
    if recording is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Recording not found",
        )
    return RecordingResponse.model_validate(recording)


@router.get(
    "/{recording_id}/utterances",
    response_model=List[UtteranceResponse],
    responses=_NOT_FOUND,
)
async def list_utterances(
    recording_id: UUID,
    repository: RepositoryDep,
) -> List[UtteranceResponse]:
    if await repository.get(recording_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Recording not found",
        )
    utterances = await repository.list_utterances(recording_id)
    return [UtteranceResponse.model_validate(utterance) for utterance in utterances]
