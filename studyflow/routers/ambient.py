from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from studyflow.config import settings
from studyflow.dependencies import get_current_user
from studyflow.exceptions import NotFoundError
from studyflow.models.user import User
from studyflow.services import ambient_service

router = APIRouter(prefix="/ambient", tags=["ambient"])


@router.get("/{kind}")
async def get_ambient_sound(
    kind: str,
    seconds: float = Query(default=10.0, gt=0, le=settings.AMBIENT_MAX_SECONDS),
    sample_rate: int = Query(default=settings.AMBIENT_DEFAULT_SAMPLE_RATE, ge=8000, le=48000),
    user: User = Depends(get_current_user),
):
    if kind not in ambient_service.AMBIENT_KINDS:
        raise NotFoundError(f"Unknown ambient sound: {kind}")
    samples = ambient_service.synthesize(kind, sample_rate, seconds)
    return Response(
        content=ambient_service.encode_wav(samples, sample_rate),
        media_type="audio/wav",
        headers={"Cache-Control": "no-store"},
    )
