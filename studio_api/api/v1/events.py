import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from studio_api.database import get_session
from studio_api.schemas.photo import EventSummary, GalleryResponse, PhotoResponse
from studio_api.services.photo_service import PhotoService, build_pagination

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/access/{access_code}", response_model=GalleryResponse)
async def get_gallery(
		access_code: str,
		page: int = Query(1, ge=1),
		limit: int = Query(50, ge=1, le=100),
		session: AsyncSession = Depends(get_session)
):
	"""
	Client gallery, reachable with the event's access code alone.

	Only approved photos of published or completed events are shown;
	anything else answers 404 so codes of hidden events cannot be probed.
	"""
	gallery = await PhotoService(session).get_gallery(access_code, page=page, limit=limit)
	if gallery is None:
		raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Gallery not found")

	event, photos, total = gallery
	return GalleryResponse(
		event=EventSummary.model_validate(event),
		photos=[PhotoResponse.model_validate(p) for p in photos],
		pagination=build_pagination(page, limit, total),
	)
