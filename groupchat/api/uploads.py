from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from groupchat.core.config import settings
from groupchat.core.dependencies import get_current_user
from groupchat.core.errors import MediaUploadError
from groupchat.models.user import User
from groupchat.schemas.group_messages import MediaInfo
from groupchat.services.media_service import save_attachment

router = APIRouter()


@router.post("/media/upload", response_model=MediaInfo)
async def upload_media(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user)
):
    """
    Upload a message attachment (image, audio, video, file)

    Returns the media descriptor to pass as ``media`` to sendGroupMessage.
    Stored under static/upload, which the cleanup job purges after a few days.
    """
    data = await file.read()
    if not data:
        raise HTTPException(400, "Empty file")
    if len(data) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(413, f"File exceeds {settings.MAX_UPLOAD_BYTES} bytes")

    try:
        return save_attachment(data, file.filename, file.content_type)
    except MediaUploadError as e:
        raise HTTPException(500, detail=e.message)
