# file: controllers/requests.py

from fastapi import APIRouter, Depends, HTTPException, status

from bloodbridge.models.request import RequestCreate, RequestResponse, RequestStatusUpdate
from bloodbridge.services.engine import NotificationEngine, get_engine

router = APIRouter()


@router.post("/", response_model=RequestResponse, status_code=status.HTTP_201_CREATED)
async def create_request(
        payload: RequestCreate,
        engine: NotificationEngine = Depends(get_engine),
):
    """
    Creates a blood request. Open requests are broadcast to every other user.
    """
    return await engine.store.create_request(**payload.model_dump())


@router.get("/{request_id}", response_model=RequestResponse)
async def get_request(
        request_id: str,
        engine: NotificationEngine = Depends(get_engine),
):
    blood_request = await engine.store.get_request(request_id)
    if not blood_request:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Request not found")
    return blood_request


@router.patch("/{request_id}", response_model=RequestResponse)
async def update_request_status(
        request_id: str,
        payload: RequestStatusUpdate,
        engine: NotificationEngine = Depends(get_engine),
):
    """
    Moves a request to a new status (accept, complete, cancel, reopen).
    An accepting donor is appended to the responders.
    """
    blood_request = await engine.store.update_request(
        request_id,
        status=payload.status,
        append_responder=payload.responder_id,
    )
    if not blood_request:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Request not found")
    return blood_request
