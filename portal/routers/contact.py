from fastapi import APIRouter, Depends

from .. import schemas
from ..crud import Storage, get_storage

router = APIRouter()


@router.post("/contact", response_model=schemas.ContactAccepted, status_code=201)
def submit_contact(data: schemas.ContactSubmissionCreate, storage: Storage = Depends(get_storage)):
    # public lead capture, no session required
    submission = storage.create_contact_submission(data)
    return schemas.ContactAccepted(id=submission.id)
