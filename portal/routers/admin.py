from typing import List

from fastapi import APIRouter, Depends, HTTPException

from .. import schemas
from ..auth import require_admin
from ..crud import Storage, get_storage

# Admin listings are unfiltered: they span every user's rows.
router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/users", response_model=List[schemas.UserRead])
def list_users(storage: Storage = Depends(get_storage)):
    return storage.list_users()


@router.put("/users/{user_id}/role", response_model=schemas.UserRead)
def update_user_role(user_id: str, payload: schemas.RoleUpdate, storage: Storage = Depends(get_storage)):
    user = storage.update_user_role(user_id, payload.role)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.put("/users/{user_id}/status", response_model=schemas.UserRead)
def update_user_status(user_id: str, payload: schemas.StatusUpdate, storage: Storage = Depends(get_storage)):
    user = storage.update_user_status(user_id, payload.is_active)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/appointments", response_model=List[schemas.AppointmentRead])
def list_appointments(storage: Storage = Depends(get_storage)):
    return storage.list_all_appointments()


@router.get("/service-requests", response_model=List[schemas.ServiceRequestRead])
def list_service_requests(storage: Storage = Depends(get_storage)):
    return storage.list_all_service_requests()


@router.get("/invoices", response_model=List[schemas.InvoiceRead])
def list_invoices(storage: Storage = Depends(get_storage)):
    return storage.list_all_invoices()


@router.post("/invoices", response_model=schemas.InvoiceRead, status_code=201)
def create_invoice(data: schemas.InvoiceCreate, storage: Storage = Depends(get_storage)):
    try:
        created = storage.create_invoice(data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return created


@router.put("/invoices/{invoice_id}", response_model=schemas.InvoiceRead)
def update_invoice(invoice_id: int, data: schemas.InvoiceUpdate, storage: Storage = Depends(get_storage)):
    invoice = storage.update_invoice(invoice_id, data)
    if not invoice:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return invoice


@router.get("/contact-submissions", response_model=List[schemas.ContactSubmissionRead])
def list_contact_submissions(storage: Storage = Depends(get_storage)):
    return storage.list_contact_submissions()


@router.put("/contact-submissions/{submission_id}/read", response_model=schemas.ContactSubmissionRead)
def mark_contact_submission_read(submission_id: int, storage: Storage = Depends(get_storage)):
    # Idempotent: marking an already-read submission succeeds again.
    submission = storage.mark_contact_submission_read(submission_id)
    if not submission:
        raise HTTPException(status_code=404, detail="Contact submission not found")
    return submission
