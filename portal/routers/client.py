from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response

from .. import schemas
from ..auth import Principal, get_current_user
from ..crud import Storage, get_storage

# Every route here is owner-scoped: rows belonging to another user are reported
# as not found, exactly like rows that do not exist.
router = APIRouter()


# -------------------- Appointments --------------------

@router.get("/appointments", response_model=List[schemas.AppointmentRead])
def list_appointments(principal: Principal = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return storage.list_appointments(principal.id)


@router.post("/appointments", response_model=schemas.AppointmentRead, status_code=201)
def create_appointment(
    data: schemas.AppointmentCreate,
    principal: Principal = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    return storage.create_appointment(principal.id, data)


@router.get("/appointments/{appointment_id}", response_model=schemas.AppointmentRead)
def get_appointment(appointment_id: int, principal: Principal = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    appointment = storage.get_appointment(appointment_id, principal.id)
    if not appointment:
        raise HTTPException(status_code=404, detail="Appointment not found")
    return appointment


@router.put("/appointments/{appointment_id}", response_model=schemas.AppointmentRead)
def update_appointment(
    appointment_id: int,
    data: schemas.AppointmentUpdate,
    principal: Principal = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    appointment = storage.update_appointment(appointment_id, principal.id, data)
    if not appointment:
        raise HTTPException(status_code=404, detail="Appointment not found")
    return appointment


@router.delete("/appointments/{appointment_id}", status_code=204)
def delete_appointment(appointment_id: int, principal: Principal = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    if not storage.delete_appointment(appointment_id, principal.id):
        raise HTTPException(status_code=404, detail="Appointment not found")
    return Response(status_code=204)


# -------------------- Service requests --------------------

@router.get("/service-requests", response_model=List[schemas.ServiceRequestRead])
def list_service_requests(principal: Principal = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return storage.list_service_requests(principal.id)


@router.post("/service-requests", response_model=schemas.ServiceRequestRead, status_code=201)
def create_service_request(
    data: schemas.ServiceRequestCreate,
    principal: Principal = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    return storage.create_service_request(principal.id, data)


@router.get("/service-requests/{request_id}", response_model=schemas.ServiceRequestRead)
def get_service_request(request_id: int, principal: Principal = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    request = storage.get_service_request(request_id, principal.id)
    if not request:
        raise HTTPException(status_code=404, detail="Service request not found")
    return request


@router.put("/service-requests/{request_id}", response_model=schemas.ServiceRequestRead)
def update_service_request(
    request_id: int,
    data: schemas.ServiceRequestUpdate,
    principal: Principal = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    request = storage.update_service_request(request_id, principal.id, data)
    if not request:
        raise HTTPException(status_code=404, detail="Service request not found")
    return request


# -------------------- Invoices --------------------

@router.get("/invoices", response_model=List[schemas.InvoiceRead])
def list_invoices(principal: Principal = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return storage.list_invoices(principal.id)


@router.get("/invoices/{invoice_id}", response_model=schemas.InvoiceRead)
def get_invoice(invoice_id: int, principal: Principal = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    invoice = storage.get_invoice(invoice_id, principal.id)
    if not invoice:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return invoice
