from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from fastapi import Depends
from sqlalchemy import delete
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models, schemas
from .db import get_primary_db, get_replica_db
from .models import utcnow

# dialects with INSERT ... ON CONFLICT DO UPDATE
UPSERT_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}

# Business rule: amount stored rounded to 2 decimals, non-negative

def round_amount(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _apply(row, changes: dict):
    for key, value in changes.items():
        setattr(row, key, value)
    row.updated_at = utcnow()


class Storage:
    """Repository over the primary (writes) and replica (reads) sessions.

    Missing rows come back as None/False, never as exceptions. Owner-scoped
    operations match on both id and user_id, so a row owned by someone else
    is indistinguishable from one that does not exist.
    """

    def __init__(self, primary: Session, replica: Session):
        self.primary = primary
        self.replica = replica

    def _commit(self, row=None):
        try:
            self.primary.commit()
        except IntegrityError as e:
            self.primary.rollback()
            raise ValueError("integrity error") from e
        if row is not None:
            self.primary.refresh(row)
        return row

    # -------------------- users --------------------

    def get_user(self, user_id: str, consistent: bool = False) -> Optional[models.User]:
        # consistent=True reads the primary, for callers that must see their own writes
        db = self.primary if consistent else self.replica
        return db.get(models.User, user_id)

    def upsert_user(self, data: schemas.UserUpsert) -> models.User:
        now = utcnow()
        values = data.model_dump()
        dialect = self.primary.get_bind().dialect.name
        if dialect not in UPSERT_INSERTS:
            raise NotImplementedError(f"user upsert is not supported on {dialect!r}")
        stmt = UPSERT_INSERTS[dialect](models.User).values(
            **values, role="client", is_active=True, created_at=now, updated_at=now
        )
        profile = {key: stmt.excluded[key] for key in values if key != "id"}
        stmt = stmt.on_conflict_do_update(
            index_elements=[models.User.id],
            set_={**profile, "updated_at": now},
        )
        self.primary.execute(stmt)
        self.primary.commit()
        return self.primary.get(models.User, data.id, populate_existing=True)

    def list_users(self) -> List[models.User]:
        return (
            self.replica.query(models.User)
            .order_by(models.User.created_at.desc(), models.User.id.desc())
            .all()
        )

    def update_user_role(self, user_id: str, role: str) -> Optional[models.User]:
        user = self.primary.get(models.User, user_id)
        if not user:
            return None
        _apply(user, {"role": role})
        return self._commit(user)

    def update_user_status(self, user_id: str, is_active: bool) -> Optional[models.User]:
        user = self.primary.get(models.User, user_id)
        if not user:
            return None
        _apply(user, {"is_active": is_active})
        return self._commit(user)

    # -------------------- appointments --------------------

    def list_appointments(self, user_id: str) -> List[models.Appointment]:
        return (
            self.replica.query(models.Appointment)
            .filter(models.Appointment.user_id == user_id)
            .order_by(models.Appointment.scheduled_at.desc(), models.Appointment.id.desc())
            .all()
        )

    def get_appointment(self, appointment_id: int, user_id: str) -> Optional[models.Appointment]:
        return (
            self.replica.query(models.Appointment)
            .filter(models.Appointment.id == appointment_id, models.Appointment.user_id == user_id)
            .first()
        )

    def create_appointment(self, user_id: str, data: schemas.AppointmentCreate) -> models.Appointment:
        appointment = models.Appointment(user_id=user_id, **data.model_dump())
        self.primary.add(appointment)
        return self._commit(appointment)

    def update_appointment(self, appointment_id: int, user_id: str, data: schemas.AppointmentUpdate) -> Optional[models.Appointment]:
        appointment = (
            self.primary.query(models.Appointment)
            .filter(models.Appointment.id == appointment_id, models.Appointment.user_id == user_id)
            .first()
        )
        if not appointment:
            return None
        _apply(appointment, data.model_dump(exclude_unset=True))
        return self._commit(appointment)

    def delete_appointment(self, appointment_id: int, user_id: str) -> bool:
        result = self.primary.execute(
            delete(models.Appointment).where(
                models.Appointment.id == appointment_id,
                models.Appointment.user_id == user_id,
            )
        )
        self.primary.commit()
        return (result.rowcount or 0) > 0

    def list_all_appointments(self) -> List[models.Appointment]:
        return (
            self.replica.query(models.Appointment)
            .order_by(models.Appointment.scheduled_at.desc(), models.Appointment.id.desc())
            .all()
        )

    # -------------------- service requests --------------------

    def list_service_requests(self, user_id: str) -> List[models.ServiceRequest]:
        return (
            self.replica.query(models.ServiceRequest)
            .filter(models.ServiceRequest.user_id == user_id)
            .order_by(models.ServiceRequest.created_at.desc(), models.ServiceRequest.id.desc())
            .all()
        )

    def get_service_request(self, request_id: int, user_id: str) -> Optional[models.ServiceRequest]:
        return (
            self.replica.query(models.ServiceRequest)
            .filter(models.ServiceRequest.id == request_id, models.ServiceRequest.user_id == user_id)
            .first()
        )

    def create_service_request(self, user_id: str, data: schemas.ServiceRequestCreate) -> models.ServiceRequest:
        request = models.ServiceRequest(user_id=user_id, **data.model_dump())
        self.primary.add(request)
        return self._commit(request)

    def update_service_request(self, request_id: int, user_id: str, data: schemas.ServiceRequestUpdate) -> Optional[models.ServiceRequest]:
        request = (
            self.primary.query(models.ServiceRequest)
            .filter(models.ServiceRequest.id == request_id, models.ServiceRequest.user_id == user_id)
            .first()
        )
        if not request:
            return None
        _apply(request, data.model_dump(exclude_unset=True))
        return self._commit(request)

    def list_all_service_requests(self) -> List[models.ServiceRequest]:
        return (
            self.replica.query(models.ServiceRequest)
            .order_by(models.ServiceRequest.created_at.desc(), models.ServiceRequest.id.desc())
            .all()
        )

    # -------------------- invoices --------------------

    def list_invoices(self, user_id: str) -> List[models.Invoice]:
        return (
            self.replica.query(models.Invoice)
            .filter(models.Invoice.user_id == user_id)
            .order_by(models.Invoice.created_at.desc(), models.Invoice.id.desc())
            .all()
        )

    def get_invoice(self, invoice_id: int, user_id: str) -> Optional[models.Invoice]:
        return (
            self.replica.query(models.Invoice)
            .filter(models.Invoice.id == invoice_id, models.Invoice.user_id == user_id)
            .first()
        )

    def create_invoice(self, data: schemas.InvoiceCreate) -> models.Invoice:
        # Checked against the primary so a lagging replica cannot reject a fresh user.
        if not self.primary.get(models.User, data.user_id):
            raise ValueError("foreign key violation: user does not exist")

        amount = round_amount(data.amount)
        if amount < 0:
            raise ValueError("amount must be non-negative")

        invoice = models.Invoice(**data.model_dump(exclude={"amount"}), amount=amount)
        self.primary.add(invoice)
        return self._commit(invoice)

    def update_invoice(self, invoice_id: int, data: schemas.InvoiceUpdate) -> Optional[models.Invoice]:
        invoice = self.primary.get(models.Invoice, invoice_id)
        if not invoice:
            return None
        changes = data.model_dump(exclude_unset=True)
        if "amount" in changes:
            changes["amount"] = round_amount(changes["amount"])
        _apply(invoice, changes)
        return self._commit(invoice)

    def list_all_invoices(self) -> List[models.Invoice]:
        return (
            self.replica.query(models.Invoice)
            .order_by(models.Invoice.created_at.desc(), models.Invoice.id.desc())
            .all()
        )

    # -------------------- contact submissions --------------------

    def create_contact_submission(self, data: schemas.ContactSubmissionCreate) -> models.ContactSubmission:
        submission = models.ContactSubmission(**data.model_dump())
        self.primary.add(submission)
        return self._commit(submission)

    def list_contact_submissions(self) -> List[models.ContactSubmission]:
        return (
            self.replica.query(models.ContactSubmission)
            .order_by(models.ContactSubmission.created_at.desc(), models.ContactSubmission.id.desc())
            .all()
        )

    def mark_contact_submission_read(self, submission_id: int) -> Optional[models.ContactSubmission]:
        submission = self.primary.get(models.ContactSubmission, submission_id)
        if not submission:
            return None
        submission.is_read = True
        return self._commit(submission)

    # -------------------- sessions --------------------

    def get_session(self, sid: str) -> Optional[models.AuthSession]:
        # Sessions are read from the primary: a fresh login must be visible at once.
        return self.primary.get(models.AuthSession, sid)

    def save_session(self, sid: str, payload: dict, expire: datetime) -> models.AuthSession:
        row = self.primary.get(models.AuthSession, sid)
        if row is None:
            row = models.AuthSession(sid=sid, sess=payload, expire=expire)
            self.primary.add(row)
        else:
            row.sess = payload
            row.expire = expire
        return self._commit(row)

    def delete_session(self, sid: str) -> bool:
        result = self.primary.execute(delete(models.AuthSession).where(models.AuthSession.sid == sid))
        self.primary.commit()
        return (result.rowcount or 0) > 0

    def purge_expired_sessions(self, now: Optional[datetime] = None) -> int:
        result = self.primary.execute(
            delete(models.AuthSession).where(models.AuthSession.expire <= (now or utcnow()))
        )
        self.primary.commit()
        return result.rowcount or 0


def get_storage(
    primary: Session = Depends(get_primary_db),
    replica: Session = Depends(get_replica_db),
) -> Storage:
    return Storage(primary, replica)
