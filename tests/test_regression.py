from datetime import datetime
from decimal import Decimal

from portal import schemas


def test_amount_rounding_regression(storage, create_user):
    # Guard against regressions: 2-decimal rounding half up
    create_user("dana")
    invoice = storage.create_invoice(
        schemas.InvoiceCreate(user_id="dana", amount=Decimal("2.675"), description="Support", due_date=datetime(2030, 1, 1))
    )
    assert str(invoice.amount) == "2.68"  # 2.675 rounds to 2.68 with HALF_UP


def test_update_invoice_rounds_amount(storage, create_user):
    create_user("dana")
    invoice = storage.create_invoice(
        schemas.InvoiceCreate(user_id="dana", amount=Decimal("10"), description="Support", due_date=datetime(2030, 1, 1))
    )
    updated = storage.update_invoice(invoice.id, schemas.InvoiceUpdate(amount=Decimal("0.005")))
    assert updated.amount == Decimal("0.01")


def test_timezone_aware_schedule_is_stored_as_utc():
    data = schemas.AppointmentCreate.model_validate(
        {"title": "Kickoff", "serviceType": "devops", "scheduledAt": "2030-05-01T12:00:00+02:00"}
    )
    assert data.scheduled_at == datetime(2030, 5, 1, 10, 0)
    assert data.scheduled_at.tzinfo is None
