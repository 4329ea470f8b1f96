"""Payment state machine and the job bridge."""
import pytest
from sqlalchemy import update

from tradiepay.models import EscrowPayment, JobStatus, PaymentStatus
from tradiepay.services import payment_state

ALLOWED = {
    (PaymentStatus.PENDING, PaymentStatus.HELD),
    (PaymentStatus.PENDING, PaymentStatus.FAILED),
    (PaymentStatus.PENDING, PaymentStatus.REFUNDED),
    (PaymentStatus.HELD, PaymentStatus.COMPLETED),
    (PaymentStatus.HELD, PaymentStatus.REFUNDED),
}


@pytest.mark.parametrize("current", list(PaymentStatus))
@pytest.mark.parametrize("target", list(PaymentStatus))
def test_transition_table(current, target):
    assert payment_state.can_transition(current, target) is ((current, target) in ALLOWED)


def test_terminal_statuses():
    assert payment_state.TERMINAL_STATUSES == {
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
        PaymentStatus.REFUNDED,
    }


def test_transition_updates_row_and_instance(db_session, funded_setup, make_payment):
    _, _, job = funded_setup()
    payment = make_payment(job)

    assert payment_state.transition_payment(db_session, payment, PaymentStatus.HELD) is True
    db_session.commit()
    assert payment.status == PaymentStatus.HELD


def test_disallowed_edge_leaves_row_alone(db_session, funded_setup, make_payment):
    _, _, job = funded_setup()
    payment = make_payment(job, status=PaymentStatus.REFUNDED)

    assert payment_state.transition_payment(db_session, payment, PaymentStatus.HELD) is False
    db_session.refresh(payment)
    assert payment.status == PaymentStatus.REFUNDED


def test_stale_observation_loses_the_race(db_session, funded_setup, make_payment):
    _, _, job = funded_setup()
    payment = make_payment(job)
    # Another writer fails the payment behind this session's back.
    db_session.execute(
        update(EscrowPayment)
        .where(EscrowPayment.id == payment.id)
        .values(status=PaymentStatus.FAILED)
        .execution_options(synchronize_session=False)
    )

    assert payment.status == PaymentStatus.PENDING
    assert payment_state.transition_payment(db_session, payment, PaymentStatus.HELD) is False
    db_session.refresh(payment)
    assert payment.status == PaymentStatus.FAILED


@pytest.mark.parametrize(
    "job_status, expected",
    [
        (JobStatus.ASSIGNED, JobStatus.PAID),
        (JobStatus.OPEN, JobStatus.OPEN),
        (JobStatus.PAID, JobStatus.PAID),
        (JobStatus.CANCELLED, JobStatus.CANCELLED),
    ],
)
def test_on_payment_held_only_moves_assigned_jobs(db_session, make_user, make_job, job_status, expected):
    tradie = make_user()
    job = make_job(tradie, status=job_status)

    moved = payment_state.on_payment_held(db_session, job.id)
    db_session.commit()
    db_session.refresh(job)

    assert moved is (job_status == JobStatus.ASSIGNED)
    assert job.status == expected
