"""
Background job to reconcile group appointment seat counts

Recomputes ``current_participants`` from confirmed participant rows for
every live group appointment and fills freed seats from the waitlist.
Run periodically (e.g., via cron) or after manual data fixes.
"""

import sys
from typing import Optional
import uuid

from sqlalchemy import func
from sqlmodel import Session, select
import structlog

from bookwell.core.database import engine
from bookwell.models import (
    Appointment, AppointmentParticipant, AppointmentStatus, ParticipantStatus
)
from bookwell.services.group_capacity import promote_waitlisted
from bookwell.services.time_ranges import utcnow

logger = structlog.get_logger(__name__)


def reconcile_participant_counts(session: Session, tenant_id: Optional[uuid.UUID] = None) -> dict:
    """Fix drifted seat counts and promote waitlisted participants"""
    try:
        query = select(Appointment).where(
            Appointment.is_group_appointment == True,  # noqa: E712
            Appointment.status != AppointmentStatus.CANCELLED
        )
        if tenant_id is not None:
            query = query.where(Appointment.tenant_id == tenant_id)
        appointments = session.exec(query).all()

        if not appointments:
            logger.info("No group appointments to reconcile")
            return {"processed": 0, "corrected": 0, "promoted": 0}

        corrected = 0
        promoted = 0
        for appointment in appointments:
            confirmed = session.exec(
                select(func.count()).select_from(AppointmentParticipant).where(
                    AppointmentParticipant.appointment_id == appointment.id,
                    AppointmentParticipant.status == ParticipantStatus.CONFIRMED
                )
            ).one()

            if appointment.current_participants != confirmed:
                logger.warning(
                    f"Appointment {appointment.id} count drifted: "
                    f"{appointment.current_participants} -> {confirmed}"
                )
                appointment.current_participants = confirmed
                appointment.updated_at = utcnow()
                appointment.version += 1
                session.add(appointment)
                session.flush()
                corrected += 1

            while promote_waitlisted(session, appointment.tenant_id, appointment.id) is not None:
                promoted += 1

        session.commit()

        return {
            "processed": len(appointments),
            "corrected": corrected,
            "promoted": promoted
        }

    except Exception as e:
        session.rollback()
        logger.error(f"Error reconciling participant counts: {e}")
        raise


def main():
    """Main entry point for reconcile job"""
    logger.info("Starting participant reconcile job")

    try:
        with Session(engine) as session:
            results = reconcile_participant_counts(session)
            logger.info(f"Participant reconcile complete: {results}")

    except Exception as e:
        logger.error(f"Fatal error in reconcile job: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
