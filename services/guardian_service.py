"""
Guardian Service
Read-only lookup of the guardians who should hear about a patient's missed doses
"""

from dataclasses import dataclass
from typing import List, Optional
from sqlalchemy.orm import Session, aliased

import models
from models import LinkStatus


@dataclass(frozen=True)
class GuardianContact:
    guardian_id: int
    name: str
    email: Optional[str]


def active_guardians(session: Session, patient_id: int) -> List[GuardianContact]:
    """Guardians with an active link to the patient; pending and rejected links are ignored."""
    guardian = aliased(models.User)
    rows = (
        session.query(guardian.id, guardian.name, guardian.email)
        .join(models.GuardianLink, models.GuardianLink.guardian_id == guardian.id)
        .filter(
            models.GuardianLink.patient_id == patient_id,
            models.GuardianLink.status == LinkStatus.ACTIVE,
            guardian.is_active.is_(True)
        )
        .order_by(guardian.id)
        .all()
    )
    return [GuardianContact(guardian_id=r[0], name=r[1], email=r[2]) for r in rows]
