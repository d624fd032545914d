"""
Patient Service
Business logic for patient profiles, devices and care-team links
"""

import logging
from typing import List, Optional
from datetime import datetime
from sqlalchemy.orm import Session

from config import dose_config
from database import get_db_context
import models
from services.errors import NotFoundError, ValidationFailed


logger = logging.getLogger(__name__)


def _new_patient(user_id: int) -> models.Patient:
    return models.Patient(
        user_id=user_id,
        illnesses=[],
        allergies=[],
        other_notes="",
    )


class PatientService:
    """
    Service for patient-related operations
    """

    def find_by_user(self, user_id: int, session: Session) -> Optional[models.Patient]:
        return session.query(models.Patient).filter(
            models.Patient.user_id == user_id
        ).first()

    def require_by_user(self, user_id: int, session: Session) -> models.Patient:
        """Patient profile of the caller, 404 when not yet created"""
        patient = self.find_by_user(user_id, session)
        if not patient:
            raise NotFoundError("Patient profile not found")
        return patient

    def find_by_device(self, device: models.Device, session: Session) -> Optional[models.Patient]:
        return session.query(models.Patient).filter(
            models.Patient.device_id == device.id
        ).first()

    def require_device(self, device_id: str, session: Session) -> models.Device:
        """Look up a dispenser by its hardware id"""
        if not device_id or not device_id.strip():
            raise ValidationFailed("deviceId is required")
        device = session.query(models.Device).filter(
            models.Device.device_id == device_id.strip()
        ).first()
        if not device:
            raise NotFoundError("Device not found")
        return device

    async def update_profile(
        self,
        user: models.User,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        allergies: Optional[List[str]] = None,
        illnesses: Optional[List[str]] = None,
        other_notes: Optional[str] = None,
        db: Optional[Session] = None
    ) -> models.User:
        """
        Update user contact details and the medical profile.

        The patient profile is created on first update, which is how freshly
        registered patients complete their details.
        """
        def _update(session: Session) -> models.User:
            if name:
                user.name = name
            if phone is not None:
                user.phone = phone

            profile_touched = any(v is not None for v in (allergies, illnesses, other_notes))
            if profile_touched:
                patient = self.find_by_user(user.id, session)
                if not patient:
                    patient = _new_patient(user.id)
                    session.add(patient)

                if allergies is not None:
                    patient.allergies = list(allergies)
                if illnesses is not None:
                    patient.illnesses = [
                        {"name": illness, "status": models.IllnessStatus.ONGOING.value}
                        for illness in illnesses
                    ]
                if other_notes is not None:
                    patient.other_notes = other_notes

            session.commit()
            session.refresh(user)
            logger.info(f"Updated profile for user {user.id}")
            return user

        if db:
            return _update(db)

        with get_db_context() as session:
            return _update(session)

    async def link_device(
        self,
        user: models.User,
        device_id: str,
        timezone: Optional[str] = None,
        slot_count: Optional[int] = None,
        db: Optional[Session] = None
    ) -> models.Device:
        """
        Find or create a dispenser and attach it to the caller's patient profile.
        Creates the patient profile when missing.
        """
        def _link(session: Session) -> models.Device:
            hardware_id = (device_id or "").strip()
            if not hardware_id:
                raise ValidationFailed("Device ID is required and must be a valid string")

            patient = self.find_by_user(user.id, session)
            if not patient:
                patient = _new_patient(user.id)
                session.add(patient)
                session.flush()

            device = session.query(models.Device).filter(
                models.Device.device_id == hardware_id
            ).first()

            if not device:
                device = models.Device(
                    device_id=hardware_id,
                    timezone=timezone or dose_config.DEFAULT_TIMEZONE,
                    slot_count=slot_count or dose_config.DEFAULT_SLOT_COUNT,
                    battery_level=100,
                    wifi_connected=False,
                )
                session.add(device)
                session.flush()
            else:
                owner = self.find_by_device(device, session)
                if owner and owner.id != patient.id:
                    # One dispenser serves one patient; steal it from the previous owner
                    owner.device_id = None

            patient.device_id = device.id
            session.commit()
            session.refresh(device)

            logger.info(f"Linked device {device.device_id} to patient {patient.id}")
            return device

        if db:
            return _link(db)

        with get_db_context() as session:
            return _link(session)

    async def add_caretaker(
        self,
        user: models.User,
        caretaker_email: str,
        relation: Optional[str] = None,
        db: Optional[Session] = None
    ) -> models.CaretakerLink:
        """Request caretaker access for another user; starts unapproved"""
        def _add(session: Session) -> models.CaretakerLink:
            patient = self.require_by_user(user.id, session)
            caretaker = session.query(models.User).filter(
                models.User.email == caretaker_email
            ).first()
            if not caretaker:
                raise NotFoundError("Caretaker not found")
            if caretaker.role != models.UserRole.CARETAKER:
                raise ValidationFailed("User is not a caretaker")

            link = session.query(models.CaretakerLink).filter(
                models.CaretakerLink.patient_id == patient.id,
                models.CaretakerLink.user_id == caretaker.id
            ).first()
            if not link:
                link = models.CaretakerLink(
                    patient_id=patient.id,
                    user_id=caretaker.id,
                    relation=relation,
                    approved=False,
                    requested_at=datetime.utcnow(),
                )
                session.add(link)
            elif relation is not None:
                link.relation = relation

            session.commit()
            session.refresh(link)
            logger.info(f"Caretaker {caretaker.id} requested for patient {patient.id}")
            return link

        if db:
            return _add(db)

        with get_db_context() as session:
            return _add(session)

    async def approve_caretaker(
        self,
        user: models.User,
        caretaker_user_id: int,
        db: Optional[Session] = None
    ) -> models.CaretakerLink:
        """Patient approves a pending caretaker link"""
        def _approve(session: Session) -> models.CaretakerLink:
            patient = self.require_by_user(user.id, session)
            link = session.query(models.CaretakerLink).filter(
                models.CaretakerLink.patient_id == patient.id,
                models.CaretakerLink.user_id == caretaker_user_id
            ).first()
            if not link:
                raise NotFoundError("Caretaker link not found")

            if not link.approved:
                link.approved = True
                link.approved_at = datetime.utcnow()
                session.commit()
                session.refresh(link)
                logger.info(f"Caretaker {caretaker_user_id} approved for patient {patient.id}")
            return link

        if db:
            return _approve(db)

        with get_db_context() as session:
            return _approve(session)

    async def add_doctor(
        self,
        user: models.User,
        doctor_email: str,
        db: Optional[Session] = None
    ) -> models.Patient:
        """Attach a doctor to the caller's patient profile"""
        def _add(session: Session) -> models.Patient:
            patient = self.require_by_user(user.id, session)
            doctor = session.query(models.User).filter(
                models.User.email == doctor_email
            ).first()
            if not doctor:
                raise NotFoundError("Doctor not found")
            if doctor.role != models.UserRole.DOCTOR:
                raise ValidationFailed("User is not a doctor")

            if doctor not in patient.doctors:
                patient.doctors.append(doctor)
                session.commit()
                session.refresh(patient)
                logger.info(f"Doctor {doctor.id} attached to patient {patient.id}")
            return patient

        if db:
            return _add(db)

        with get_db_context() as session:
            return _add(session)

    async def get_device_profile(
        self,
        device_id: str,
        db: Optional[Session] = None
    ) -> dict:
        """Read-only device and patient profile served to the dispenser"""
        def _get(session: Session) -> dict:
            device = self.require_device(device_id, session)
            patient = self.find_by_device(device, session)
            if not patient:
                raise NotFoundError("Patient not found")

            caretaker = next((c for c in patient.caretakers if c.approved), None)
            return {
                "success": True,
                "device": {
                    "device_id": device.device_id,
                    "name": device.name or "Device",
                    "status": device.last_status or "offline",
                    "battery_level": device.battery_level,
                    "wifi_strength": device.wifi_strength,
                    "last_heartbeat": device.last_heartbeat_at.isoformat() if device.last_heartbeat_at else None,
                },
                "patient": {
                    "display_name": patient.display_name,
                    "timezone": device.timezone or dose_config.DEFAULT_TIMEZONE,
                    "medical_profile": {
                        "illnesses": [i.get("name") for i in (patient.illnesses or [])],
                        "allergies": list(patient.allergies or []),
                        "notes": patient.other_notes or "",
                    },
                },
                "support": {
                    "caretaker": {
                        "name": caretaker.user.name if caretaker.user else "Caretaker",
                        "relationship": caretaker.relation or "Caretaker",
                    } if caretaker else None,
                },
                "meta": {
                    "synced_at": datetime.utcnow().isoformat(),
                    "api_version": "1.0",
                },
            }

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)


# Singleton instance
patient_service = PatientService()
