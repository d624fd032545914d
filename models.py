"""
Database Models
SQLAlchemy ORM models for DoseRight
"""

from sqlalchemy import Column, Integer, String, Boolean, Float, DateTime, ForeignKey, Text, Enum, Index, UniqueConstraint, JSON, Table, text
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum as PyEnum

from database import Base


# ==================== ENUMS ====================

class UserRole(str, PyEnum):
    """Role determines which dashboard and endpoints apply"""
    PATIENT = "patient"
    CARETAKER = "caretaker"
    DOCTOR = "doctor"
    ADMIN = "admin"


class DoseStatus(str, PyEnum):
    """Lifecycle status of one scheduled dose"""
    PENDING = "pending"
    DISPENSED = "dispensed"
    TAKEN = "taken"
    MISSED = "missed"
    SKIPPED = "skipped"
    ERROR = "error"


class IllnessStatus(str, PyEnum):
    ONGOING = "ongoing"
    UNDER_CONTROL = "under_control"
    RESOLVED = "resolved"


# ==================== ASSOCIATIONS ====================

patient_doctors = Table(
    "patient_doctors",
    Base.metadata,
    Column("patient_id", Integer, ForeignKey("patients.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


# ==================== MODELS ====================

class User(Base):
    """Account for any role"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    phone = Column(String(20))

    role = Column(Enum(UserRole), nullable=False, default=UserRole.PATIENT, index=True)
    password_hash = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    patient = relationship("Patient", back_populates="user", uselist=False)


class Patient(Base):
    """Patient medical profile, one per User"""
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    device_id = Column(Integer, ForeignKey("devices.id"), nullable=True)

    # Medical profile
    illnesses = Column(JSON, default=list)  # [{"name": ..., "status": ...}]
    allergies = Column(JSON, default=list)
    other_notes = Column(Text, default="")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="patient")
    device = relationship("Device", back_populates="patient")
    caretakers = relationship("CaretakerLink", back_populates="patient", cascade="all, delete-orphan")
    doctors = relationship("User", secondary=patient_doctors)
    medication_plans = relationship("MedicationPlan", back_populates="patient")
    dose_logs = relationship("DoseLog", back_populates="patient")

    @property
    def display_name(self) -> str:
        return self.user.name if self.user and self.user.name else "Patient"

    @property
    def primary_diagnosis(self) -> str:
        illnesses = self.illnesses or []
        if illnesses and illnesses[0].get("name"):
            return illnesses[0]["name"]
        return "—"


class CaretakerLink(Base):
    """Caretaker access to a patient, effective once approved"""
    __tablename__ = "caretaker_links"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    relation = Column(String(100))  # "Daughter", "Nurse", ...
    approved = Column(Boolean, default=False)
    requested_at = Column(DateTime, default=datetime.utcnow)
    approved_at = Column(DateTime)

    # Relationships
    patient = relationship("Patient", back_populates="caretakers")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("patient_id", "user_id", name="uq_caretaker_link"),
    )


class Device(Base):
    """Pill dispenser identified by its hardware id"""
    __tablename__ = "devices"

    id = Column(Integer, primary_key=True, index=True)
    device_id = Column(String(100), unique=True, index=True, nullable=False)
    name = Column(String(100), default="Device")

    slot_count = Column(Integer, default=4)
    timezone = Column(String(50), default="UTC")  # informational only

    # Telemetry
    battery_level = Column(Integer)
    wifi_strength = Column(Integer)
    wifi_connected = Column(Boolean, default=False)
    last_status = Column(String(20), default="offline")
    last_heartbeat_at = Column(DateTime)
    firmware_version = Column(String(50))
    last_error = Column(Text)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    patient = relationship("Patient", back_populates="device", uselist=False)
    medication_plans = relationship("MedicationPlan", back_populates="device")


class MedicationPlan(Base):
    """One prescribed medicine loaded in one dispenser slot"""
    __tablename__ = "medication_plans"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    device_id = Column(Integer, ForeignKey("devices.id"), nullable=False)
    slot_index = Column(Integer, nullable=False)  # 1-based

    # Drug
    medication_name = Column(String(255), nullable=False)
    medication_strength = Column(String(50))
    medication_form = Column(String(50), default="tablet")
    dosage_per_intake = Column(Float, nullable=False)

    # Recurrence
    times = Column(JSON, default=list)         # ["08:00", "20:00"]
    days_of_week = Column(JSON, default=list)  # 1=Monday .. 7=Sunday

    # Validity
    active = Column(Boolean, default=True)
    start_date = Column(DateTime, nullable=False, default=datetime.now)
    end_date = Column(DateTime)

    # Stock
    stock_total_loaded = Column(Integer, default=0)
    stock_remaining = Column(Integer, default=0)
    stock_last_refilled_at = Column(DateTime)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    patient = relationship("Patient", back_populates="medication_plans")
    device = relationship("Device", back_populates="medication_plans")
    dose_logs = relationship("DoseLog", back_populates="medication_plan")

    __table_args__ = (
        Index("ix_medication_plans_patient_active", "patient_id", "active"),
        Index(
            "uq_medication_plans_active_slot",
            "patient_id",
            "slot_index",
            unique=True,
            sqlite_where=text("active = 1"),
            postgresql_where=text("active"),
        ),
    )

    @property
    def stock(self) -> dict:
        return {
            "total_loaded": self.stock_total_loaded or 0,
            "remaining": self.stock_remaining or 0,
            "last_refilled_at": self.stock_last_refilled_at,
        }

    @property
    def display_name(self) -> str:
        return f"{self.medication_name} {self.medication_strength or ''}".strip()


class DoseLog(Base):
    """One concrete occurrence of a plan's schedule and its outcome"""
    __tablename__ = "dose_logs"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    device_id = Column(Integer, ForeignKey("devices.id"), nullable=False)
    medication_plan_id = Column(Integer, ForeignKey("medication_plans.id"), nullable=False)
    slot_index = Column(Integer, nullable=False)

    scheduled_at = Column(DateTime, nullable=False)

    status = Column(Enum(DoseStatus), nullable=False, default=DoseStatus.PENDING)
    dispensed_at = Column(DateTime)
    taken_at = Column(DateTime)
    missed_reason = Column(Text)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    patient = relationship("Patient", back_populates="dose_logs")
    medication_plan = relationship("MedicationPlan", back_populates="dose_logs")
    device = relationship("Device")

    __table_args__ = (
        UniqueConstraint("medication_plan_id", "scheduled_at", name="uq_dose_logs_plan_scheduled"),
        Index("ix_dose_logs_patient_scheduled", "patient_id", "scheduled_at"),
        Index("ix_dose_logs_device_status", "device_id", "status", "scheduled_at"),
    )
