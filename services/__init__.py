"""
Services Module
Business logic layer for the DoseRight backend
"""

from services.auth_service import AuthService, auth_service
from services.patient_service import PatientService, patient_service
from services.medication_service import MedicationService, medication_service
from services.dose_service import DoseService, dose_service
from services.adherence_service import AdherenceService, adherence_service
from services.overview_service import OverviewService, overview_service


__all__ = [
    # Service classes
    "AuthService",
    "PatientService",
    "MedicationService",
    "DoseService",
    "AdherenceService",
    "OverviewService",
    # Singleton instances
    "auth_service",
    "patient_service",
    "medication_service",
    "dose_service",
    "adherence_service",
    "overview_service",
]
