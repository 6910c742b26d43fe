# healthpass/views.py
from datetime import date
from typing import Optional

from healthpass import models, schemas
from healthpass.expiry import classify_expiry
from healthpass.sharing import PatientView


def medication_out(row: models.Medication, today: Optional[date] = None) -> schemas.MedicationOut:
    status = classify_expiry(row.expiry_date, today)
    return schemas.MedicationOut.model_validate(row).model_copy(update={
        "expiry_status": status.status,
        "expiry_label": status.label,
        "days_until_expiry": status.days,
    })


def patient_view_out(view: PatientView, today: Optional[date] = None) -> schemas.PatientViewOut:
    def listed(rows, schema):
        return None if rows is None else [schema.model_validate(r) for r in rows]

    return schemas.PatientViewOut(
        access_level=view.access_level,
        access_label=view.access_label,
        profile=schemas.ProfileOut.model_validate(view.profile),
        medical_records=listed(view.medical_records, schemas.MedicalRecordOut),
        prescriptions=listed(view.prescriptions, schemas.PrescriptionOut),
        medications=None if view.medications is None else [medication_out(m, today) for m in view.medications],
        errors=view.errors,
    )
