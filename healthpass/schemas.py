# healthpass/schemas.py
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from typing import Any, Dict, List, Optional, Union

Scalar = Union[str, int, float, bool, None]


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# --- share payload (what the QR code carries)

class SharePayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    token_id: str
    patient_id: str
    access_level: str
    valid_until: datetime
    version: int = 1


# --- profiles

class ProfileUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    blood_type: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[Dict[str, Scalar]] = None
    emergency_contact: Optional[Dict[str, Scalar]] = None

    @field_validator("gender", "blood_type", "phone", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        # cleared form fields arrive as empty strings
        if isinstance(v, str) and not v.strip():
            return None
        return v


class ProfileOut(ORMModel):
    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    blood_type: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[Dict[str, Any]] = None
    emergency_contact: Optional[Dict[str, Any]] = None
    wallet_address: Optional[str] = None
    wallet_verified: Optional[bool] = False
    created_at: Optional[datetime] = None


# --- medical records
# record_data is one of the known category schemas below; any other
# record_type takes a flat mapping of string to scalar.

class _RecordData(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ConsultationData(_RecordData):
    chief_complaint: Optional[str] = None
    notes: Optional[str] = None
    follow_up: Optional[date] = None


class LabResultData(_RecordData):
    test_name: str
    value: Union[float, str]
    unit: Optional[str] = None
    reference_range: Optional[str] = None


class ImagingData(_RecordData):
    modality: str
    body_part: Optional[str] = None
    findings: Optional[str] = None


class SurgeryData(_RecordData):
    procedure: str
    surgeon: Optional[str] = None
    outcome: Optional[str] = None


class VaccinationData(_RecordData):
    vaccine: str
    dose_number: Optional[int] = None
    lot_number: Optional[str] = None


RECORD_SCHEMAS = {
    "consultation": ConsultationData,
    "lab_result": LabResultData,
    "imaging": ImagingData,
    "surgery": SurgeryData,
    "vaccination": VaccinationData,
}


def validate_record_data(record_type: str, data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Check record_data against its category schema and return the stored form."""
    data = data or {}
    schema = RECORD_SCHEMAS.get(record_type)
    if schema is not None:
        try:
            return schema.model_validate(data).model_dump(mode="json", exclude_none=True)
        except ValidationError as e:
            raise ValueError(f"invalid {record_type} record_data: {e.error_count()} error(s)") from e
    for key, value in data.items():
        if value is not None and not isinstance(value, (str, int, float, bool)):
            raise ValueError(f"record_data[{key!r}] must be a scalar")
    return {key: data[key] for key in sorted(data)}


class MedicalRecordIn(BaseModel):
    patient_id: str
    record_type: str = Field(min_length=1)
    diagnosis: Optional[str] = None
    record_data: Optional[Dict[str, Any]] = None
    store_hash: bool = False

    @model_validator(mode="after")
    def check_record_data(self):
        self.record_data = validate_record_data(self.record_type, self.record_data)
        return self


class MedicalRecordOut(ORMModel):
    id: str
    patient_id: str
    doctor_id: Optional[str] = None
    record_type: str
    diagnosis: Optional[str] = None
    record_data: Optional[Dict[str, Any]] = None
    record_hash: Optional[str] = None
    blockchain_tx_hash: Optional[str] = None
    blockchain_verified: Optional[bool] = False
    blockchain_timestamp: Optional[datetime] = None
    created_at: Optional[datetime] = None


# --- prescriptions

class PrescribedMedication(BaseModel):
    name: str
    dosage: str = ""
    frequency: str = ""


def parse_medication_lines(text: str) -> List[PrescribedMedication]:
    """One medication per line: "name, dosage, frequency"."""
    meds = []
    for line in text.splitlines():
        if not line.strip():
            continue
        parts = [p.strip() for p in line.split(",")]
        parts += [""] * (3 - len(parts))
        meds.append(PrescribedMedication(name=parts[0], dosage=parts[1], frequency=parts[2]))
    return meds


class PrescriptionIn(BaseModel):
    patient_id: str
    diagnosis: str = Field(min_length=1)
    instructions: Optional[str] = None
    valid_until: Optional[date] = None
    medications: List[PrescribedMedication]

    @field_validator("medications", mode="before")
    @classmethod
    def split_lines(cls, v):
        if isinstance(v, str):
            return parse_medication_lines(v)
        return v

    @field_validator("medications")
    @classmethod
    def not_empty(cls, v):
        if not v:
            raise ValueError("at least one medication is required")
        return v


class PrescriptionOut(ORMModel):
    id: str
    patient_id: str
    doctor_id: str
    diagnosis: str
    instructions: Optional[str] = None
    medications: List[Dict[str, Any]] = []
    prescription_date: Optional[datetime] = None
    valid_until: Optional[date] = None
    status: Optional[str] = None
    created_at: Optional[datetime] = None


# --- medications

class MedicationIn(BaseModel):
    patient_id: str
    prescription_id: Optional[str] = None
    medicine_name: str = Field(min_length=1)
    dosage: str
    frequency: str
    quantity: int = Field(gt=0)
    batch_number: Optional[str] = None
    manufacturing_date: Optional[date] = None
    dispensed_date: Optional[date] = None
    expiry_date: date


class MedicationOut(ORMModel):
    id: str
    patient_id: str
    prescription_id: Optional[str] = None
    medicine_name: str
    dosage: str
    frequency: str
    quantity: int
    batch_number: Optional[str] = None
    manufacturing_date: Optional[date] = None
    dispensed_date: Optional[date] = None
    expiry_date: date
    reminder_sent: Optional[bool] = False
    created_at: Optional[datetime] = None
    expiry_status: Optional[str] = None
    expiry_label: Optional[str] = None
    days_until_expiry: Optional[int] = None


# --- sharing

class ShareTokenIn(BaseModel):
    access_level: str = "basic"
    validity_days: Optional[int] = Field(default=None, gt=0)
    max_usage: Optional[int] = Field(default=None, gt=0)


class ShareTokenOut(ORMModel):
    id: str
    patient_id: str
    access_level: str
    access_label: Optional[str] = None
    valid_from: Optional[datetime] = None
    valid_until: datetime
    is_active: bool
    usage_count: int = 0
    max_usage: Optional[int] = None
    payload: Optional[str] = None
    qr_data_url: Optional[str] = None


class ResolveIn(BaseModel):
    payload: str


class PatientViewOut(BaseModel):
    access_level: str
    access_label: str
    profile: ProfileOut
    medical_records: Optional[List[MedicalRecordOut]] = None
    prescriptions: Optional[List[PrescriptionOut]] = None
    medications: Optional[List[MedicationOut]] = None
    errors: List[str] = []


# --- wallet

class WalletChallengeOut(BaseModel):
    message: str


class WalletVerifyIn(BaseModel):
    address: str
    signature: str


# --- admin

class RoleIn(BaseModel):
    role: str


class UserWithRoles(BaseModel):
    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    roles: List[str] = []
