# healthpass/models.py
from sqlalchemy import Column, String, DateTime, Date, Boolean, Integer, JSON, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import relationship
import datetime
import uuid
from healthpass.db import Base

def gen_uuid():
    return str(uuid.uuid4())

def utcnow():
    """Naive UTC timestamp; every DateTime column stores naive UTC."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)

class Profile(Base):
    __tablename__ = "profiles"
    id = Column(String, primary_key=True, default=gen_uuid)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    date_of_birth = Column(Date, nullable=True)
    gender = Column(String, nullable=True)
    blood_type = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    address = Column(JSON, nullable=True)
    emergency_contact = Column(JSON, nullable=True)
    wallet_address = Column(String, nullable=True)
    wallet_verified = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    share_tokens = relationship("ShareToken", back_populates="profile")

class MedicalRecord(Base):
    __tablename__ = "medical_records"
    id = Column(String, primary_key=True, default=gen_uuid)
    patient_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    doctor_id = Column(String, nullable=True)
    record_type = Column(String, nullable=False)
    diagnosis = Column(Text, nullable=True)
    record_data = Column(JSON, default=dict)
    record_hash = Column(String, nullable=True)
    blockchain_tx_hash = Column(String, nullable=True)
    blockchain_verified = Column(Boolean, default=False)
    blockchain_timestamp = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

class Prescription(Base):
    __tablename__ = "prescriptions"
    id = Column(String, primary_key=True, default=gen_uuid)
    patient_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    doctor_id = Column(String, nullable=False)
    diagnosis = Column(Text, nullable=False)
    instructions = Column(Text, nullable=True)
    medications = Column(JSON, default=list)  # [{name, dosage, frequency}]
    prescription_date = Column(DateTime, default=utcnow)
    valid_until = Column(Date, nullable=True)
    status = Column(String, default="active")
    created_at = Column(DateTime, default=utcnow)

class Medication(Base):
    __tablename__ = "medications"
    id = Column(String, primary_key=True, default=gen_uuid)
    patient_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    prescription_id = Column(String, ForeignKey("prescriptions.id"), nullable=True)
    medicine_name = Column(String, nullable=False)
    dosage = Column(String, nullable=False)
    frequency = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    batch_number = Column(String, nullable=True)
    manufacturing_date = Column(Date, nullable=True)
    dispensed_date = Column(Date, nullable=True)
    expiry_date = Column(Date, nullable=False)
    reminder_sent = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)

class ShareToken(Base):
    __tablename__ = "qr_codes"
    id = Column(String, primary_key=True, default=gen_uuid)
    patient_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    access_level = Column(String, nullable=False, default="basic")
    valid_from = Column(DateTime, default=utcnow)
    valid_until = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True)
    usage_count = Column(Integer, default=0)
    max_usage = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    profile = relationship("Profile", back_populates="share_tokens")

class UserRole(Base):
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),)
    id = Column(String, primary_key=True, default=gen_uuid)
    user_id = Column(String, nullable=False, index=True)
    role = Column(String, nullable=False, default="patient")
    created_at = Column(DateTime, default=utcnow)

class Audit(Base):
    __tablename__ = "audit"
    event_id = Column(String, primary_key=True, default=gen_uuid)
    actor = Column(String)
    action = Column(String)
    target = Column(String)
    ts = Column(DateTime, default=utcnow)
    meta = Column(JSON, default=dict)
