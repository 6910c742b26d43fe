# healthpass/main.py
from fastapi import FastAPI, UploadFile, File, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from datetime import date, timedelta
from typing import List, Optional
import logging

from healthpass.db import init_db
from healthpass import codec, config, models, policy, qr, roles, schemas, sharing, utils, views, wallet
from healthpass.auth import SessionUser, get_current_user, get_store, require_role, user_roles
from healthpass.errors import HealthPassError, MalformedPayload, NotFound, Forbidden, ShareDenied
from healthpass.models import utcnow
from healthpass.store import Store

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("healthpass")

app = FastAPI(title="HealthPass - patient records and QR sharing")

# Initialize DB
init_db()


@app.exception_handler(HealthPassError)
async def healthpass_error_handler(request: Request, exc: HealthPassError):
    detail = exc.reason if isinstance(exc, ShareDenied) else exc.message
    return JSONResponse(status_code=exc.status_code, content={"detail": detail})


def _ensure_patient(store: Store, patient_id: str) -> models.Profile:
    profile = store.get(models.Profile, patient_id)
    if profile is None:
        raise NotFound("patient not found")
    return profile


def _ensure_can_view(store: Store, user: SessionUser, patient_id: str, allowed=("doctor",)):
    # patients always see their own data; others need a clinical role
    if user.id == patient_id:
        return
    if not user_roles(store, user.id) & set(allowed):
        raise Forbidden("not allowed to view this patient")


def _token_out(token: models.ShareToken, with_qr: bool = True) -> schemas.ShareTokenOut:
    payload = codec.encode(token)
    return schemas.ShareTokenOut.model_validate(token).model_copy(update={
        "access_label": policy.LABELS[policy.normalize_access_level(token.access_level)],
        "payload": payload,
        "qr_data_url": qr.render_data_url(payload) if with_qr else None,
    })


@app.get("/health")
def health():
    return {"status": "healthy"}


# --- Profiles
@app.get("/profiles/me", response_model=Optional[schemas.ProfileOut])
def get_my_profile(user: SessionUser = Depends(get_current_user), store: Store = Depends(get_store)):
    # a user without a profile yet gets an empty form, not an error
    return store.get(models.Profile, user.id)


@app.put("/profiles/me", response_model=schemas.ProfileOut)
def update_my_profile(payload: schemas.ProfileUpdate, user: SessionUser = Depends(get_current_user),
                      store: Store = Depends(get_store)):
    profile = store.get(models.Profile, user.id)
    fields = payload.model_dump(exclude_unset=True)
    if profile is None:
        profile = store.insert(models.Profile(id=user.id, **fields))
    else:
        profile = store.update(profile, **fields)
    logger.info("profile %s updated", user.id)
    return profile


@app.get("/patients", response_model=List[schemas.ProfileOut])
def list_patients(user: SessionUser = Depends(require_role("doctor")), store: Store = Depends(get_store)):
    return store.select(models.Profile, order_by="created_at", descending=True)


# --- Medical records
@app.post("/medical-records", response_model=schemas.MedicalRecordOut)
def create_medical_record(payload: schemas.MedicalRecordIn, user: SessionUser = Depends(require_role("doctor")),
                          store: Store = Depends(get_store)):
    _ensure_patient(store, payload.patient_id)
    now = utcnow()
    record_hash = None
    if payload.store_hash:
        record_hash = wallet.record_hash(payload.diagnosis or "", payload.record_type,
                                         payload.patient_id, now.isoformat())
    record = models.MedicalRecord(patient_id=payload.patient_id, doctor_id=user.id,
                                  record_type=payload.record_type, diagnosis=payload.diagnosis,
                                  record_data=payload.record_data, record_hash=record_hash,
                                  created_at=now)
    store.insert(record)
    logger.info("medical record %s created for %s", record.id, payload.patient_id)
    return record


@app.get("/patients/{patient_id}/medical-records", response_model=List[schemas.MedicalRecordOut])
def list_medical_records(patient_id: str, user: SessionUser = Depends(get_current_user),
                         store: Store = Depends(get_store)):
    _ensure_can_view(store, user, patient_id)
    return store.select(models.MedicalRecord, order_by="created_at", descending=True, patient_id=patient_id)


# --- Prescriptions
@app.post("/prescriptions", response_model=schemas.PrescriptionOut)
def create_prescription(payload: schemas.PrescriptionIn, user: SessionUser = Depends(require_role("doctor")),
                        store: Store = Depends(get_store)):
    _ensure_patient(store, payload.patient_id)
    prescription = models.Prescription(patient_id=payload.patient_id, doctor_id=user.id,
                                       diagnosis=payload.diagnosis, instructions=payload.instructions,
                                       valid_until=payload.valid_until,
                                       medications=[m.model_dump() for m in payload.medications])
    store.insert(prescription)
    logger.info("prescription %s created for %s", prescription.id, payload.patient_id)
    return prescription


@app.get("/patients/{patient_id}/prescriptions", response_model=List[schemas.PrescriptionOut])
def list_prescriptions(patient_id: str, user: SessionUser = Depends(get_current_user),
                       store: Store = Depends(get_store)):
    _ensure_can_view(store, user, patient_id)
    return store.select(models.Prescription, order_by="created_at", descending=True, patient_id=patient_id)


# --- Medications
@app.post("/medications", response_model=schemas.MedicationOut)
def create_medication(payload: schemas.MedicationIn,
                      user: SessionUser = Depends(require_role("doctor", "pharmacist")),
                      store: Store = Depends(get_store)):
    _ensure_patient(store, payload.patient_id)
    medication = store.insert(models.Medication(**payload.model_dump()))
    return views.medication_out(medication)


@app.get("/patients/{patient_id}/medications", response_model=List[schemas.MedicationOut])
def list_medications(patient_id: str, user: SessionUser = Depends(get_current_user),
                     store: Store = Depends(get_store)):
    _ensure_can_view(store, user, patient_id, allowed=("doctor", "pharmacist"))
    rows = store.select(models.Medication, order_by="expiry_date", patient_id=patient_id)
    today = date.today()
    return [views.medication_out(m, today) for m in rows]


# --- Sharing
@app.post("/share/tokens", response_model=schemas.ShareTokenOut)
def issue_share_token(payload: schemas.ShareTokenIn, user: SessionUser = Depends(get_current_user),
                      store: Store = Depends(get_store)):
    if policy.normalize_access_level(payload.access_level) is None:
        raise HTTPException(422, "unknown access level")
    validity = timedelta(days=payload.validity_days) if payload.validity_days else None
    token = sharing.issue_share_token(store, user.id, payload.access_level,
                                      validity=validity, max_usage=payload.max_usage)
    return _token_out(token)


@app.get("/share/tokens/latest", response_model=Optional[schemas.ShareTokenOut])
def latest_share_token(user: SessionUser = Depends(get_current_user), store: Store = Depends(get_store)):
    token = sharing.latest_active_token(store, user.id)
    return _token_out(token) if token else None


def _owned_token(store: Store, token_id: str, user: SessionUser) -> models.ShareToken:
    token = store.get(models.ShareToken, token_id)
    if token is None or token.patient_id != user.id:
        raise NotFound("share token not found")
    return token


@app.get("/share/tokens/{token_id}/qr.png")
def download_share_qr(token_id: str, user: SessionUser = Depends(get_current_user),
                      store: Store = Depends(get_store)):
    token = _owned_token(store, token_id, user)
    png = qr.render_png(codec.encode(token))
    return Response(content=png, media_type="image/png",
                    headers={"Content-Disposition": f'attachment; filename="{qr.DOWNLOAD_FILENAME}"'})


@app.post("/share/tokens/{token_id}/revoke")
def revoke_share_token(token_id: str, user: SessionUser = Depends(get_current_user),
                       store: Store = Depends(get_store)):
    _owned_token(store, token_id, user)
    sharing.deactivate_token(store, token_id, actor=user.id)
    return JSONResponse({"ok": True})


@app.post("/share/resolve", response_model=schemas.PatientViewOut)
def resolve_share(payload: schemas.ResolveIn, user: SessionUser = Depends(get_current_user),
                  store: Store = Depends(get_store)):
    logger.info("resolve requested by %s (payload %s)", user.id, utils.hash_value(payload.payload)[:12])
    view = sharing.resolve_share(store, payload.payload, requester=user.id)
    return views.patient_view_out(view)


@app.post("/share/scan", response_model=schemas.PatientViewOut)
def scan_share(file: UploadFile = File(...), user: SessionUser = Depends(get_current_user),
               store: Store = Depends(get_store)):
    contents = file.file.read()
    for text in qr.decode_image(contents):
        try:
            codec.decode(text)
        except MalformedPayload:
            logger.info("skipping non-share QR code in upload from %s", user.id)
            continue
        return views.patient_view_out(sharing.resolve_share(store, text, requester=user.id))
    raise MalformedPayload("no share QR code found in image")


# --- Wallet
@app.get("/wallet/challenge", response_model=schemas.WalletChallengeOut)
def wallet_challenge(user: SessionUser = Depends(get_current_user)):
    return {"message": wallet.ownership_message(user.id)}


@app.post("/wallet/verify", response_model=schemas.ProfileOut)
def wallet_verify(payload: schemas.WalletVerifyIn, user: SessionUser = Depends(get_current_user),
                  store: Store = Depends(get_store)):
    return wallet.verify_wallet(store, user.id, payload.address, payload.signature)


# --- Admin
@app.get("/admin/users", response_model=List[schemas.UserWithRoles])
def admin_list_users(user: SessionUser = Depends(require_role("admin")), store: Store = Depends(get_store)):
    return roles.list_users_with_roles(store)


@app.post("/admin/users/{user_id}/roles")
def admin_add_role(user_id: str, payload: schemas.RoleIn, user: SessionUser = Depends(require_role("admin")),
                   store: Store = Depends(get_store)):
    if payload.role not in policy.ROLES:
        raise HTTPException(422, "unknown role")
    roles.add_role(store, user_id, payload.role, actor=user.id)
    return {"ok": True, "message": f"Role {payload.role} added successfully"}


@app.delete("/admin/users/{user_id}/roles/{role}")
def admin_remove_role(user_id: str, role: str, user: SessionUser = Depends(require_role("admin")),
                      store: Store = Depends(get_store)):
    if role not in policy.ROLES:
        raise HTTPException(422, "unknown role")
    removed = roles.remove_role(store, user_id, role, actor=user.id)
    return {"ok": True, "removed": removed}
