import inspect
from datetime import date, timedelta

from eth_account import Account
from eth_account.messages import encode_defunct

from healthpass import main, models, qr, wallet


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy"}


def test_requests_without_session_are_rejected(client):
    assert client.get("/profiles/me").status_code == 401
    r = client.get("/profiles/me", headers={"Authorization": "Bearer nope"})
    assert r.status_code == 401
    assert r.json()["detail"] == "invalid or expired session"


def test_profile_empty_state_then_upsert(client, auth):
    headers = auth("user-1")
    r = client.get("/profiles/me", headers=headers)
    assert r.status_code == 200
    assert r.json() is None

    r = client.put("/profiles/me", json={"first_name": "Ada", "last_name": "Lovelace",
                                        "date_of_birth": "1815-12-10", "blood_type": ""},
                   headers=headers)
    assert r.status_code == 200, r.text
    assert r.json()["blood_type"] is None

    r = client.put("/profiles/me", json={"blood_type": "AB-"}, headers=headers)
    body = r.json()
    assert body["first_name"] == "Ada"
    assert body["blood_type"] == "AB-"
    assert body["date_of_birth"] == "1815-12-10"


def test_doctor_workflow(client, auth, make_profile):
    doctor = make_profile(roles=["doctor"])
    patient = make_profile(first_name="Pat")
    headers = auth(doctor.id)

    r = client.get("/patients", headers=headers)
    assert r.status_code == 200
    assert {p["id"] for p in r.json()} == {doctor.id, patient.id}

    r = client.post("/medical-records", json={
        "patient_id": patient.id,
        "record_type": "lab_result",
        "diagnosis": "anaemia",
        "record_data": {"test_name": "Hb", "value": 9.8, "unit": "g/dL"},
        "store_hash": True,
    }, headers=headers)
    assert r.status_code == 200, r.text
    record = r.json()
    assert record["doctor_id"] == doctor.id
    assert record["record_data"] == {"test_name": "Hb", "value": 9.8, "unit": "g/dL"}
    assert record["record_hash"].startswith("0x")
    assert record["blockchain_verified"] is False

    r = client.post("/prescriptions", json={
        "patient_id": patient.id,
        "diagnosis": "infection",
        "medications": "Amoxicillin, 500mg, 3 times daily\n\nIbuprofen, 200mg",
        "valid_until": "2026-12-01",
    }, headers=headers)
    assert r.status_code == 200, r.text
    assert r.json()["medications"] == [
        {"name": "Amoxicillin", "dosage": "500mg", "frequency": "3 times daily"},
        {"name": "Ibuprofen", "dosage": "200mg", "frequency": ""},
    ]
    assert r.json()["status"] == "active"

    r = client.get(f"/patients/{patient.id}/medical-records", headers=headers)
    assert [x["record_type"] for x in r.json()] == ["lab_result"]
    r = client.get(f"/patients/{patient.id}/prescriptions", headers=auth(patient.id))
    assert len(r.json()) == 1


def test_record_data_is_validated(client, auth, make_profile):
    doctor = make_profile(roles=["doctor"])
    patient = make_profile()
    headers = auth(doctor.id)

    r = client.post("/medical-records", json={"patient_id": patient.id, "record_type": "imaging",
                                              "record_data": {"findings": "clear"}}, headers=headers)
    assert r.status_code == 422

    r = client.post("/medical-records", json={"patient_id": patient.id, "record_type": "allergy",
                                              "record_data": {"substance": "penicillin", "nested": {"a": 1}}},
                    headers=headers)
    assert r.status_code == 422

    r = client.post("/medical-records", json={"patient_id": patient.id, "record_type": "allergy",
                                              "record_data": {"substance": "penicillin", "severe": True}},
                    headers=headers)
    assert r.status_code == 200
    assert list(r.json()["record_data"]) == ["severe", "substance"]


def test_clinical_endpoints_need_roles(client, auth, make_profile):
    patient = make_profile()
    stranger = make_profile()
    r = client.post("/prescriptions", json={"patient_id": patient.id, "diagnosis": "x", "medications": "a"},
                    headers=auth(patient.id))
    assert r.status_code == 403
    r = client.get(f"/patients/{patient.id}/medical-records", headers=auth(stranger.id))
    assert r.status_code == 403


def test_unknown_patient_is_not_found(client, auth, make_profile):
    doctor = make_profile(roles=["doctor"])
    r = client.post("/prescriptions", json={"patient_id": "ghost", "diagnosis": "x", "medications": "a"},
                    headers=auth(doctor.id))
    assert r.status_code == 404


def test_medications_sorted_by_expiry_with_status(client, auth, make_profile):
    pharmacist = make_profile(roles=["pharmacist"])
    patient = make_profile()
    today = date.today()
    for name, days in (("later", 40), ("soon", 3), ("gone", -2)):
        r = client.post("/medications", json={
            "patient_id": patient.id, "medicine_name": name, "dosage": "1 tab", "frequency": "daily",
            "quantity": 30, "expiry_date": (today + timedelta(days=days)).isoformat(),
        }, headers=auth(pharmacist.id))
        assert r.status_code == 200, r.text

    r = client.get(f"/patients/{patient.id}/medications", headers=auth(patient.id))
    meds = r.json()
    assert [m["medicine_name"] for m in meds] == ["gone", "soon", "later"]
    assert [m["expiry_status"] for m in meds] == ["expired", "critical", "good"]
    assert meds[1]["expiry_label"] == "3 days left"


def test_share_flow_basic(client, auth, make_profile, store):
    patient = make_profile(first_name="Ada")
    scanner = make_profile(roles=["doctor"])
    store.insert(models.MedicalRecord(patient_id=patient.id, record_type="consultation"))

    r = client.post("/share/tokens", json={"access_level": "basic"}, headers=auth(patient.id))
    assert r.status_code == 200, r.text
    token = r.json()
    assert token["is_active"] is True
    assert token["usage_count"] == 0
    assert token["access_label"] == "Basic Info"
    assert token["qr_data_url"].startswith("data:image/png;base64,")

    r = client.post("/share/resolve", json={"payload": token["payload"]}, headers=auth(scanner.id))
    assert r.status_code == 200, r.text
    view = r.json()
    assert view["profile"]["first_name"] == "Ada"
    assert view["access_level"] == "basic"
    assert view["medical_records"] is None
    assert view["prescriptions"] is None
    assert view["medications"] is None


def test_share_flow_full_and_revoke(client, auth, make_profile, store):
    patient = make_profile()
    scanner = make_profile()
    store.insert(models.MedicalRecord(patient_id=patient.id, record_type="consultation"))

    token = client.post("/share/tokens", json={"access_level": "full"}, headers=auth(patient.id)).json()
    r = client.post("/share/resolve", json={"payload": token["payload"]}, headers=auth(scanner.id))
    assert r.status_code == 200
    assert len(r.json()["medical_records"]) == 1
    assert r.json()["prescriptions"] == []

    latest = client.get("/share/tokens/latest", headers=auth(patient.id)).json()
    assert latest["id"] == token["id"]
    assert latest["usage_count"] == 1

    # only the owner can revoke
    assert client.post(f"/share/tokens/{token['id']}/revoke", headers=auth(scanner.id)).status_code == 404
    assert client.post(f"/share/tokens/{token['id']}/revoke", headers=auth(patient.id)).status_code == 200

    r = client.post("/share/resolve", json={"payload": token["payload"]}, headers=auth(scanner.id))
    assert r.status_code == 403
    assert r.json()["detail"] == "token_not_active"
    assert client.get("/share/tokens/latest", headers=auth(patient.id)).json() is None


def test_share_token_validation(client, auth, make_profile):
    patient = make_profile()
    r = client.post("/share/tokens", json={"access_level": "everything"}, headers=auth(patient.id))
    assert r.status_code == 422
    r = client.post("/share/tokens", json={"access_level": "basic"}, headers=auth("no-profile"))
    assert r.status_code == 404


def test_resolve_malformed_payload(client, auth, make_profile):
    scanner = make_profile()
    r = client.post("/share/resolve", json={"payload": "definitely not json"}, headers=auth(scanner.id))
    assert r.status_code == 400
    assert r.json()["detail"] == "payload is not valid JSON"

    out_of_range = ('{"tokenId":"t","patientId":"p","accessLevel":"basic",'
                    '"validUntil":"0001-01-01T00:00:00+01:00"}')
    r = client.post("/share/resolve", json={"payload": out_of_range}, headers=auth(scanner.id))
    assert r.status_code == 400


def test_qr_download_and_scan_upload(client, auth, make_profile):
    patient = make_profile(first_name="Ada")
    scanner = make_profile()
    token = client.post("/share/tokens", json={"access_level": "emergency"}, headers=auth(patient.id)).json()

    r = client.get(f"/share/tokens/{token['id']}/qr.png", headers=auth(patient.id))
    assert r.status_code == 200
    assert r.headers["content-type"] == "image/png"
    assert "health-qr-code.png" in r.headers["content-disposition"]
    assert qr.decode_image(r.content) == [token["payload"]]

    r = client.post("/share/scan", files={"file": ("code.png", r.content, "image/png")},
                    headers=auth(scanner.id))
    assert r.status_code == 200, r.text
    assert r.json()["access_label"] == "Emergency"
    assert r.json()["medications"] == []

    other = qr.render_png("https://example.com")
    r = client.post("/share/scan", files={"file": ("code.png", other, "image/png")}, headers=auth(scanner.id))
    assert r.status_code == 400


def test_scan_upload_runs_in_threadpool():
    # opencv decoding and the store are blocking; FastAPI only offloads plain defs
    assert not inspect.iscoroutinefunction(main.scan_share)


def test_wallet_endpoints(client, auth, make_profile):
    patient = make_profile()
    account = Account.create()
    message = client.get("/wallet/challenge", headers=auth(patient.id)).json()["message"]
    assert message == wallet.ownership_message(patient.id)

    signature = "0x" + bytes(account.sign_message(encode_defunct(text=message)).signature).hex()
    r = client.post("/wallet/verify", json={"address": account.address, "signature": signature},
                    headers=auth(patient.id))
    assert r.status_code == 200, r.text
    assert r.json()["wallet_address"] == account.address
    assert r.json()["wallet_verified"] is True

    r = client.post("/wallet/verify", json={"address": Account.create().address, "signature": signature},
                    headers=auth(patient.id))
    assert r.status_code == 400


def test_admin_role_management(client, auth, make_profile):
    admin = make_profile(roles=["admin"])
    user = make_profile(first_name="Bea")
    headers = auth(admin.id)

    r = client.post(f"/admin/users/{user.id}/roles", json={"role": "doctor"}, headers=headers)
    assert r.status_code == 200
    r = client.post(f"/admin/users/{user.id}/roles", json={"role": "doctor"}, headers=headers)
    assert r.status_code == 409
    assert r.json()["detail"] == "User already has this role"

    users = {u["id"]: u for u in client.get("/admin/users", headers=headers).json()}
    assert users[user.id]["roles"] == ["doctor"]

    r = client.delete(f"/admin/users/{user.id}/roles/pharmacist", headers=headers)
    assert r.status_code == 200
    assert r.json()["removed"] == 0
    r = client.delete(f"/admin/users/{user.id}/roles/doctor", headers=headers)
    assert r.json()["removed"] == 1

    assert client.get("/admin/users", headers=auth(user.id)).status_code == 403
    r = client.post(f"/admin/users/{user.id}/roles", json={"role": "janitor"}, headers=headers)
    assert r.status_code == 422
