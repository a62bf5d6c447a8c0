def _payload(shop, day, start="09:00:00", phone="555-201-0001", service_ids=None, **extra):
    payload = {
        "phone": phone,
        "first_name": "Jamie",
        "last_name": "Ortiz",
        "email": "jamie@example.com",
        "vehicle": {"year": 2018, "make": "Toyota", "model": "Camry"},
        "service_ids": service_ids or [shop.oil_change],
        "scheduled_date": day.isoformat(),
        "scheduled_time": start,
    }
    payload.update(extra)
    return payload


def test_create_and_fetch_appointment(client, shop, open_day):
    response = client.post("/appointments", json=_payload(shop, open_day, service_ids=[shop.oil_change, shop.brake_inspection]))

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "scheduled"
    assert body["display_status"] == "scheduled"
    assert body["bay_id"] == shop.bay_1
    assert body["technician_id"] == shop.senior
    assert body["duration_minutes"] == 65
    assert body["quoted_total"] == "138.99"
    assert [line["service_name"] for line in body["services"]] == ["Oil Change", "Brake Inspection"]
    assert body["confirmation_sent_at"] is not None

    fetched = client.get(f"/appointments/{body['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["scheduled_time"] == "09:00:00"

    grid = client.get(f"/availability/day/{open_day.isoformat()}").json()
    assert grid["total_booked"] == 3
    bay_1 = next(row for row in grid["bays"] if row["bay_id"] == shop.bay_1)
    assert [slot["start_time"] for slot in bay_1["slots"] if not slot["is_available"]] == [
        "09:00:00",
        "09:30:00",
        "10:00:00",
    ]


def test_idempotency_key_returns_the_same_appointment(client, shop, open_day):
    headers = {"Idempotency-Key": "dashboard-42"}
    first = client.post("/appointments", json=_payload(shop, open_day), headers=headers)
    second = client.post("/appointments", json=_payload(shop, open_day), headers=headers)

    assert first.status_code == 201
    assert second.status_code == 201
    assert second.json()["id"] == first.json()["id"]
    assert len(client.get("/appointments").json()) == 1


def test_blank_idempotency_key_is_rejected(client, shop, open_day):
    response = client.post("/appointments", json=_payload(shop, open_day), headers={"Idempotency-Key": "   "})
    assert response.status_code == 400


def test_full_bays_return_conflict(client, shop, open_day):
    for index in range(2):
        assert client.post("/appointments", json=_payload(shop, open_day, phone=f"555-201-001{index}")).status_code == 201

    response = client.post("/appointments", json=_payload(shop, open_day, phone="555-201-0019"))

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "http_409"


def test_new_customer_without_details_gets_missing_info(client, shop, open_day):
    payload = _payload(shop, open_day)
    del payload["vehicle"]
    del payload["first_name"]

    response = client.post("/appointments", json=payload)

    assert response.status_code == 422
    assert response.json()["detail"]["missing_info"] == ["name", "vehicle"]


def test_phone_or_customer_id_is_required(client, shop, open_day):
    payload = _payload(shop, open_day)
    del payload["phone"]

    assert client.post("/appointments", json=payload).status_code == 422


def test_cancel_frees_the_bay(client, shop, open_day):
    created = client.post("/appointments", json=_payload(shop, open_day)).json()

    response = client.patch(f"/appointments/{created['id']}/cancel")

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert response.json()["cancelled_at"] is not None
    grid = client.get(f"/availability/day/{open_day.isoformat()}").json()
    assert grid["total_booked"] == 0
    assert client.patch(f"/appointments/{created['id']}/cancel").status_code == 200

    cancelled = client.get("/appointments", params={"status": "cancelled"}).json()
    assert [item["id"] for item in cancelled] == [created["id"]]


def test_reschedule_and_add_services(client, shop, open_day):
    created = client.post("/appointments", json=_payload(shop, open_day)).json()

    moved = client.patch(
        f"/appointments/{created['id']}/reschedule",
        json={"scheduled_date": open_day.isoformat(), "scheduled_time": "13:00:00"},
    )
    assert moved.status_code == 200
    assert moved.json()["scheduled_time"] == "13:00:00"

    extended = client.post(f"/appointments/{created['id']}/services", json={"service_ids": [shop.tire_rotation]})
    assert extended.status_code == 200
    assert extended.json()["duration_minutes"] == 60
    assert extended.json()["quoted_total"] == "88.99"

    incompatible = client.post(
        f"/appointments/{created['id']}/services", json={"service_ids": [shop.wheel_alignment]}
    )
    assert incompatible.status_code == 409


def test_reschedule_outside_business_hours_is_rejected(client, shop, open_day):
    created = client.post("/appointments", json=_payload(shop, open_day)).json()

    response = client.patch(
        f"/appointments/{created['id']}/reschedule",
        json={"scheduled_date": open_day.isoformat(), "scheduled_time": "06:00:00"},
    )

    assert response.status_code == 422
    assert response.json()["detail"]["reason"] == "before_opening"


def test_status_transitions(client, shop, open_day):
    created = client.post("/appointments", json=_payload(shop, open_day)).json()
    url = f"/appointments/{created['id']}/status"

    assert client.patch(url, json={"status": "in_progress"}).status_code == 409
    assert client.patch(url, json={"status": "flying"}).status_code == 422

    for target in ("confirmed", "checked_in", "in_progress", "completed", "invoiced", "paid"):
        response = client.patch(url, json={"status": target})
        assert response.status_code == 200
        assert response.json()["status"] == target

    assert client.patch(f"/appointments/{created['id']}/cancel").status_code == 409


def test_unknown_appointment_returns_404(client, shop):
    assert client.patch("/appointments/777/cancel").status_code == 404
    assert client.patch("/appointments/777/status", json={"status": "confirmed"}).status_code == 404


def test_times_with_an_offset_or_seconds_are_rejected(client, shop, open_day):
    with_offset = client.post("/appointments", json=_payload(shop, open_day, start="09:00:00Z"))
    assert with_offset.status_code == 422
    assert with_offset.json()["error"]["code"] == "validation_error"

    with_seconds = client.post("/appointments", json=_payload(shop, open_day, start="09:00:30"))
    assert with_seconds.status_code == 422
    assert with_seconds.json()["detail"]["reason"] == "misaligned_start"

    created = client.post("/appointments", json=_payload(shop, open_day)).json()
    moved = client.patch(
        f"/appointments/{created['id']}/reschedule",
        json={"scheduled_date": open_day.isoformat(), "scheduled_time": "13:00:00+02:00"},
    )
    assert moved.status_code == 422
    assert moved.json()["error"]["code"] == "validation_error"
