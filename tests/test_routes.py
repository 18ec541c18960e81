from datetime import timedelta

from felicity.models.enums import EventStatus
from felicity.utils.dates import utcnow


def _iso(value):
    return value.isoformat().replace("+00:00", "Z")


def _merch_payload():
    now = utcnow()
    return {
        "name": "Fest Merch",
        "type": "merchandise",
        "start_date": _iso(now + timedelta(days=3)),
        "end_date": _iso(now + timedelta(days=10)),
        "registration_deadline": _iso(now + timedelta(days=2)),
        "merchandise_items": [
            {"name": "Hoodie", "stock": 5, "price": "700", "purchase_limit": 3, "sizes": ["M", "L"]},
        ],
    }


def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.get_json() == {"status": "ok"}


def test_list_hides_drafts(client, organizer, make_event):
    make_event(organizer, name="Open Mic")
    make_event(organizer, name="Secret", status=EventStatus.DRAFT)

    response = client.get("/api/events")

    assert response.status_code == 200
    assert [e["name"] for e in response.get_json()["events"]] == ["Open Mic"]


def test_create_event_requires_token(client):
    response = client.post("/api/events", json={"name": "x", "type": "normal"})

    assert response.status_code == 401


def test_participant_cannot_create_event(client, participant, auth_headers):
    response = client.post(
        "/api/events", json={"name": "x", "type": "normal"}, headers=auth_headers(participant)
    )

    assert response.status_code == 403
    assert response.get_json()["error"] == "Only organizers can create events"


def test_missing_fields_response(client, organizer, auth_headers):
    response = client.post("/api/events", json={"type": "normal"}, headers=auth_headers(organizer))

    assert response.status_code == 400
    assert response.get_json()["missing_fields"] == ["name"]


def test_draft_visible_only_to_owner(client, organizer, participant, make_event, auth_headers):
    event = make_event(organizer, status=EventStatus.DRAFT)

    assert client.get(f"/api/events/{event.id}").status_code == 404
    assert client.get(f"/api/events/{event.id}", headers=auth_headers(participant)).status_code == 404
    assert client.get(f"/api/events/{event.id}", headers=auth_headers(organizer)).status_code == 200


def test_unknown_event_is_404(client):
    response = client.get("/api/events/12345")

    assert response.status_code == 404
    assert "not found" in response.get_json()["error"]


def test_published_edit_gating(client, organizer, make_event, auth_headers):
    event = make_event(organizer)

    response = client.put(
        f"/api/events/{event.id}", json={"name": "New name"}, headers=auth_headers(organizer)
    )

    assert response.status_code == 400
    assert "published event" in response.get_json()["error"]


def test_merchandise_order_end_to_end(client, organizer, participant, other_participant, auth_headers):
    """Create, publish, order, pay, approve and fetch the ticket over HTTP."""
    org = auth_headers(organizer)
    buyer = auth_headers(participant)

    created = client.post("/api/events", json=_merch_payload(), headers=org)
    assert created.status_code == 201
    event = created.get_json()
    assert event["status"] == "draft"
    item_id = event["merchandise_items"][0]["id"]

    published = client.put(f"/api/events/{event['id']}/publish", headers=org)
    assert published.get_json()["status"] == "published"

    order = client.post(
        "/api/registrations",
        json={
            "event_id": event["id"],
            "merchandise_selections": [{"item_id": item_id, "quantity": 2, "size": "L"}],
        },
        headers=buyer,
    )
    assert order.status_code == 201
    order = order.get_json()
    assert order["status"] == "pending_approval"
    assert order["total_amount"] == "1400.00"

    limits = client.get(f"/api/events/{event['id']}/item-limits", headers=buyer).get_json()
    assert limits["items"][str(item_id)]["remaining"] == 1

    early = client.put(
        f"/api/registrations/{order['id']}/payment-status",
        json={"payment_status": "approved"},
        headers=org,
    )
    assert early.status_code == 400
    assert "no proof uploaded" in early.get_json()["error"]

    proof = client.post(
        f"/api/registrations/{order['id']}/payment-proof",
        json={"payment_proof": "uploads/upi-991.png"},
        headers=buyer,
    )
    assert proof.get_json()["payment_status"] == "pending"

    pending = client.get(
        f"/api/events/{event['id']}/registrations?status=pending_approval", headers=org
    ).get_json()["registrations"]
    assert [r["id"] for r in pending] == [order["id"]]

    approved = client.put(
        f"/api/registrations/{order['id']}/payment-status",
        json={"payment_status": "approved"},
        headers=org,
    )
    assert approved.status_code == 200
    assert approved.get_json()["status"] == "registered"
    assert approved.get_json()["payment_status"] == "approved"

    ticket = client.get(f"/api/registrations/{order['id']}/ticket", headers=buyer)
    assert ticket.status_code == 200
    body = ticket.get_json()
    assert body["ticket_id"].startswith("FEL-")
    assert body["qr_code"].startswith("data:image/png;base64,")
    assert body["merchandise_selections"][0]["size"] == "L"

    stranger = client.get(
        f"/api/registrations/{order['id']}/ticket", headers=auth_headers(other_participant)
    )
    assert stranger.status_code == 403

    event_now = client.get(f"/api/events/{event['id']}").get_json()
    assert event_now["registration_count"] == 1
    assert event_now["merchandise_items"][0]["stock"] == 3


def test_register_requires_event_id(client, participant, auth_headers):
    response = client.post("/api/registrations", json={}, headers=auth_headers(participant))

    assert response.status_code == 400
    assert response.get_json()["missing_fields"] == ["event_id"]


def test_register_rejects_non_numeric_event_id(client, participant, auth_headers):
    response = client.post(
        "/api/registrations", json={"event_id": "abc"}, headers=auth_headers(participant)
    )

    assert response.status_code == 400
    assert response.get_json()["fields"] == ["event_id"]


def test_mark_attendance_rejects_non_numeric_event_id(client, organizer, auth_headers):
    response = client.post(
        "/api/registrations/mark-attendance",
        json={"event_id": "abc", "ticket_id": "FEL-00000000"},
        headers=auth_headers(organizer),
    )

    assert response.status_code == 400
    assert response.get_json()["fields"] == ["event_id"]


def test_my_registrations_and_cancel(client, organizer, participant, make_event, auth_headers):
    event = make_event(organizer)
    headers = auth_headers(participant)
    created = client.post("/api/registrations", json={"event_id": event.id}, headers=headers).get_json()

    mine = client.get("/api/registrations/my", headers=headers).get_json()["registrations"]
    assert [r["id"] for r in mine] == [created["id"]]
    assert "qr_code" not in mine[0]

    cancelled = client.post(f"/api/registrations/{created['id']}/cancel", headers=headers)
    assert cancelled.get_json()["status"] == "cancelled"


def test_mark_attendance_before_start(client, organizer, participant, make_event, auth_headers):
    event = make_event(organizer)
    created = client.post(
        "/api/registrations", json={"event_id": event.id}, headers=auth_headers(participant)
    ).get_json()

    response = client.post(
        "/api/registrations/mark-attendance",
        json={"event_id": event.id, "ticket_id": created["ticket_id"]},
        headers=auth_headers(organizer),
    )

    assert response.status_code == 400
    assert "after the event has started" in response.get_json()["error"]


def test_close_and_delete(client, organizer, make_event, auth_headers):
    headers = auth_headers(organizer)
    published = make_event(organizer)
    draft = make_event(organizer, status=EventStatus.DRAFT)

    assert client.put(f"/api/events/{published.id}/close", headers=headers).get_json()["status"] == "closed"
    assert client.delete(f"/api/events/{published.id}", headers=headers).status_code == 400
    assert client.delete(f"/api/events/{draft.id}", headers=headers).status_code == 200
