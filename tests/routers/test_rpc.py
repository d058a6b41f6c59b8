from app.models.connection_event import ConnectionEvent


def _rpc(client, name, headers, **body):
    return client.post(f"/rpc/{name}", json=body, headers=headers)


def _answers(data, prefix):
    return {str(qid): f"{prefix} {qid}" for qid in data["bonding_question_ids"]}


def _open_ticket(client, buyer_headers, listing):
    response = _rpc(client, "connect_to_listing", buyer_headers, listing_id=listing.id)
    assert response.status_code == 201
    return response.json()["connection_id"]


def test_ticket_connection_end_to_end(
    client, buyer_headers, seller_headers, ticket_listing, questions
):
    cid = _open_ticket(client, buyer_headers, ticket_listing)

    response = _rpc(
        client, "seller_respond_connection", seller_headers, connection_id=cid, accept=True
    )
    assert response.status_code == 200
    data = response.json()
    assert data["stage"] == "bonding"
    assert data["my_role"] == "seller"
    assert len(data["bonding_question_ids"]) == 3

    response = _rpc(
        client,
        "submit_bonding_answers",
        buyer_headers,
        connection_id=cid,
        answers=_answers(data, "buyer"),
    )
    assert response.json()["waiting_on_other"] is True
    response = _rpc(
        client,
        "submit_bonding_answers",
        seller_headers,
        connection_id=cid,
        answers=_answers(data, "seller"),
    )
    assert response.json()["stage"] == "preview"

    preview = _rpc(client, "get_connection_preview", buyer_headers, connection_id=cid)
    assert preview.status_code == 200
    assert preview.json()["seller"]["username"] == "yoongi_stan"
    assert preview.json()["seller"]["socials"] is None

    for headers in (buyer_headers, seller_headers):
        _rpc(client, "set_comfort_decision", headers, connection_id=cid, comfort=True)
    for headers in (buyer_headers, seller_headers):
        _rpc(client, "set_social_share_decision", headers, connection_id=cid, share=True)
    _rpc(client, "accept_connection_agreement", buyer_headers, connection_id=cid)
    response = _rpc(client, "accept_connection_agreement", seller_headers, connection_id=cid)
    data = response.json()
    assert data["stage"] == "chat_open"
    assert data["socials_visible"] is True
    assert data["stage_expires_at"] is None

    preview = _rpc(client, "get_connection_preview", seller_headers, connection_id=cid)
    assert preview.json()["buyer"]["socials"]["instagram"] == "@buyer_ig"

    response = _rpc(client, "submit_connection_rating", buyer_headers, connection_id=cid, rating=5)
    assert response.status_code == 200
    response = _rpc(client, "submit_connection_rating", buyer_headers, connection_id=cid, rating=5)
    assert response.status_code == 409
    assert "error" in response.json()


def test_outsider_gets_403(client, buyer_headers, outsider_headers, ticket_listing):
    cid = _open_ticket(client, buyer_headers, ticket_listing)
    response = _rpc(client, "end_connection", outsider_headers, connection_id=cid)
    assert response.status_code == 403
    assert set(response.json()) == {"error"}


def test_unknown_connection_404(client, seller_headers):
    response = _rpc(
        client, "seller_respond_connection", seller_headers, connection_id=9999, accept=True
    )
    assert response.status_code == 404
    assert response.json() == {"error": "Connection not found."}


def test_expired_connection_409(client, db, clock, buyer_headers, seller_headers, ticket_listing):
    cid = _open_ticket(client, buyer_headers, ticket_listing)
    clock.advance(hours=25)

    response = _rpc(
        client, "seller_respond_connection", seller_headers, connection_id=cid, accept=True
    )
    assert response.status_code == 409
    assert response.json() == {"error": "This connection has expired.", "stage": "expired"}

    response = client.get(f"/connections/{cid}", headers=buyer_headers)
    assert response.json()["stage"] == "expired"
    assert ticket_listing.is_available is True


def test_closed_stage_409(client, buyer_headers, seller_headers, ticket_listing):
    cid = _open_ticket(client, buyer_headers, ticket_listing)
    _rpc(client, "seller_respond_connection", seller_headers, connection_id=cid, accept=False)

    response = _rpc(client, "end_connection", buyer_headers, connection_id=cid)
    assert response.status_code == 409
    assert response.json() == {"error": "The seller declined this connection."}


def test_buyer_cancel_while_pending(client, db, buyer_headers, seller, ticket_listing):
    cid = _open_ticket(client, buyer_headers, ticket_listing)
    response = _rpc(
        client, "end_connection", buyer_headers, connection_id=cid, ended_reason="changed plans"
    )
    assert response.status_code == 200
    assert response.json()["stage"] == "ended"
    assert response.json()["stage_before_ended"] == "pending_seller"

    event = db.query(ConnectionEvent).filter_by(
        connection_id=cid, event_type="connection_cancelled"
    ).one()
    assert event.recipient_id == seller.id


def test_request_validation_is_flat(client, buyer_headers):
    response = _rpc(client, "connect_to_listing", buyer_headers)
    assert response.status_code == 422
    assert set(response.json()) == {"error"}


def test_bad_bonding_answers_422(client, buyer_headers, seller_headers, ticket_listing, questions):
    cid = _open_ticket(client, buyer_headers, ticket_listing)
    data = _rpc(
        client, "seller_respond_connection", seller_headers, connection_id=cid, accept=True
    ).json()
    answers = _answers(data, "x")
    answers.popitem()

    response = _rpc(
        client, "submit_bonding_answers", buyer_headers, connection_id=cid, answers=answers
    )
    assert response.status_code == 422
    assert response.json() == {"error": "Please answer all 3 bonding questions."}


def test_merch_connection_with_undo(
    client, clock, buyer_headers, seller_headers, merch_listing, questions
):
    response = _rpc(
        client,
        "connect_to_merch_listing_v2",
        buyer_headers,
        merch_listing_id=merch_listing.id,
        want_social_share=True,
    )
    assert response.status_code == 201
    cid = response.json()["connection_id"]

    response = _rpc(
        client,
        "seller_respond_merch_connection",
        seller_headers,
        connection_id=cid,
        accept=True,
        seller_social_share=True,
    )
    data = response.json()
    assert data["stage"] == "buyer_bonding_v2"
    assert data["waiting_on_other"] is True
    assert len(data["bonding_question_ids"]) == 2

    response = _rpc(client, "end_merch_connection", seller_headers, connection_id=cid)
    assert response.json()["can_undo"] is True

    clock.advance(minutes=30)
    response = _rpc(client, "undo_merch_connection", buyer_headers, connection_id=cid)
    assert response.status_code == 403

    response = _rpc(client, "undo_merch_connection", seller_headers, connection_id=cid)
    assert response.status_code == 200
    assert response.json()["stage"] == "buyer_bonding_v2"
    assert merch_listing.locked_by_connection_id == cid


def test_merch_connect_requires_share_choice(client, buyer_headers, merch_listing):
    response = _rpc(
        client, "connect_to_merch_listing_v2", buyer_headers, merch_listing_id=merch_listing.id
    )
    assert response.status_code == 422


def test_ticket_rpc_on_merch_connection_404(client, buyer_headers, seller_headers, merch_listing):
    response = _rpc(
        client,
        "connect_to_merch_listing_v2",
        buyer_headers,
        merch_listing_id=merch_listing.id,
        want_social_share=False,
    )
    cid = response.json()["connection_id"]
    response = _rpc(
        client, "seller_respond_connection", seller_headers, connection_id=cid, accept=False
    )
    assert response.status_code == 404


def test_undo_not_routed_for_tickets(client, buyer_headers, ticket_listing):
    cid = _open_ticket(client, buyer_headers, ticket_listing)
    _rpc(client, "end_connection", buyer_headers, connection_id=cid)
    response = _rpc(client, "undo_merch_connection", buyer_headers, connection_id=cid)
    assert response.status_code == 404


def test_process_timeouts_admin_only(
    client, clock, buyer_headers, admin_headers, ticket_listing
):
    cid = _open_ticket(client, buyer_headers, ticket_listing)

    response = client.post("/rpc/process_connection_timeouts", headers=buyer_headers)
    assert response.status_code == 403

    clock.advance(hours=25)
    response = client.post("/rpc/process_connection_timeouts", headers=admin_headers)
    assert response.status_code == 200
    assert response.json() == {"expired": 1}

    response = client.get(f"/connections/{cid}", headers=buyer_headers)
    assert response.json()["stage"] == "expired"


def test_seller_views_buyer_profile_before_responding(
    client, buyer_headers, seller_headers, ticket_listing, questions
):
    cid = _open_ticket(client, buyer_headers, ticket_listing)

    response = _rpc(
        client, "get_connection_buyer_profile_for_seller", seller_headers, connection_id=cid
    )
    assert response.status_code == 200
    data = response.json()
    assert data["connection_id"] == cid
    assert data["username"] == "jimin_stan"
    assert data["country"] == "KR"
    assert data["bonding_answers"] == []

    response = _rpc(
        client, "get_connection_buyer_profile_for_seller", buyer_headers, connection_id=cid
    )
    assert response.status_code == 403

    _rpc(client, "seller_respond_connection", seller_headers, connection_id=cid, accept=True)
    response = _rpc(
        client, "get_connection_buyer_profile_for_seller", seller_headers, connection_id=cid
    )
    assert response.status_code == 409


def test_merch_buyer_profile_shows_up_front_answers(
    client, buyer_headers, seller_headers, merch_listing, questions
):
    question_ids = [questions[1].id, questions[2].id]
    response = _rpc(
        client,
        "connect_to_merch_listing_v2",
        buyer_headers,
        merch_listing_id=merch_listing.id,
        want_social_share=True,
        question_ids=question_ids,
        bonding_answers={str(question_ids[0]): "Wings", str(question_ids[1]): "Family"},
    )
    cid = response.json()["connection_id"]

    response = _rpc(
        client, "get_merch_connection_buyer_profile_for_seller", seller_headers, connection_id=cid
    )
    assert response.status_code == 200
    data = response.json()
    assert data["want_social_share"] is True
    assert [a["question_id"] for a in data["bonding_answers"]] == question_ids
    assert data["bonding_answers"][1]["answer"] == "Family"

    response = _rpc(
        client, "get_connection_buyer_profile_for_seller", seller_headers, connection_id=cid
    )
    assert response.status_code == 404


def test_ticket_seller_social_choice_is_kept(
    client, buyer_headers, seller_headers, ticket_listing, questions
):
    cid = _open_ticket(client, buyer_headers, ticket_listing)
    response = _rpc(
        client,
        "seller_respond_connection",
        seller_headers,
        connection_id=cid,
        accept=True,
        seller_social_share=True,
    )
    assert response.status_code == 200
    assert response.json()["seller_want_social_share"] is True
