import pytest
from fastapi.testclient import TestClient

from conftest import ORGANIZER, OUTSIDER

AS_ORGANIZER = {"X-Caller-Address": ORGANIZER}
AS_OUTSIDER = {"X-Caller-Address": OUTSIDER}


def caller(address):
    return {"X-Caller-Address": address}


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def election_id(client):
    response = client.post("/api/election/create", json={"duration_seconds": 500}, headers=AS_ORGANIZER)
    assert response.status_code == 200
    return response.json()["election_id"]


def register_candidate(client, election_id, address, headers=AS_ORGANIZER):
    return client.post(
        f"/api/election/{election_id}/candidates",
        json={"address": address, "name": f"name {address}", "image_ref": "img", "metadata_ref": "meta"},
        headers=headers,
    )


def register_voter(client, election_id, address):
    return client.post(
        f"/api/election/{election_id}/voters",
        json={"address": address, "name": f"voter {address}"},
        headers=caller(address),
    )


def vote(client, election_id, address, candidate_id):
    return client.post(
        f"/api/election/{election_id}/vote",
        json={"candidate_id": candidate_id},
        headers=caller(address),
    )


def test_create_election(client):
    response = client.post("/api/election/create", json={"duration_seconds": 500}, headers=AS_ORGANIZER)

    data = response.json()
    assert data["round_number"] == 1
    assert data["is_active"] is True
    assert data["is_winner_picked"] is False
    assert data["organizer"] == ORGANIZER.lower()
    assert data["start_time"] == "2024-01-01T12:00:00Z"
    assert data["deadline"] == "2024-01-01T12:08:20Z"


def test_create_election_uses_default_duration(client):
    response = client.post("/api/election/create", json={}, headers=AS_ORGANIZER)

    assert response.status_code == 200
    assert response.json()["duration_seconds"] == 500


def test_create_election_rejects_blank_organizer(client):
    response = client.post(
        "/api/election/create",
        json={"duration_seconds": 500, "organizer": "   "},
        headers=AS_ORGANIZER,
    )
    assert response.status_code == 422
    assert client.get("/api/election/").json() == []


def test_create_election_requires_caller_header(client):
    response = client.post("/api/election/create", json={"duration_seconds": 500})
    assert response.status_code == 401


def test_create_election_validates_duration(client):
    response = client.post("/api/election/create", json={"duration_seconds": 0}, headers=AS_ORGANIZER)
    assert response.status_code == 422


def test_full_round_over_http(client, clock, election_id):
    assert register_candidate(client, election_id, "0xA").json()["candidate_id"] == 1
    assert register_candidate(client, election_id, "0xB").json()["candidate_id"] == 2
    voters = [f"0xV{i}" for i in range(1, 8)]
    for voter in voters:
        assert register_voter(client, election_id, voter).status_code == 200
    for voter in voters[:4]:
        assert vote(client, election_id, voter, 1).status_code == 200
    for voter in voters[4:]:
        assert vote(client, election_id, voter, 2).status_code == 200

    ready = client.get(f"/api/election/{election_id}/finalize/ready").json()
    assert ready == {"election_id": election_id, "round_number": 1, "ready": False}

    clock.advance(501)
    assert client.get(f"/api/election/{election_id}/finalize/ready").json()["ready"] is True
    response = client.post(f"/api/election/{election_id}/finalize")
    assert response.status_code == 200
    assert response.json() == {"election_id": election_id, "round_number": 1, "winner_candidate_id": 1}

    status = client.get(f"/api/election/{election_id}").json()
    assert status["is_active"] is False
    assert status["is_winner_picked"] is True

    response = vote(client, election_id, "0xV1", 2)
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "VotingClosed"

    response = client.post(f"/api/election/{election_id}/rounds", json={"duration_seconds": 500}, headers=AS_ORGANIZER)
    assert response.status_code == 200
    data = response.json()
    assert data["round_number"] == 2
    assert data["is_active"] is True
    assert data["is_winner_picked"] is False
    assert data["candidate_count"] == 0
    assert data["voter_count"] == 0

    winner = client.get(f"/api/election/{election_id}/rounds/1/winner").json()
    assert winner["winner_candidate_id"] == 1
    candidate = client.get(f"/api/election/{election_id}/rounds/1/candidates/1").json()
    assert candidate["vote_count"] == 4


def test_not_organizer_leaves_state_unchanged(client, clock, election_id):
    response = register_candidate(client, election_id, "0xA", headers=AS_OUTSIDER)
    assert response.status_code == 403
    detail = response.json()["detail"]
    assert detail == {
        "code": "NotOrganizer",
        "message": detail["message"],
        "caller": OUTSIDER.lower(),
        "organizer": ORGANIZER.lower(),
    }

    clock.advance(500)
    client.post(f"/api/election/{election_id}/finalize")
    response = client.post(f"/api/election/{election_id}/rounds", json={"duration_seconds": 500}, headers=AS_OUTSIDER)
    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "NotOrganizer"

    status = client.get(f"/api/election/{election_id}").json()
    assert status["round_number"] == 1
    assert status["candidate_count"] == 0


def test_error_codes_over_http(client, clock, election_id):
    register_candidate(client, election_id, "0xA")
    register_voter(client, election_id, "0xV1")

    assert register_candidate(client, election_id, "0xA").json()["detail"]["code"] == "CandidateAlreadyExists"
    assert register_voter(client, election_id, "0xV1").json()["detail"]["code"] == "VoterAlreadyExists"

    response = vote(client, election_id, "0xStranger", 1)
    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "NotRegistered"

    response = vote(client, election_id, "0xV1", 9)
    assert response.status_code == 404
    assert response.json()["detail"] == {
        "code": "CandidateNotFound",
        "message": response.json()["detail"]["message"],
        "candidate_id": 9,
        "address": None,
    }

    vote(client, election_id, "0xV1", 1)
    assert vote(client, election_id, "0xV1", 1).json()["detail"]["code"] == "AlreadyVoted"

    response = client.post(f"/api/election/{election_id}/finalize", json={"trigger_data": "manual"})
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "FinalizeNotNeeded"

    response = client.post(f"/api/election/{election_id}/rounds", json={"duration_seconds": 500}, headers=AS_ORGANIZER)
    assert response.json()["detail"]["code"] == "WinnerNotYetPicked"

    clock.advance(600)
    response = register_voter(client, election_id, "0xV2")
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "VotingWindowClosed"
    assert response.json()["detail"]["deadline"] == "2024-01-01T12:08:20Z"


def test_queries(client, election_id):
    register_candidate(client, election_id, "0xA")
    register_candidate(client, election_id, "0xB")
    register_voter(client, election_id, "0xV1")
    register_voter(client, election_id, "0xV2")
    vote(client, election_id, "0xV2", 2)

    candidates = client.get(f"/api/election/{election_id}/candidates").json()
    assert [(c["candidate_id"], c["vote_count"]) for c in candidates] == [(1, 0), (2, 1)]
    voters = client.get(f"/api/election/{election_id}/voters").json()
    assert [(v["voter_id"], v["has_voted"]) for v in voters] == [(1, False), (2, True)]

    candidate = client.get(f"/api/election/{election_id}/rounds/1/candidates/by-address/0XB").json()
    assert candidate["candidate_id"] == 2
    voter = client.get(f"/api/election/{election_id}/rounds/1/voters/2").json()
    assert voter["wallet_address"] == "0xv2"
    voter = client.get(f"/api/election/{election_id}/rounds/1/voters/by-address/0xv1").json()
    assert voter["voter_id"] == 1

    status = client.get(f"/api/election/{election_id}/voters/0xV2/status").json()
    assert status == {"address": "0xv2", "has_voted": True, "voted_candidate_id": 2}

    listing = client.get("/api/election/").json()
    assert [e["election_id"] for e in listing] == [election_id]


@pytest.mark.parametrize(("path", "code"), [
    ("/rounds/1/candidates/5", "CandidateNotFound"),
    ("/rounds/1/candidates/by-address/0xnobody", "CandidateNotFound"),
    ("/rounds/1/voters/5", "VoterNotFound"),
    ("/rounds/1/voters/by-address/0xnobody", "VoterAddressNotFound"),
    ("/voters/0xnobody/status", "VoterAddressNotFound"),
    ("/rounds/4/winner", "RoundNotFound"),
])
def test_not_found_queries(client, election_id, path, code):
    response = client.get(f"/api/election/{election_id}{path}")
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == code


def test_unknown_election(client):
    response = client.get("/api/election/42")
    assert response.status_code == 404
    assert response.json()["detail"] == {
        "code": "ElectionNotFound",
        "message": response.json()["detail"]["message"],
        "election_id": 42,
    }


def test_winner_of_open_round(client, election_id):
    response = client.get(f"/api/election/{election_id}/rounds/1/winner")
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "WinnerNotYetPicked"


def test_events_endpoint(client, clock, election_id):
    register_candidate(client, election_id, "0xA")
    clock.advance(500)
    client.post(f"/api/election/{election_id}/finalize", json={"trigger_data": "manual"})

    events = client.get(f"/api/election/{election_id}/events").json()
    assert [e["event_type"] for e in events] == ["ElectionCreated", "CandidateRegistered", "WinnerPicked"]
    assert events[-1]["payload"]["trigger_data"] == "manual"
    assert events[-1]["created_at"] == "2024-01-01T12:08:20Z"


def test_websocket_pushes_events(client, election_id):
    with client.websocket_connect(f"/api/ws/election/{election_id}") as websocket:
        assert websocket.receive_json()["type"] == "connected"

        register_candidate(client, election_id, "0xA")
        message = websocket.receive_json()
        assert message["type"] == "CandidateRegistered"
        assert message["election_id"] == election_id
        assert message["candidate_id"] == 1
        assert message["wallet_address"] == "0xa"

        websocket.send_json({"type": "ping", "timestamp": 123})
        assert websocket.receive_json() == {"type": "pong", "timestamp": 123}

        websocket.send_json({"type": "get_status"})
        message = websocket.receive_json()
        assert message["type"] == "round_status"
        assert message["status"]["candidate_count"] == 1


def test_websocket_status_for_unknown_election(client):
    with client.websocket_connect("/api/ws/election/77") as websocket:
        websocket.receive_json()
        websocket.send_json({"type": "get_status"})
        message = websocket.receive_json()
        assert message["type"] == "error"
        assert message["error"]["code"] == "ElectionNotFound"


def test_health_endpoints():
    import main

    client = TestClient(main.app)
    assert client.get("/health").json()["status"] == "healthy"
    assert client.get("/").json()["status"] == "healthy"
