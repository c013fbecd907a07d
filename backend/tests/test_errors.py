from datetime import datetime

import pytest

from election.core import errors
from election.models.candidate import Candidate
from election.services.election_service import pick_winner


def test_error_details_are_structured():
    error = errors.NotOrganizer("0xb", "0xa")
    detail = error.to_dict()
    assert detail["code"] == "NotOrganizer"
    assert detail["caller"] == "0xb"
    assert detail["organizer"] == "0xa"
    assert error.status_code == 403


def test_datetime_context_serialized_as_utc():
    error = errors.VotingWindowClosed(3, datetime(2024, 1, 1, 12, 8, 20))
    assert error.to_dict()["deadline"] == "2024-01-01T12:08:20Z"
    assert error.to_dict()["round_number"] == 3


@pytest.mark.parametrize(("error", "status_code"), [
    (errors.VotingClosed(1), 409),
    (errors.CandidateAlreadyExists("0xa"), 409),
    (errors.VoterAlreadyExists("0xa"), 409),
    (errors.CandidateNotFound(candidate_id=4), 404),
    (errors.VoterNotFound(2), 404),
    (errors.VoterAddressNotFound("0xa"), 404),
    (errors.NotRegistered("0xa"), 403),
    (errors.AlreadyVoted("0xa", 1), 409),
    (errors.FinalizeNotNeeded(1, True, datetime(2024, 1, 1)), 409),
    (errors.WinnerNotYetPicked(1), 409),
    (errors.ElectionNotFound(9), 404),
    (errors.RoundNotFound(9), 404),
    (errors.InvalidDuration(0), 400),
])
def test_every_kind_is_an_election_error(error, status_code):
    assert isinstance(error, errors.ElectionError)
    assert error.status_code == status_code
    assert error.to_dict()["code"] == type(error).__name__


def test_pick_winner_scans_by_candidate_id():
    candidates = [
        Candidate(candidate_id=3, vote_count=5),
        Candidate(candidate_id=1, vote_count=2),
        Candidate(candidate_id=2, vote_count=5),
    ]
    assert pick_winner(candidates).candidate_id == 2


def test_pick_winner_without_candidates():
    assert pick_winner([]) is None
