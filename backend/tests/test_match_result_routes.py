"""Match result endpoints: writes return warnings and refresh standings via the queue."""
import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from tests.factories import make_league, make_match, make_round, map_ids


@pytest.fixture
def fixture_data(session: Session):
    tournament, teams = make_league(session)
    match = make_match(session, tournament, teams["Alpha"], teams["Bravo"], week="Week 1")
    other = make_match(session, tournament, teams["Charlie"], teams["Delta"], week="Week 2")
    make_round(session, "r1", "Axis", "Allies", 100, 50)
    make_round(session, "r2", "Red", "Blue", 30, 60)
    return {
        "tournament_id": tournament.id,
        "match_id": match.id,
        "map_ids": map_ids(match),
        "other_match_id": other.id,
        "other_map_ids": map_ids(other),
        "alpha": teams["Alpha"].id,
        "bravo": teams["Bravo"].id,
        "charlie": teams["Charlie"].id,
        "delta": teams["Delta"].id,
    }


def _round_url(d, map_index=0):
    return f"/api/tournaments/{d['tournament_id']}/matches/{d['match_id']}/maps/{d['map_ids'][map_index]}/round-result"


def _manual_url(d, match_key="match_id", maps_key="map_ids", map_index=0):
    return f"/api/tournaments/{d['tournament_id']}/matches/{d[match_key]}/maps/{d[maps_key][map_index]}/result"


def _leaderboard(client: TestClient, d, week=None):
    params = {"week": week} if week else {}
    response = client.get(f"/api/tournaments/{d['tournament_id']}/leaderboard", params=params)
    assert response.status_code == 200
    return response.json()


def test_round_result_creates_and_recalculates(client: TestClient, fixture_data):
    d = fixture_data

    response = client.post(_round_url(d), json={"round_id": "r1"})

    assert response.status_code == 200
    body = response.json()
    assert body["created"] is True
    assert body["team_mapping_warning"] is None
    assert body["result"]["round_id"] == "r1"
    assert body["result"]["week"] == "Week 1"
    assert body["result"]["winning_team_id"] == d["alpha"]

    week1 = _leaderboard(client, d, "Week 1")
    assert week1["generation"] == 1
    assert [r["team_name"] for r in week1["rankings"]] == ["Alpha", "Bravo"]
    assert week1["rankings"][0]["points"] == 3
    assert _leaderboard(client, d)["generation"] == 1


def test_round_result_returns_mapping_warning(client: TestClient, fixture_data):
    d = fixture_data
    client.post(_round_url(d, 0), json={"round_id": "r1"})

    response = client.post(_round_url(d, 1), json={"round_id": "r2"})

    assert response.status_code == 200
    assert "do not correspond" in response.json()["team_mapping_warning"]


def test_round_result_upsert_returns_same_id(client: TestClient, fixture_data):
    d = fixture_data
    first = client.post(_round_url(d), json={"round_id": "r1"}).json()

    second = client.post(_round_url(d), json={"round_id": "r2"}).json()

    assert second["created"] is False
    assert second["result"]["id"] == first["result"]["id"]


def test_round_result_errors(client: TestClient, fixture_data):
    d = fixture_data

    assert client.post(_round_url(d), json={"round_id": "missing"}).status_code == 400
    wrong_map = f"/api/tournaments/{d['tournament_id']}/matches/{d['match_id']}/maps/{d['other_map_ids'][0]}/round-result"
    assert client.post(wrong_map, json={"round_id": "r1"}).status_code == 404
    no_tournament = f"/api/tournaments/999/matches/{d['match_id']}/maps/{d['map_ids'][0]}/round-result"
    assert client.post(no_tournament, json={"round_id": "r1"}).status_code == 404
    assert client.post(_round_url(d), json={}).status_code == 422


def test_manual_result_entry_and_validation(client: TestClient, fixture_data):
    d = fixture_data

    ok = client.post(
        _manual_url(d),
        json={"team1_id": d["alpha"], "team2_id": d["bravo"], "team1_tickets": 10, "team2_tickets": 90},
    )
    assert ok.status_code == 200
    assert ok.json()["result"]["winning_team_id"] == d["bravo"]
    assert _leaderboard(client, d, "Week 1")["rankings"][0]["team_id"] == d["bravo"]

    same_team = client.post(_manual_url(d, map_index=1), json={"team1_id": d["alpha"], "team2_id": d["alpha"]})
    assert same_team.status_code == 400
    assert "cannot be the same" in same_team.json()["detail"]

    foreign_team = client.post(_manual_url(d, map_index=1), json={"team1_id": d["alpha"], "team2_id": d["delta"]})
    assert foreign_team.status_code == 400

    bad_winner = client.post(
        _manual_url(d, map_index=1),
        json={"team1_id": d["alpha"], "team2_id": d["bravo"], "winning_team_id": d["charlie"]},
    )
    assert bad_winner.status_code == 400


def test_list_and_get_results(client: TestClient, fixture_data):
    d = fixture_data
    client.post(_round_url(d, 0), json={"round_id": "r1"})
    client.post(_manual_url(d, map_index=1), json={"team1_id": d["alpha"], "team2_id": d["bravo"]})
    client.post(
        _manual_url(d, "other_match_id", "other_map_ids"),
        json={"team1_id": d["charlie"], "team2_id": d["delta"], "team1_tickets": 5},
    )
    base = f"/api/tournaments/{d['tournament_id']}/match-results"

    everything = client.get(base).json()
    assert everything["total"] == 3
    assert [r["map_id"] for r in everything["items"]][:2] == d["map_ids"]

    week2 = client.get(base, params={"week": "Week 2"}).json()
    assert week2["total"] == 1
    assert week2["items"][0]["match_id"] == d["other_match_id"]

    paged = client.get(base, params={"page": 2, "page_size": 2}).json()
    assert (paged["page"], paged["page_size"], len(paged["items"])) == (2, 2, 1)

    assert client.get(base, params={"page": 0}).status_code == 422
    assert client.get("/api/tournaments/999/match-results").status_code == 404

    result_id = everything["items"][0]["id"]
    assert client.get(f"{base}/{result_id}").json()["id"] == result_id
    assert client.get(f"/api/tournaments/999/match-results/{result_id}").status_code == 404


def test_override_team_mapping(client: TestClient, fixture_data):
    d = fixture_data
    result = client.post(_round_url(d), json={"round_id": "r1"}).json()["result"]
    url = f"/api/tournaments/{d['tournament_id']}/match-results/{result['id']}/teams"

    response = client.put(url, json={"team1_id": d["bravo"], "team2_id": d["alpha"]})

    assert response.status_code == 200
    updated = response.json()["result"]
    assert (updated["team1_id"], updated["team2_id"]) == (d["bravo"], d["alpha"])
    assert (updated["team1_tickets"], updated["team2_tickets"]) == (100, 50)
    rankings = _leaderboard(client, d, "Week 1")["rankings"]
    bravo = next(r for r in rankings if r["team_id"] == d["bravo"])
    assert bravo["tickets_for"] == 100
    assert _leaderboard(client, d, "Week 1")["generation"] == 2

    assert client.put(url, json={"team1_id": d["alpha"], "team2_id": d["alpha"]}).status_code == 400
    assert client.put(url, json={"team1_id": d["alpha"], "team2_id": d["charlie"]}).status_code == 400
    missing = f"/api/tournaments/{d['tournament_id']}/match-results/9999/teams"
    assert client.put(missing, json={"team1_id": d["alpha"], "team2_id": d["bravo"]}).status_code == 404


def test_relink_and_unlink_round(client: TestClient, fixture_data):
    d = fixture_data
    result = client.post(_round_url(d), json={"round_id": "r1"}).json()["result"]
    url = f"/api/tournaments/{d['tournament_id']}/match-results/{result['id']}/round"

    relinked = client.put(url, json={"round_id": "r2"})
    assert relinked.status_code == 200
    assert relinked.json()["result"]["round_id"] == "r2"
    assert relinked.json()["result"]["winning_team_id"] == d["bravo"]

    unlinked = client.put(url, json={"round_id": None})
    assert unlinked.status_code == 200
    assert unlinked.json()["result"]["round_id"] is None
    assert unlinked.json()["result"]["team2_tickets"] == 60

    assert client.put(url, json={"round_id": "missing"}).status_code == 400


def test_delete_result_clears_standings(client: TestClient, fixture_data):
    d = fixture_data
    result = client.post(_round_url(d), json={"round_id": "r1"}).json()["result"]
    url = f"/api/tournaments/{d['tournament_id']}/match-results/{result['id']}"
    assert len(_leaderboard(client, d, "Week 1")["rankings"]) == 2

    response = client.delete(url)

    assert response.status_code == 200
    assert response.json() == {"deleted": True, "id": result["id"], "week": "Week 1"}
    assert client.get(url).status_code == 404
    assert _leaderboard(client, d, "Week 1")["rankings"] == []
    assert _leaderboard(client, d)["rankings"] == []
    assert client.delete(url).status_code == 404
