import json

from agromatch.cli import main


def _write_snapshot(tmp_path, requests):
    path = tmp_path / "requests.json"
    path.write_text(json.dumps(requests), encoding="utf-8")
    return str(path)


def _record(rid, lat, lng, *, item="Rice", qty=10, status="pending", urgency="medium", minute=0):
    committed = status in {"accepted", "fulfilled"}
    return {
        "id": rid,
        "consumer_id": f"consumer-{rid}",
        "consumer_name": f"Consumer {rid}",
        "items": [{"name": item, "quantity": qty, "unit": "kg"}],
        "urgency": urgency,
        "time_needed": "soon",
        "location": {"name": f"Place {rid}", "coordinates": [lat, lng]},
        "status": status,
        "accepted_by": "F1" if committed else None,
        "delivery_time": "2 days" if committed else None,
        "created_at": f"2025-03-01T08:{minute:02d}:00+00:00",
    }


def test_clusters_command_outputs_json(tmp_path, capsys):
    path = _write_snapshot(
        tmp_path,
        [
            _record("r1", 10.00, 10.00, qty=10),
            _record("r2", 10.01, 10.01, qty=20, minute=1),
            _record("r3", 10.02, 10.02, qty=15, minute=2),
            _record("r4", 10.03, 10.03, qty=99, status="rejected", minute=3),
        ],
    )

    assert main(["clusters", "--requests", path, "--json"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert len(data) == 1
    assert data[0]["item"] == "Rice"
    assert data[0]["member_count"] == 3
    assert data[0]["total_demand"] == 45
    assert data[0]["priority"] == "medium"


def test_clusters_command_honours_overrides(tmp_path, capsys):
    path = _write_snapshot(
        tmp_path,
        [_record("r1", 10.00, 10.00), _record("r2", 10.01, 10.01, minute=1)],
    )
    override = json.dumps({"clustering": {"min_members": 2}})

    assert main(["clusters", "--requests", path, "--override", override]) == 0
    out = capsys.readouterr().out
    assert "Rice" in out
    assert "from 2 requests" in out


def test_rank_command_lists_only_pending_requests_by_distance(tmp_path, capsys):
    km = 1 / 111.195
    path = _write_snapshot(
        tmp_path,
        [
            _record("one", 1 * km, 0.0),
            _record("five", 5 * km, 0.0, minute=1),
            _record("three", 3 * km, 0.0, minute=2),
            _record("taken", 0.5 * km, 0.0, status="accepted", minute=3),
            _record("fulfilled", 0.5 * km, 0.0, status="fulfilled", minute=4),
        ],
    )

    assert main(["rank", "--requests", path, "--lat", "0", "--lng", "0", "--json"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert [row["request"]["id"] for row in data] == ["one", "three", "five"]


def test_nearby_clusters_text_output(tmp_path, capsys):
    path = _write_snapshot(
        tmp_path,
        [_record(f"r{i}", 0.05 + i * 0.005, 0.0, minute=i) for i in range(3)],
    )

    assert main(["nearby-clusters", "--requests", path, "--lat", "0", "--lng", "0"]) == 0
    assert "km away" in capsys.readouterr().out

    assert main(["nearby-clusters", "--requests", path, "--lat", "0", "--lng", "0", "--radius-km", "1"]) == 0
    assert "No priority demands" in capsys.readouterr().out


def test_invalid_coordinates_exit_with_error(tmp_path, capsys):
    path = _write_snapshot(tmp_path, [_record("r1", 0.0, 0.0)])

    assert main(["rank", "--requests", path, "--lat", "95", "--lng", "0"]) == 2
    assert "VALIDATION_ERROR" in capsys.readouterr().err


def test_default_snapshot_from_settings(capsys):
    assert main(["clusters", "--json"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert [c["item"] for c in data] == ["Rice"]
    assert data[0]["member_request_ids"] == ["req-001", "req-002", "req-003"]
    assert data[0]["priority"] == "high"
