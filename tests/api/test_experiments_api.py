import asyncio

from bucketlab.models.experiment import Event, EventType


def create_experiment(client, payload):
    response = client.post("/api/v1/experiments", json=payload)
    assert response.status_code == 201
    return response.json()


def set_status(client, experiment_id, status):
    return client.patch(f"/api/v1/experiments/{experiment_id}", json={"status": status})


def test_create_experiment(client, experiment_payload):
    data = create_experiment(client, experiment_payload)

    assert data["id"].startswith("exp_")
    assert data["status"] == "draft"
    assert data["traffic_allocation"] == 100
    assert [v["name"] for v in data["variations"]] == ["control", "redesign"]
    assert data["variations"][0]["is_control"] is True
    assert data["variations"][1]["url"] == "/pricing?v=2"


def test_create_with_two_controls(client, experiment_payload):
    experiment_payload["variations"][1]["is_control"] = True

    response = client.post("/api/v1/experiments", json=experiment_payload)

    assert response.status_code == 400
    assert response.json()["error"] == "NoControlDefined"


def test_create_with_single_variation(client, experiment_payload):
    experiment_payload["variations"] = experiment_payload["variations"][:1]
    response = client.post("/api/v1/experiments", json=experiment_payload)
    assert response.status_code == 422


def test_create_with_zero_weights(client, experiment_payload):
    for variation in experiment_payload["variations"]:
        variation["weight"] = 0

    response = client.post("/api/v1/experiments", json=experiment_payload)

    assert response.status_code == 400
    assert response.json()["error"] == "InvalidConfiguration"


def test_create_with_traffic_out_of_range(client, experiment_payload):
    experiment_payload["traffic_allocation"] = 120
    response = client.post("/api/v1/experiments", json=experiment_payload)
    assert response.status_code == 422


def test_get_experiment(client, experiment_payload):
    created = create_experiment(client, experiment_payload)

    response = client.get(f"/api/v1/experiments/{created['id']}")

    assert response.status_code == 200
    assert response.json()["name"] == "Pricing page redesign"


def test_get_experiment_not_found(client):
    response = client.get("/api/v1/experiments/nonexistent")
    assert response.status_code == 404


def test_list_experiments(client, experiment_payload):
    first = create_experiment(client, experiment_payload)
    second = create_experiment(client, experiment_payload)
    set_status(client, second["id"], "running")

    response = client.get("/api/v1/experiments")
    running = client.get("/api/v1/experiments", params={"status": "running"})

    assert response.status_code == 200
    assert response.json()["total"] == 2
    assert {e["id"] for e in response.json()["experiments"]} == {first["id"], second["id"]}
    assert [e["id"] for e in running.json()["experiments"]] == [second["id"]]


def test_status_lifecycle(client, experiment_payload):
    experiment_id = create_experiment(client, experiment_payload)["id"]

    started = set_status(client, experiment_id, "running")
    assert started.status_code == 200
    assert started.json()["started_at"] is not None

    assert set_status(client, experiment_id, "paused").json()["status"] == "paused"

    completed = set_status(client, experiment_id, "completed")
    assert completed.json()["status"] == "completed"
    assert completed.json()["ended_at"] is not None


def test_invalid_transition(client, experiment_payload):
    experiment_id = create_experiment(client, experiment_payload)["id"]

    response = set_status(client, experiment_id, "completed")

    assert response.status_code == 400
    assert response.json()["error"] == "InvalidStatusTransition"


def test_update_fields(client, experiment_payload):
    experiment_id = create_experiment(client, experiment_payload)["id"]

    response = client.patch(
        f"/api/v1/experiments/{experiment_id}",
        json={"name": "Pricing v2", "traffic_allocation": 25},
    )

    assert response.status_code == 200
    assert response.json()["name"] == "Pricing v2"
    assert response.json()["traffic_allocation"] == 25


def test_update_not_found(client):
    response = client.patch("/api/v1/experiments/nonexistent", json={"name": "x"})
    assert response.status_code == 404


def test_delete_draft(client, experiment_payload):
    experiment_id = create_experiment(client, experiment_payload)["id"]

    response = client.delete(f"/api/v1/experiments/{experiment_id}")

    assert response.status_code == 204
    assert client.get(f"/api/v1/experiments/{experiment_id}").status_code == 404


def test_delete_running(client, experiment_payload):
    experiment_id = create_experiment(client, experiment_payload)["id"]
    set_status(client, experiment_id, "running")

    response = client.delete(f"/api/v1/experiments/{experiment_id}")

    assert response.status_code == 400
    assert response.json()["error"] == "ExperimentNotDeletable"


def test_delete_not_found(client):
    assert client.delete("/api/v1/experiments/nonexistent").status_code == 404


def test_results_small_sample(client, experiment_payload):
    experiment = create_experiment(client, experiment_payload)
    set_status(client, experiment["id"], "running")
    control_id = experiment["variations"][0]["id"]
    for user_id in ("u1", "u2"):
        client.post(
            "/api/v1/track",
            json={
                "experiment_id": experiment["id"],
                "variation_id": control_id,
                "user_id": user_id,
                "event_type": "exposure",
            },
        )

    response = client.get(f"/api/v1/experiments/{experiment['id']}/results")

    assert response.status_code == 200
    data = response.json()
    assert data["sample_size"] == 2
    assert data["sufficient_sample"] is False
    assert data["variations"][0]["total_users"] == 2
    assert data["statistical_significance"]["is_significant"] is False
    assert data["statistical_significance"]["p_value"] == 1.0
    assert data["winner"] is None


def test_results_with_winner(client, repository, experiment_payload):
    experiment = create_experiment(client, experiment_payload)
    control_id, redesign_id = (v["id"] for v in experiment["variations"])

    async def seed():
        count = 0
        for variation_id, converters in ((control_id, 100), (redesign_id, 130)):
            for i in range(1000):
                event_types = [EventType.EXPOSURE]
                if i < converters:
                    event_types.append(EventType.CONVERSION)
                for event_type in event_types:
                    count += 1
                    await repository.record_event(
                        Event(
                            id=f"evt_{count}",
                            experiment_id=experiment["id"],
                            variation_id=variation_id,
                            user_id=f"{variation_id}_{i}",
                            event_type=event_type,
                        )
                    )

    asyncio.run(seed())

    response = client.get(f"/api/v1/experiments/{experiment['id']}/results")

    data = response.json()
    assert data["sample_size"] == 2000
    assert data["sufficient_sample"] is True
    assert data["winner"] == redesign_id
    assert abs(data["relative_lift"] - 30.0) < 1e-6
    assert data["statistical_significance"]["p_value"] < 0.05

    strict = client.get(
        f"/api/v1/experiments/{experiment['id']}/results", params={"confidence_level": 0.99}
    )
    assert strict.json()["winner"] is None


def test_results_unsupported_confidence_level(client, experiment_payload):
    experiment_id = create_experiment(client, experiment_payload)["id"]

    response = client.get(
        f"/api/v1/experiments/{experiment_id}/results", params={"confidence_level": 0.8}
    )

    assert response.status_code == 400
    assert response.json()["error"] == "UnsupportedConfidenceLevel"


def test_results_not_found(client):
    assert client.get("/api/v1/experiments/nonexistent/results").status_code == 404


def test_sample_size(client):
    response = client.post(
        "/api/v1/experiments/sample-size",
        json={"baseline_rate": 0.10, "minimum_detectable_effect": 0.20},
    )

    assert response.status_code == 200
    data = response.json()
    assert 3800 < data["sample_size_per_variation"] < 3900
    assert data["power"] == 0.80


def test_sample_size_target_out_of_range(client):
    response = client.post(
        "/api/v1/experiments/sample-size",
        json={"baseline_rate": 0.6, "minimum_detectable_effect": 1.0},
    )
    assert response.status_code == 422
