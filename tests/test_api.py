from workdesk import config
from workdesk.db import analytics
from workdesk.db.tables import PerformanceMetric

API_KEY = config.API_KEY
HEADERS = {"X-API-Key": API_KEY}


def _post(client, path, body, headers=HEADERS):
    response = client.post(path, json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def _build_install_survey(client):
    """Install Survey -> Site Check -> Measurements -> Voltage, plus a rule."""
    task = _post(client, "/task-templates", {"name": "Install Survey"})
    fn = _post(client, "/fn-templates", {"name": "Site Check"})
    field = _post(client, "/field-templates", {"name": "Measurements"})
    voltage = _post(
        client,
        "/input-templates",
        {
            "name": "Voltage",
            "type": "NUMBER",
            "condition": "GREATER_THAN",
            "comparison_value": "240",
        },
    )
    notes = _post(client, "/input-templates", {"name": "Safety Notes", "type": "TEXTAREA"})
    _post(client, f"/task-templates/{task['id']}/fn-templates", {"child_id": fn["id"]})
    _post(client, f"/fn-templates/{fn['id']}/field-templates", {"child_id": field["id"]})
    _post(
        client,
        f"/field-templates/{field['id']}/input-templates",
        {"child_id": voltage["id"]},
    )
    rule = _post(
        client,
        "/conditional-actions",
        {
            "input_template_id": voltage["id"],
            "name": "Ask for safety notes",
            "type": "ADD_DYNAMIC_INPUT",
            "target": {"kind": "input", "input_template_id": notes["id"]},
        },
    )
    return task, voltage, notes, rule


def _open_task(client, user_headers, task_template_id, assignee_id):
    customer = _post(client, "/customers", {"name": "Acme Power"})
    return _post(
        client,
        "/task-instances",
        {
            "task_template_id": task_template_id,
            "customer_id": customer["id"],
            "assignee_id": assignee_id,
            "priority": "HIGH",
        },
        headers=user_headers,
    )


def test_auth_required(client):
    response = client.get("/task-templates")
    assert response.status_code in (401, 403)


def test_invalid_api_key(client):
    response = client.get("/task-templates", headers={"X-API-Key": "wrong-key"})
    assert response.status_code == 401


def test_mutations_need_a_known_user(client):
    task = _post(client, "/task-templates", {"name": "T"})
    body = {"task_template_id": task["id"], "customer_id": 1, "assignee_id": 1}
    response = client.post("/task-instances", json=body, headers=HEADERS)
    assert response.status_code == 401
    response = client.post(
        "/task-instances", json=body, headers={**HEADERS, "X-User-Id": "999"}
    )
    assert response.status_code == 401


def test_create_and_disable_user(client):
    user = _post(
        client,
        "/users",
        {"name": "Asha", "email": "asha@example.com", "roles": ["SURVEYOR"]},
    )
    assert user["roles"] == ["SURVEYOR"]
    assert user["disabled"] is False

    duplicate = client.post(
        "/users", json={"name": "Asha", "email": "asha@example.com"}, headers=HEADERS
    )
    assert duplicate.status_code == 409

    response = client.post(f"/users/{user['id']}/disable", headers=HEADERS)
    assert response.json()["disabled"] is True
    listed = client.get("/users", headers=HEADERS).json()
    assert user["id"] not in [u["id"] for u in listed]


def test_invalid_user_email(client):
    response = client.post(
        "/users", json={"name": "X", "email": "nope"}, headers=HEADERS
    )
    assert response.status_code == 422


def test_template_crud(client):
    fn = _post(client, "/fn-templates", {"name": "Survey", "department": "SERVICE"})
    assert fn["is_choice"] is False

    response = client.patch(
        f"/fn-templates/{fn['id']}", json={"is_choice": True}, headers=HEADERS
    )
    assert response.status_code == 200
    assert response.json()["is_choice"] is True

    response = client.get(f"/fn-templates/{fn['id']}", headers=HEADERS)
    assert response.json()["name"] == "Survey"

    response = client.delete(f"/fn-templates/{fn['id']}", headers=HEADERS)
    assert response.status_code == 204
    response = client.get(f"/fn-templates/{fn['id']}", headers=HEADERS)
    assert response.status_code == 404


def test_unknown_follow_up_template_is_rejected(client):
    response = client.post(
        "/fn-templates",
        json={"name": "Survey", "next_follow_up_fn_template_id": 4242},
        headers=HEADERS,
    )
    assert response.status_code == 404


def test_delete_referenced_template_conflicts(client):
    task, voltage, _, _ = _build_install_survey(client)
    response = client.delete(f"/input-templates/{voltage['id']}", headers=HEADERS)
    assert response.status_code == 409


def test_attach_twice_conflicts_and_detach(client):
    task = _post(client, "/task-templates", {"name": "T"})
    fn = _post(client, "/fn-templates", {"name": "F"})
    path = f"/task-templates/{task['id']}/fn-templates"
    _post(client, path, {"child_id": fn["id"]})

    response = client.post(path, json={"child_id": fn["id"]}, headers=HEADERS)
    assert response.status_code == 409

    response = client.delete(f"{path}/{fn['id']}", headers=HEADERS)
    assert response.status_code == 204
    assert client.get(path, headers=HEADERS).json() == []


def test_template_graph(client):
    task, voltage, _, _ = _build_install_survey(client)
    response = client.get(f"/task-templates/{task['id']}/graph", headers=HEADERS)
    assert response.status_code == 200
    graph = response.json()
    assert graph["template"]["name"] == "Install Survey"
    assert graph["fns"][0]["template"]["name"] == "Site Check"
    assert graph["fns"][0]["fields"][0]["inputs"][0]["template"]["id"] == voltage["id"]


def test_conditional_action_target_must_match_type(client):
    task, voltage, _, _ = _build_install_survey(client)
    response = client.post(
        "/conditional-actions",
        json={
            "input_template_id": voltage["id"],
            "name": "Wrong",
            "type": "MARK_TASK_AS_DONE",
            "target": {"kind": "input", "input_template_id": voltage["id"]},
        },
        headers=HEADERS,
    )
    assert response.status_code == 422

    response = client.post(
        "/conditional-actions",
        json={
            "input_template_id": voltage["id"],
            "name": "No target",
            "type": "MARK_FN_AS_DONE",
        },
        headers=HEADERS,
    )
    assert response.status_code == 422


def test_conditional_action_listing(client):
    _, voltage, notes, rule = _build_install_survey(client)
    assert rule["target"] == {"kind": "input", "input_template_id": notes["id"]}
    response = client.get(
        f"/input-templates/{voltage['id']}/conditional-actions", headers=HEADERS
    )
    assert [a["id"] for a in response.json()] == [rule["id"]]


def test_instantiate_and_write_value(client, user_headers, actor):
    task, voltage, notes, rule = _build_install_survey(client)
    instance = _open_task(client, user_headers, task["id"], actor.id)

    assert instance["code"].startswith("TSK-")
    assert instance["priority"] == "HIGH"
    inputs = instance["fns"][0]["fields"][0]["inputs"]
    assert [i["input_template_id"] for i in inputs] == [voltage["id"]]

    response = client.put(
        f"/input-instances/{inputs[0]['id']}/value",
        json={"value": 250},
        headers=user_headers,
    )
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["input"]["value"] == 250
    assert [a["action_id"] for a in body["evaluation"]["applied"]] == [rule["id"]]

    tree = client.get(f"/task-instances/{instance['id']}", headers=HEADERS).json()
    inputs = tree["fns"][0]["fields"][0]["inputs"]
    assert len(inputs) == 2
    dynamic = inputs[1]
    assert dynamic["input_template_id"] == notes["id"]
    assert dynamic["is_dynamically_created"] is True


def test_invalid_value_returns_422(client, user_headers, actor):
    task, _, _, _ = _build_install_survey(client)
    instance = _open_task(client, user_headers, task["id"], actor.id)
    input_id = instance["fns"][0]["fields"][0]["inputs"][0]["id"]

    response = client.put(
        f"/input-instances/{input_id}/value", json={"value": "abc"}, headers=user_headers
    )
    assert response.status_code == 422


def test_close_task_then_write_conflicts(client, user_headers, actor):
    task, _, _, _ = _build_install_survey(client)
    instance = _open_task(client, user_headers, task["id"], actor.id)
    input_id = instance["fns"][0]["fields"][0]["inputs"][0]["id"]

    response = client.post(
        f"/task-instances/{instance['id']}/close", headers=user_headers
    )
    assert response.json()["closed"] is True
    again = client.post(f"/task-instances/{instance['id']}/close", headers=user_headers)
    assert again.json()["closed"] is False
    assert again.json()["task_instance"]["closed_at"] == response.json()["task_instance"]["closed_at"]

    response = client.put(
        f"/input-instances/{input_id}/value", json={"value": 1}, headers=user_headers
    )
    assert response.status_code == 409


def test_close_choice_fn_with_follow_up(client, user_headers, actor):
    task = _post(client, "/task-templates", {"name": "Quote"})
    decide = _post(client, "/fn-templates", {"name": "Decide", "is_choice": True})
    accept = _post(client, "/fn-templates", {"name": "Accept"})
    _post(client, f"/task-templates/{task['id']}/fn-templates", {"child_id": decide["id"]})
    instance = _open_task(client, user_headers, task["id"], actor.id)
    fn_id = instance["fns"][0]["id"]

    response = client.post(
        f"/fn-instances/{fn_id}/close",
        json={"follow_up_fn_template_id": accept["id"]},
        headers=user_headers,
    )
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["closed"] is True
    assert body["follow_up"]["fn_template_id"] == accept["id"]
    assert body["follow_up"]["previous_fn_instance_id"] == fn_id


def test_archive_hides_task_from_listing(client, user_headers, actor):
    task = _post(client, "/task-templates", {"name": "T"})
    instance = _open_task(client, user_headers, task["id"], actor.id)

    response = client.post(
        f"/task-instances/{instance['id']}/archive", headers=user_headers
    )
    assert response.json()["is_archived"] is True
    assert client.get("/task-instances", headers=HEADERS).json() == []
    listed = client.get(
        "/task-instances", params={"include_archived": True}, headers=HEADERS
    ).json()
    assert [t["id"] for t in listed] == [instance["id"]]


def test_instantiate_unknown_template_returns_404(client, user_headers, actor):
    response = client.post(
        "/task-instances",
        json={"task_template_id": 777, "customer_id": 1, "assignee_id": actor.id},
        headers=user_headers,
    )
    assert response.status_code == 404


def test_activity_logs_and_metrics(client, user_headers, actor):
    task = _post(client, "/task-templates", {"name": "T"})
    _open_task(client, user_headers, task["id"], actor.id)

    logs = client.get(
        "/analytics/activity-logs", params={"activity_type": "CREATE"}, headers=HEADERS
    ).json()
    assert logs[0]["entity_type"] == "TASK"
    assert logs[0]["user_id"] == actor.id

    slowest = client.get("/analytics/metrics/slowest", headers=HEADERS).json()
    assert any(s["operation"] == "POST /task-templates" for s in slowest)
    rate = client.get(
        "/analytics/metrics/error-rate",
        params={"operation": "POST /task-templates"},
        headers=HEADERS,
    ).json()
    assert rate["total"] >= 1
    assert rate["error_rate"] == 0.0


def test_jobs_endpoints(client):
    jobs = client.get("/jobs", headers=HEADERS).json()
    assert [j["name"] for j in jobs] == ["activityLogCleanup", "dailyStatistics"]
    assert jobs[1]["at"] == config.STATISTICS_TIME.isoformat()

    response = client.post("/jobs/activityLogCleanup/run", headers=HEADERS)
    assert response.json() == {"name": "activityLogCleanup", "completed": True}

    response = client.post("/jobs/nope/run", headers=HEADERS)
    assert response.status_code == 404


def test_latest_statistic_missing(client):
    response = client.get("/analytics/statistics/USER_ACTIVITY/latest", headers=HEADERS)
    assert response.status_code == 404


def test_statistic_by_id(client, db):
    statistic = analytics.create_statistic(
        db, "CUSTOM_METRIC", "daily", "DAILY", "2024-05-01", "2024-05-02", {"value": 7}
    )
    statistic_id = statistic.id
    db.close()

    response = client.get(f"/analytics/statistics/{statistic_id}", headers=HEADERS)
    assert response.status_code == 200
    assert response.json()["data"] == {"value": 7}

    response = client.delete(f"/analytics/statistics/{statistic_id}", headers=HEADERS)
    assert response.status_code == 204
    response = client.get(f"/analytics/statistics/{statistic_id}", headers=HEADERS)
    assert response.status_code == 404


def test_average_duration_endpoint(client):
    _post(client, "/task-templates", {"name": "T"})
    response = client.get(
        "/analytics/metrics/average",
        params={"operation": "POST /task-templates"},
        headers=HEADERS,
    )
    assert response.status_code == 200
    assert response.json()["operation"] == "POST /task-templates"
    assert response.json()["avg_duration_ms"] >= 0


def test_requests_record_metrics_without_locking(client, db):
    created = _post(client, "/task-templates", {"name": "Survey"})
    response = client.get(f"/task-templates/{created['id']}", headers=HEADERS)
    assert response.status_code == 200, response.text
    response = client.get("/task-templates", headers=HEADERS)
    assert response.status_code == 200, response.text

    operations = [
        m.operation for m in db.query(PerformanceMetric).order_by(PerformanceMetric.id)
    ]
    assert operations == [
        "POST /task-templates",
        "GET /task-templates/{template_id}",
        "GET /task-templates",
    ]


def test_parent_company_and_customer_link(client):
    company = _post(
        client,
        "/parent-companies",
        {"name": "Acme Holdings", "email": "ops@acme.example", "city": "Pune"},
    )
    assert client.get("/parent-companies", headers=HEADERS).json()[0]["name"] == (
        "Acme Holdings"
    )
    response = client.get(f"/parent-companies/{company['id']}", headers=HEADERS)
    assert response.json()["city"] == "Pune"
    assert client.get("/parent-companies/999", headers=HEADERS).status_code == 404

    linked = _post(
        client, "/customers", {"name": "Acme Power", "parent_company_id": company["id"]}
    )
    _post(client, "/customers", {"name": "Standalone"})
    response = client.get(
        "/customers", params={"parent_company_id": company["id"]}, headers=HEADERS
    )
    assert [c["id"] for c in response.json()] == [linked["id"]]

    response = client.post(
        "/customers", json={"name": "Orphan", "parent_company_id": 999}, headers=HEADERS
    )
    assert response.status_code == 404


def test_metadata_templates_and_instances(client, user_headers, actor):
    task, voltage, _, _ = _build_install_survey(client)
    response = client.post("/metadata-templates", json={}, headers=HEADERS)
    assert response.status_code == 422

    metadata = _post(client, "/metadata-templates", {"input_template_id": voltage["id"]})
    response = client.get(
        "/metadata-templates",
        params={"input_template_id": voltage["id"]},
        headers=HEADERS,
    )
    assert [m["id"] for m in response.json()] == [metadata["id"]]
    graph = client.get(f"/task-templates/{task['id']}/graph", headers=HEADERS).json()
    assert graph["metadata_template_ids"] == [metadata["id"]]

    task_instance = _open_task(client, user_headers, task["id"], actor.id)
    assert task_instance["metadata_template_ids"] == [metadata["id"]]

    path = f"/metadata-templates/{metadata['id']}"
    assert client.delete(path, headers=HEADERS).status_code == 409
    assert client.get(path, headers=HEADERS).status_code == 200


def test_unused_metadata_template_can_be_deleted(client):
    task = _post(client, "/task-templates", {"name": "T"})
    metadata = _post(client, "/metadata-templates", {"task_template_id": task["id"]})

    task_path = f"/task-templates/{task['id']}"
    # The task template is still referenced while the metadata template exists.
    assert client.delete(task_path, headers=HEADERS).status_code == 409

    path = f"/metadata-templates/{metadata['id']}"
    assert client.delete(path, headers=HEADERS).status_code == 204
    assert client.get(path, headers=HEADERS).status_code == 404
    assert client.delete(task_path, headers=HEADERS).status_code == 204
