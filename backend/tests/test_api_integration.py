from datetime import datetime, timedelta, timezone

import pytest

PERIOD = {"year": 2024, "semester": "Regular 1", "program": "Regular"}


@pytest.fixture()
def staff(client, login_as):
    """Head and chair accounts, one lecturer position, two instructors and one active course."""
    head = login_as("head_of_faculty")
    chair = login_as("chair_head", chair="Software")

    position = client.post("/api/positions/", json={"name": "Lecturer", "exemption_hours": 0}, headers=head)
    assert position.status_code == 201

    instructors = []
    for name in ("Abebe", "Sara"):
        response = client.post(
            "/api/instructors/",
            json={
                "name": name,
                "email": f"{name.lower()}@example.edu",
                "chair": "Software",
                "position_id": position.json()["id"],
            },
            headers=head,
        )
        assert response.status_code == 201, response.text
        instructors.append(response.json()["id"])

    course = create_active_course(client, head, chair, code="SE-3102", lecture_hours=3, lab_hours=2)
    return {"head": head, "chair": chair, "instructors": instructors, "course": course}


def create_active_course(client, head, chair, *, code, lecture_hours=3, lab_hours=0):
    created = client.post(
        "/api/courses/",
        json={"code": code, "name": f"Course {code}", "chair": "Software", "lecture_hours": lecture_hours, "lab_hours": lab_hours},
        headers=head,
    )
    assert created.status_code == 201, created.text
    assert created.json()["status"] == "draft"
    course_id = created.json()["id"]

    published = client.post("/api/courses/assign", json={"courseIds": [course_id], "chair": "Software"}, headers=head)
    assert published.json()["succeeded"] == 1
    accepted = client.post(
        "/api/courses/bulk-update",
        json={"courseIds": [course_id], "updates": {"status": "active"}, "actionBy": "Software"},
        headers=chair,
    )
    assert accepted.json()["results"][0]["toStatus"] == "active"
    return course_id


def manual_payload(instructor_id, course_id, section="A", **extra):
    return {
        **PERIOD,
        "instructorId": instructor_id,
        "courseId": course_id,
        "section": section,
        "assignedBy": "Software",
        **extra,
    }


def open_form(client, headers, course_ids, *, chair="Software", **extra):
    now = datetime.now(timezone.utc)
    response = client.post(
        "/api/preference-forms/",
        json={
            **PERIOD,
            "chair": chair,
            "submissionStart": (now - timedelta(days=1)).isoformat(),
            "submissionEnd": (now + timedelta(days=7)).isoformat(),
            "courses": [{"courseId": course_id} for course_id in course_ids],
            "allInstructors": True,
            **extra,
        },
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


def test_course_lifecycle_endpoints(client, staff):
    head, chair = staff["head"], staff["chair"]
    course = client.get(f"/api/courses/{staff['course']}", headers=chair).json()
    assert course["status"] == "active"
    assert course["assigned_to"] == "Software"

    # A chair cannot archive an active course.
    response = client.post(
        "/api/courses/bulk-update",
        json={"courseIds": [staff["course"], "missing"], "updates": {"status": "archived"}},
        headers=chair,
    )
    body = response.json()
    assert response.status_code == 200
    assert body["failed"] == 2
    assert [item["error"]["kind"] for item in body["results"]] == ["InvalidStatusTransition", "NotFound"]

    same = client.post(
        "/api/courses/bulk-update",
        json={"courseIds": [staff["course"]], "updates": {"status": "active"}},
        headers=chair,
    ).json()
    assert same["results"][0]["status"] == "unchanged"

    archived = client.post(
        "/api/courses/bulk-update",
        json={"courseIds": [staff["course"]], "updates": {"status": "archived"}},
        headers=head,
    ).json()
    assert archived["succeeded"] == 1
    course = client.get(f"/api/courses/{staff['course']}", headers=head).json()
    assert course["assigned_to"] is None

    listed = client.get("/api/courses/", params={"status": "archived"}, headers=head).json()
    assert [item["id"] for item in listed] == [staff["course"]]


def test_course_update_cannot_change_status(client, staff):
    response = client.put(f"/api/courses/{staff['course']}", json={"status": "draft"}, headers=staff["head"])
    assert response.status_code == 422

    renamed = client.put(f"/api/courses/{staff['course']}", json={"name": "OOD"}, headers=staff["chair"])
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "OOD"


@pytest.mark.parametrize("field", ["name", "code", "lecture_hours", "credit_hour", "curriculum_year"])
def test_course_update_rejects_null_for_required_fields(client, staff, field):
    response = client.put(f"/api/courses/{staff['course']}", json={field: None}, headers=staff["head"])
    assert response.status_code == 422

    course = client.get(f"/api/courses/{staff['course']}", headers=staff["head"]).json()
    assert course[field] is not None


def test_course_update_can_clear_descriptive_fields(client, staff):
    response = client.put(f"/api/courses/{staff['course']}", json={"chair": None, "location": None}, headers=staff["head"])
    assert response.status_code == 200
    assert response.json()["chair"] is None


def test_staffed_course_hours_are_frozen(client, staff):
    first = staff["instructors"][0]
    created = client.post("/api/assignments/", json=manual_payload(first, staff["course"]), headers=staff["chair"])
    assert created.status_code == 201

    changed = client.put(f"/api/courses/{staff['course']}", json={"lab_hours": 4}, headers=staff["head"])
    assert changed.status_code == 409
    assert "lab_hours" in changed.json()["detail"]

    # Restating the current hours alongside other edits is not a change.
    unchanged = client.put(
        f"/api/courses/{staff['course']}", json={"lecture_hours": 3, "name": "Design"}, headers=staff["head"]
    )
    assert unchanged.status_code == 200

    course = client.get(f"/api/courses/{staff['course']}", headers=staff["head"]).json()
    assert (course["lecture_hours"], course["lab_hours"]) == (3, 2)
    sub = client.get(f"/api/assignments/get/{first}", headers=staff["chair"]).json()[0]
    assert sub["workloadHours"] == 5

    client.delete(f"/api/assignments/sub/{created.json()['assignmentId']}/{created.json()['id']}", headers=staff["chair"])
    freed = client.put(f"/api/courses/{staff['course']}", json={"lab_hours": 4}, headers=staff["head"])
    assert freed.status_code == 200


def test_instructors_cannot_manage_courses(client, staff, login_as):
    instructor = login_as("instructor", chair="Software", email="new.teacher@example.edu")
    response = client.post("/api/courses/unassign", json={"courseIds": [staff["course"]]}, headers=instructor)
    assert response.status_code == 403


def test_manual_assignment_and_capacity(client, staff):
    first = staff["instructors"][0]
    response = client.post("/api/assignments/", json=manual_payload(first, staff["course"]), headers=staff["chair"])

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["workloadHours"] == 5
    assert body["courseCode"] == "SE-3102"
    assert body["instructorName"] == "Abebe"
    assert body["assignmentReason"] == "Manual assignment."

    capacity = client.get(
        f"/api/instructors/{first}/capacity",
        params={"year": 2024, "program": "Regular", "semester": "Regular 1"},
        headers=staff["chair"],
    ).json()
    assert capacity["capacity"] == 12
    assert capacity["remaining"] == 7

    duplicate = client.post("/api/assignments/", json=manual_payload(first, staff["course"]), headers=staff["chair"])
    assert duplicate.status_code == 400
    assert duplicate.json()["kind"] == "DuplicateAssignment"

    delete = client.delete(f"/api/courses/{staff['course']}", headers=staff["head"])
    assert delete.status_code == 409


def test_manual_assignment_errors(client, staff):
    first = staff["instructors"][0]
    over = client.post(
        "/api/assignments/",
        json=manual_payload(first, staff["course"], workload=13),
        headers=staff["chair"],
    )
    assert over.status_code == 400
    assert over.json()["kind"] == "CapacityExceeded"

    missing = client.post("/api/assignments/", json=manual_payload("ghost", staff["course"]), headers=staff["chair"])
    assert missing.status_code == 404
    assert missing.json()["kind"] == "NotFound"

    mismatched = client.post(
        "/api/assignments/",
        json={**manual_payload(first, staff["course"]), "semester": "Summer"},
        headers=staff["chair"],
    )
    assert mismatched.status_code == 422


def test_bulk_manual_assignment(client, staff):
    first, second = staff["instructors"]
    payload = {
        **PERIOD,
        "assignedBy": "Software",
        "assignments": [
            {"instructorId": first, "courseId": staff["course"], "section": "A"},
            {"instructorId": first, "courseId": staff["course"], "section": "A"},
            {"instructorId": second, "courseId": staff["course"], "section": "B", "labDivision": "Yes"},
        ],
    }

    response = client.post("/api/assignments/manual", json=payload, headers=staff["chair"])

    assert response.status_code == 201
    body = response.json()
    assert (body["assigned"], body["failed"]) == (2, 1)
    assert [item["status"] for item in body["results"]] == ["assigned", "failed", "assigned"]
    assert body["results"][1]["error"]["kind"] == "DuplicateAssignment"
    assert body["results"][2]["subAssignment"]["workloadHours"] == 7

    repeat = client.post("/api/assignments/manual", json={**payload, "assignments": payload["assignments"][:1]}, headers=staff["chair"])
    assert repeat.status_code == 400
    assert repeat.json()["failed"] == 1


def test_common_manual_route_fixes_the_program(client, staff):
    payload = {
        "year": 2024,
        "semester": "Regular 2",
        "assignedBy": "Software",
        "assignments": [{"instructorId": staff["instructors"][0], "courseId": staff["course"], "section": "A"}],
    }
    response = client.post("/api/assignments/common/manual", json=payload, headers=staff["chair"])

    assert response.status_code == 201
    assert response.json()["results"][0]["subAssignment"]["program"] == "Common"


def test_automatic_assignment_follows_preferences(client, staff):
    first, second = staff["instructors"]
    other = create_active_course(client, staff["head"], staff["chair"], code="SE-3101", lecture_hours=3)
    form = open_form(client, staff["chair"], [staff["course"], other])
    for instructor_id, ranking in ((first, [other, staff["course"]]), (second, [staff["course"]])):
        response = client.put(
            "/api/preferences/",
            json={
                "formId": form["id"],
                "instructorId": instructor_id,
                "preferences": [{"courseId": course_id, "rank": rank} for rank, course_id in enumerate(ranking, start=1)],
            },
            headers=staff["chair"],
        )
        assert response.status_code == 200, response.text

    response = client.post(
        "/api/assignments/auto",
        json={
            "year": 2024,
            "semester": "Regular 1",
            "assignedBy": "Software",
            "instructors": [first, second, "ghost"],
            "courses": [{"courseId": staff["course"], "section": "A"}, {"courseId": other, "section": "A"}],
        },
        headers=staff["chair"],
    )

    assert response.status_code == 200, response.text
    body = response.json()
    owners = {item["courseId"]: item["instructorId"] for item in body["assigned"]}
    assert owners == {staff["course"]: second, other: first}
    assert all(item["preferenceRank"] == 1 for item in body["assigned"])
    assert body["unfilled"] == []
    assert body["unknownInstructors"] == ["ghost"]

    listed = client.get("/api/assignments/", headers=staff["head"]).json()
    assert len(listed) == 1
    assert len(listed[0]["subAssignments"]) == 2


def test_edit_and_delete_sub_assignment(client, staff):
    first, second = staff["instructors"]
    created = client.post("/api/assignments/", json=manual_payload(first, staff["course"]), headers=staff["chair"]).json()
    path = f"/api/assignments/sub/{created['assignmentId']}/{created['id']}"

    edited = client.put(path, json={"labDivision": "Yes", "instructorId": second}, headers=staff["chair"])
    assert edited.status_code == 200, edited.text
    assert edited.json()["workloadHours"] == 7
    assert edited.json()["instructorId"] == second

    empty = client.put(path, json={}, headers=staff["chair"])
    assert empty.status_code == 422

    for_second = client.get(f"/api/assignments/get/{second}", headers=staff["chair"]).json()
    assert [item["id"] for item in for_second] == [created["id"]]
    assert client.get(f"/api/assignments/get/{first}", headers=staff["chair"]).json() == []

    deleted = client.delete(path, headers=staff["chair"])
    assert deleted.status_code == 200
    assert deleted.json()["aggregatePruned"] is True
    assert deleted.json()["deleted"]["workloadHours"] == 7

    gone = client.delete(path, headers=staff["chair"])
    assert gone.status_code == 404
    assert gone.json()["kind"] == "NotFound"

    capacity = client.get(
        f"/api/instructors/{second}/capacity", params={"year": 2024, "program": "Regular", "semester": "Regular 1"}, headers=staff["head"]
    ).json()
    assert capacity["remaining"] == 12

    logs = client.get("/api/activity/logs", params={"action": "assignment."}, headers=staff["head"]).json()
    assert sorted(item["action"] for item in logs) == ["assignment.created", "assignment.deleted", "assignment.updated"]
    assert {item["actor_role"] for item in logs} == {"chair_head"}


def test_coc_scope_covers_configured_chairs(client, staff):
    client.post("/api/assignments/", json=manual_payload(staff["instructors"][0], staff["course"]), headers=staff["chair"])
    client.post(
        "/api/assignments/",
        json=manual_payload(staff["instructors"][1], staff["course"], section="B", assignedBy="Registry"),
        headers=staff["head"],
    )

    scoped = client.get("/api/assignments/automatic", params={"assignedBy": "COC", "year": 2024}, headers=staff["head"]).json()
    assert [item["assignedBy"] for item in scoped] == ["Software"]

    by_chair = client.get("/api/assignments/chair/Registry", headers=staff["head"]).json()
    assert [item["assignedBy"] for item in by_chair] == ["Registry"]


def test_instructor_preferences_are_private(client, staff, login_as):
    teacher = login_as("instructor", chair="Software", email="abebe@example.edu")
    first, second = staff["instructors"]
    form = open_form(client, staff["chair"], [staff["course"]])
    entry = {"formId": form["id"], "preferences": [{"courseId": staff["course"], "rank": 3}]}

    own = client.put("/api/preferences/", json={**entry, "instructorId": first}, headers=teacher)
    assert own.status_code == 200
    assert own.json()["preferences"] == [{"courseId": staff["course"], "rank": 1}]

    other = client.put("/api/preferences/", json={**entry, "instructorId": second}, headers=teacher)
    assert other.status_code == 403

    conflict = client.put(
        "/api/preferences/",
        json={**entry, "instructorId": first, "preferences": [{"courseId": staff["course"], "rank": 0}]},
        headers=teacher,
    )
    assert conflict.status_code == 400
    assert conflict.json()["kind"] == "PreferenceConflict"

    visible = client.get("/api/preferences/", headers=teacher).json()
    assert [item["instructorId"] for item in visible] == [first]


def test_complaint_workflow(client, staff, login_as):
    teacher = login_as("instructor", chair="Software", email="abebe@example.edu")
    created = client.post(
        "/api/assignments/", json=manual_payload(staff["instructors"][0], staff["course"]), headers=staff["chair"]
    ).json()

    complaint = client.post(
        "/api/complaints/",
        json={"assignmentId": created["assignmentId"], "subAssignmentId": created["id"], "reason": "Clashes with my lab"},
        headers=teacher,
    )
    assert complaint.status_code == 201
    assert complaint.json()["status"] == "Pending"

    pending = client.get("/api/complaints/", params={"status": "Pending"}, headers=staff["chair"]).json()
    assert len(pending) == 1

    resolve_path = f"/api/complaints/{complaint.json()['id']}/resolve"
    resolved = client.put(resolve_path, json={"status": "Resolved", "resolveNote": "Moved to B"}, headers=staff["chair"])
    assert resolved.json()["status"] == "Resolved"
    assert client.put(resolve_path, json={"status": "Rejected"}, headers=staff["chair"]).status_code == 409

    logs = client.get("/api/activity/logs", params={"entity_type": "complaint"}, headers=staff["head"]).json()
    assert [item["action"] for item in logs] == ["complaint.closed"]


def test_preference_form_lifecycle(client, staff, login_as):
    first, second = staff["instructors"]
    form = open_form(client, staff["chair"], [staff["course"]], allInstructors=False, instructors=[first], maxPreferences=1)
    assert form["isOpen"] is True
    assert form["courses"] == [{"courseId": staff["course"], "section": "A", "sections": 1, "labDivision": "No"}]

    window = {"submissionStart": form["submissionStart"], "submissionEnd": form["submissionEnd"]}
    same_period = {**PERIOD, **window, "courses": [{"courseId": staff["course"]}], "allInstructors": True}
    duplicate = client.post("/api/preference-forms/", json={**same_period, "chair": "Software"}, headers=staff["head"])
    assert duplicate.status_code == 409

    foreign = client.post("/api/preference-forms/", json={**same_period, "chair": "Database"}, headers=staff["chair"])
    assert foreign.status_code == 403

    uninvited = client.put(
        "/api/preferences/",
        json={"formId": form["id"], "instructorId": second, "preferences": [{"courseId": staff["course"], "rank": 1}]},
        headers=staff["chair"],
    )
    assert uninvited.status_code == 400
    assert uninvited.json()["kind"] == "PreferenceConflict"

    invited = client.put(
        "/api/preferences/",
        json={"formId": form["id"], "instructorId": first, "preferences": [{"courseId": staff["course"], "rank": 1}]},
        headers=staff["chair"],
    )
    assert invited.status_code == 200
    assert invited.json()["formId"] == form["id"]

    teacher = login_as("instructor", chair="Software", email="sara@example.edu")
    assert client.get("/api/preference-forms/active", headers=teacher).json() == []
    widened = client.put(f"/api/preference-forms/{form['id']}", json={"instructors": [first, second]}, headers=staff["chair"])
    assert widened.status_code == 200
    assert [item["id"] for item in client.get("/api/preference-forms/active", headers=teacher).json()] == [form["id"]]

    blocked = client.delete(f"/api/preference-forms/{form['id']}", headers=staff["chair"])
    assert blocked.status_code == 409


def test_preference_form_window_rules(client, staff):
    now = datetime.now(timezone.utc)
    inverted = client.post(
        "/api/preference-forms/",
        json={
            **PERIOD,
            "chair": "Software",
            "submissionStart": now.isoformat(),
            "submissionEnd": (now - timedelta(days=1)).isoformat(),
            "courses": [{"courseId": staff["course"]}],
            "allInstructors": True,
        },
        headers=staff["chair"],
    )
    assert inverted.status_code == 422

    form = open_form(client, staff["chair"], [staff["course"]])
    closed = client.put(
        f"/api/preference-forms/{form['id']}",
        json={"submissionEnd": (now - timedelta(hours=1)).isoformat(), "submissionStart": (now - timedelta(days=2)).isoformat()},
        headers=staff["chair"],
    )
    assert closed.status_code == 200
    assert closed.json()["isOpen"] is False

    late = client.put(
        "/api/preferences/",
        json={"formId": form["id"], "instructorId": staff["instructors"][0], "preferences": [{"courseId": staff["course"], "rank": 1}]},
        headers=staff["chair"],
    )
    assert late.status_code == 400
    assert late.json()["kind"] == "PreferenceConflict"

    unknown_course = client.put(
        f"/api/preference-forms/{form['id']}", json={"courses": [{"courseId": "ghost"}]}, headers=staff["chair"]
    )
    assert unknown_course.status_code == 404

    deleted = client.delete(f"/api/preference-forms/{form['id']}", headers=staff["chair"])
    assert deleted.status_code == 204
    assert client.get(f"/api/preference-forms/{form['id']}", headers=staff["chair"]).status_code == 404
