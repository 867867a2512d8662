"""
Seed Script - Populates a running TypingDesk API with sample data.

Signs tokens with the server's JWT secret, logs in an admin and a few
students, approves the students, then creates tests, a batch and a shift
and wires up their memberships through the API.

The admin email must be listed in the server's ADMIN_EMAILS and
JWT_SECRET_KEY must match the server's.

Usage:
    python seed_data.py                              # Uses default URL
    python seed_data.py http://localhost:8000         # Custom API URL
"""

import os
import sys

import httpx

from typingdesk.auth import create_access_token

ADMIN = ("seed-admin", os.getenv("SEED_ADMIN_EMAIL", "admin@typingdesk.local"), "Seed Admin")
STUDENTS = [
    ("seed-student-1", "asha@typingdesk.local", "Asha Verma"),
    ("seed-student-2", "ravi@typingdesk.local", "Ravi Kumar"),
    ("seed-student-3", "meera@typingdesk.local", "Meera Nair"),
]
TESTS = [
    {"title": "Legal dictation 80 wpm", "duration": 600,
     "reference_text": "The court is of the opinion that the petition deserves to be allowed."},
    {"title": "Warm-up paragraph", "duration": 300,
     "reference_text": "Practice makes a typist accurate before it makes one fast."},
]


def _headers(subject, email, name):
    return {"Authorization": "Bearer {}".format(create_access_token(subject, email, name))}


def _call(client, method, path, headers, **kwargs):
    resp = client.request(method, path, headers=headers, **kwargs)
    if resp.status_code >= 400:
        print("  {} {} failed ({}): {}".format(method, path, resp.status_code, resp.text))
        sys.exit(1)
    return resp.json()


def main():
    api_url = sys.argv[1] if len(sys.argv) > 1 else os.getenv("API_URL", "http://localhost:8000")
    admin_headers = _headers(*ADMIN)

    with httpx.Client(base_url=api_url, timeout=30.0) as client:
        login = _call(client, "POST", "/api/v1/auth/login", admin_headers)
        if login["user"]["role"] == "student":
            print("Error: {} is not listed in the server's ADMIN_EMAILS".format(ADMIN[1]))
            sys.exit(1)
        print("Admin ready: {}".format(ADMIN[1]))

        student_ids = []
        for subject, email, name in STUDENTS:
            user = _call(client, "POST", "/api/v1/auth/login", _headers(subject, email, name))["user"]
            student_ids.append(user["id"])
        approved = _call(client, "PATCH", "/api/v1/admin/students/bulk/approve", admin_headers,
                         json={"student_ids": student_ids})
        print("Students: {} logged in, {} newly approved".format(len(student_ids), approved["modified_count"]))

        test_ids = [_call(client, "POST", "/api/v1/tests", admin_headers, json=t)["test"]["id"] for t in TESTS]
        print("Tests created: {}".format(len(test_ids)))

        batch = _call(client, "POST", "/api/v1/batches", admin_headers, json={
            "name": "Morning Stenography",
            "description": "Seeded batch",
            "max_students": 10,
            "assigned_students": student_ids[:2],
            "assigned_tests": test_ids,
        })["batch"]
        _call(client, "PUT", "/api/v1/batches/{}/students/{}".format(batch["id"], student_ids[2]), admin_headers)
        print("Batch '{}' created with {} students".format(batch["name"], len(student_ids)))

        shift = _call(client, "POST", "/api/v1/shifts", admin_headers, json={
            "name": "Shift A", "duration_minutes": 30, "test_id": test_ids[0],
        })["shift"]
        for student_id in student_ids:
            _call(client, "POST", "/api/v1/admin/students/{}/shifts/{}".format(student_id, shift["id"]),
                  admin_headers)
        print("Shift '{}' assigned to {} students".format(shift["name"], len(student_ids)))

    print()
    print("Seeding complete. Visit {}/docs to explore the API.".format(api_url))


if __name__ == "__main__":
    main()
