import os
import sys
import tempfile
import unittest
from datetime import datetime, timezone

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src")))

# 10:00 on 2024-03-20 in UTC+8
FIXED_NOW = datetime(2024, 3, 20, 2, 0, tzinfo=timezone.utc)
AUTH = ("admin", "s3cret")


class WebAppTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.temp_db = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
        cls.temp_db.close()
        os.environ["LESSONLOG_DB_PATH"] = cls.temp_db.name

        try:
            from fastapi.testclient import TestClient
        except Exception as exc:  # pragma: no cover
            cls.skip_reason = f"fastapi testclient not available: {exc}"
            cls.client = None
            return

        from lessonlog.web.app import app, get_clock, get_config

        get_config.cache_clear()
        app.dependency_overrides[get_clock] = lambda: (lambda: FIXED_NOW)
        cls.app = app
        cls.client = TestClient(app)
        cls.skip_reason = ""

    @classmethod
    def tearDownClass(cls):
        if getattr(cls, "app", None):
            cls.app.dependency_overrides.clear()
            from lessonlog.web.app import get_config

            get_config.cache_clear()
        if getattr(cls, "temp_db", None):
            try:
                os.unlink(cls.temp_db.name)
            except FileNotFoundError:
                pass

    def setUp(self):
        if not self.client:
            self.skipTest(self.skip_reason)
        os.environ["LESSONLOG_DB_PATH"] = self.temp_db.name
        from lessonlog import auth
        from lessonlog.storage import db

        conn = db.connect(self.temp_db.name)
        try:
            db.init_db(conn)
            conn.execute("DELETE FROM lesson_records")
            conn.execute("DELETE FROM courses")
            conn.execute("DELETE FROM users")
            conn.commit()
            auth.create_user(conn, *AUTH)
        finally:
            conn.close()

    def _course(self, name="Math", grade="G5"):
        resp = self.client.post("/api/courses", json={"name": name, "grade": grade}, auth=AUTH)
        self.assertEqual(resp.status_code, 201, resp.text)
        return resp.json()

    def _record(self, course_id, date="2024-03-02", hours=1.5, notes=""):
        resp = self.client.post(
            "/api/records",
            json={"courseId": course_id, "date": date, "hours": hours, "notes": notes},
            auth=AUTH,
        )
        self.assertEqual(resp.status_code, 201, resp.text)
        return resp.json()

    def test_health(self):
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["status"], "ok")

    def test_requires_login(self):
        self.assertEqual(self.client.get("/api/courses").status_code, 401)
        self.assertEqual(self.client.get("/api/courses", auth=("admin", "wrong")).status_code, 401)
        self.assertEqual(self.client.get("/api/courses", auth=AUTH).status_code, 200)

    def test_course_crud_and_conflicts(self):
        course = self._course()
        resp = self.client.post("/api/courses", json={"name": "Math", "grade": "G5"}, auth=AUTH)
        self.assertEqual(resp.status_code, 409)
        resp = self.client.post("/api/courses", json={"name": "", "grade": "G5"}, auth=AUTH)
        self.assertEqual(resp.status_code, 400)
        resp = self.client.get(f"/api/courses/{course['id']}", auth=AUTH)
        self.assertEqual(resp.json()["name"], "Math")
        self.assertEqual(self.client.get("/api/courses/9999", auth=AUTH).status_code, 404)

    def test_rename_cascades_to_records(self):
        course = self._course()
        other = self._course("Science", "G6")
        record = self._record(course["id"])
        resp = self.client.put(f"/api/courses/{course['id']}", json={"name": "Algebra", "grade": "G5"}, auth=AUTH)
        self.assertEqual(resp.status_code, 200)
        fetched = self.client.get(f"/api/records/{record['id']}", auth=AUTH).json()
        self.assertEqual(fetched["courseName"], "Algebra")

        resp = self.client.put(f"/api/courses/{course['id']}", json={"name": "Science", "grade": "G6"}, auth=AUTH)
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(self.client.get(f"/api/courses/{other['id']}", auth=AUTH).json()["name"], "Science")

    def test_delete_course_blocked_by_records(self):
        course = self._course()
        record = self._record(course["id"])
        resp = self.client.delete(f"/api/courses/{course['id']}", auth=AUTH)
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["blocking_count"], 1)

        self.assertEqual(self.client.delete(f"/api/records/{record['id']}", auth=AUTH).status_code, 200)
        self.assertEqual(self.client.delete(f"/api/records/{record['id']}", auth=AUTH).status_code, 404)
        self.assertEqual(self.client.delete(f"/api/courses/{course['id']}", auth=AUTH).status_code, 200)

    def test_record_validation(self):
        course = self._course()
        resp = self.client.post(
            "/api/records", json={"courseId": course["id"], "date": "2024-03-02", "hours": 0.25}, auth=AUTH
        )
        self.assertEqual(resp.status_code, 400)
        resp = self.client.post(
            "/api/records", json={"courseId": course["id"], "date": "2024-03-21", "hours": 1}, auth=AUTH
        )
        self.assertEqual(resp.status_code, 400)
        resp = self.client.post("/api/records", json={"courseId": 9999, "date": "2024-03-02", "hours": 1}, auth=AUTH)
        self.assertEqual(resp.status_code, 404)
        record = self._record(course["id"], date="2024-03-20", hours=0.5)
        self.assertEqual(record["hours"], 0.5)
        self.assertEqual(record["civilDate"], "2024-03-20")
        self.assertEqual(record["date"], "2024-03-19T16:00:00.000Z")

    def test_record_list_search_and_paging(self):
        math = self._course()
        science = self._course("Science", "G6")
        for day in ("01", "02", "03"):
            self._record(math["id"], date=f"2024-03-{day}")
        for day in ("04", "05"):
            self._record(science["id"], date=f"2024-03-{day}")

        resp = self.client.get("/api/records", params={"search": "Math", "page": 1, "limit": 10}, auth=AUTH)
        body = resp.json()
        self.assertEqual(body["total"], 3)
        self.assertEqual(body["totalPages"], 1)
        self.assertEqual(body["currentPage"], 1)
        self.assertEqual(len(body["records"]), 3)

        resp = self.client.get("/api/records", params={"page": 2, "limit": 2}, auth=AUTH)
        body = resp.json()
        self.assertEqual(body["totalPages"], 3)
        self.assertEqual([r["civilDate"] for r in body["records"]], ["2024-03-03", "2024-03-02"])

        resp = self.client.get(
            "/api/records", params={"startDate": "2024-03-02", "endDate": "2024-03-04"}, auth=AUTH
        )
        self.assertEqual(resp.json()["total"], 3)

        resp = self.client.get("/api/records", params={"startDate": "bad"}, auth=AUTH)
        self.assertEqual(resp.status_code, 400)
        resp = self.client.get("/api/records", params={"page": 0}, auth=AUTH)
        self.assertEqual(resp.status_code, 400)

    def test_record_list_honours_large_limit(self):
        course = self._course()
        for day in ("01", "02", "03"):
            self._record(course["id"], date=f"2024-03-{day}")
        body = self.client.get("/api/records", params={"limit": 150}, auth=AUTH).json()
        self.assertEqual(body["pageSize"], 150)
        self.assertEqual(body["totalPages"], 1)
        self.assertEqual(len(body["records"]), 3)

    def test_out_of_range_values_rejected(self):
        course = self._course()
        for payload in (
            {"courseId": course["id"], "date": "0999-06-01", "hours": 1},
            {"courseId": course["id"], "date": "0001-01-01", "hours": 1},
            {"courseId": course["id"], "date": "2024-03-02", "hours": "1e400"},
        ):
            resp = self.client.post("/api/records", json=payload, auth=AUTH)
            self.assertEqual(resp.status_code, 400, resp.text)
        self.assertEqual(self.client.get("/api/records", auth=AUTH).json()["total"], 0)
        self.assertEqual(self.client.get("/api/stats", params={"month": "0001-01"}, auth=AUTH).status_code, 400)

    def test_storage_failure_maps_to_500(self):
        from lessonlog.storage import db
        from lessonlog.web.app import get_db

        def closed_db():
            conn = db.connect(self.temp_db.name)
            conn.close()
            yield conn

        self.app.dependency_overrides[get_db] = closed_db
        try:
            resp = self.client.get("/api/courses", auth=AUTH)
        finally:
            self.app.dependency_overrides.pop(get_db, None)
        self.assertEqual(resp.status_code, 500)
        self.assertIn("message", resp.json())

    def test_config_read_once(self):
        from lessonlog.web.app import get_config

        self.assertIs(get_config(), get_config())

    def test_stats_defaults_to_current_month(self):
        math = self._course()
        science = self._course("Science", "G6")
        self._record(math["id"], date="2024-03-02", hours=3)
        self._record(science["id"], date="2024-03-05", hours=1)
        self._record(science["id"], date="2024-02-05", hours=1.5)

        body = self.client.get("/api/stats", auth=AUTH).json()
        self.assertEqual(body["month"], "2024-03")
        self.assertEqual(body["totalHours"], 4.0)
        self.assertEqual(body["allTimeHours"], 5.5)
        self.assertEqual([s["courseName"] for s in body["courseStats"]], ["Math", "Science"])
        self.assertEqual(body["courseStats"][0]["percentage"], 75.0)
        self.assertEqual(body["allTimeCourseStats"][0]["courseName"], "Math")
        self.assertEqual(body["allTimeCourseStats"][0]["totalHours"], 3.0)
        self.assertEqual(body["allTimeCourseStats"][1]["totalHours"], 2.5)

        empty = self.client.get("/api/stats", params={"month": "2023-01"}, auth=AUTH).json()
        self.assertEqual(empty["totalHours"], 0.0)
        self.assertEqual(empty["allTimeGradeStats"][0]["percentage"], 54.5)
        self.assertEqual(self.client.get("/api/stats", params={"month": "2024-13"}, auth=AUTH).status_code, 400)

    def test_export_csv(self):
        course = self._course()
        self._record(course["id"], date="2024-03-02", hours=1.5, notes='He said "ok"')
        resp = self.client.get("/api/export", params={"startDate": "2024-03-01", "endDate": "2024-03-31"}, auth=AUTH)
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.headers["content-type"].startswith("text/csv"))
        self.assertIn("charset=utf-8", resp.headers["content-type"])
        self.assertEqual(
            resp.headers["content-disposition"],
            "attachment; filename=lesson_records_2024-03-01_to_2024-03-31.csv",
        )
        self.assertTrue(resp.content.startswith(b"\xef\xbb\xbfcourseName,grade,date,hours,notes\n"))
        self.assertIn('"Math","G5",2024-03-02,1.5,"He said ""ok"""', resp.content.decode("utf-8"))

        resp = self.client.get("/api/export", params={"startDate": "2024-03-01"}, auth=AUTH)
        self.assertEqual(resp.status_code, 400)


if __name__ == "__main__":
    unittest.main()
