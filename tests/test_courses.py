import os
import sys
import tempfile
import unittest
from datetime import datetime, timezone

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src")))

from lessonlog import courses, records
from lessonlog.errors import Conflict, NotFound, StorageError, ValidationError
from lessonlog.storage import db


NOW = datetime(2024, 6, 1, 4, 0, tzinfo=timezone.utc)


class CourseManagementTests(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.conn = db.connect(os.path.join(self.temp_dir.name, "test.db"))
        db.init_db(self.conn)

    def tearDown(self):
        self.conn.close()
        self.temp_dir.cleanup()

    def _record(self, course_id, date_value="2024-03-02", hours="1"):
        return records.create_record(self.conn, course_id, date_value, hours, now=NOW)

    def test_create_trims_and_rejects_duplicates(self):
        course = courses.create_course(self.conn, "  Math ", " G5 ")
        self.assertEqual((course.name, course.grade), ("Math", "G5"))
        with self.assertRaises(Conflict):
            courses.create_course(self.conn, "Math", "G5")
        # Same name in another grade is a different course.
        courses.create_course(self.conn, "Math", "G6")

    def test_create_requires_name_and_grade(self):
        with self.assertRaises(ValidationError):
            courses.create_course(self.conn, "", "G5")
        with self.assertRaises(ValidationError):
            courses.create_course(self.conn, "Math", "   ")

    def test_list_sorted_by_name(self):
        courses.create_course(self.conn, "Science", "G5")
        courses.create_course(self.conn, "Art", "G2")
        courses.create_course(self.conn, "Math", "G5")
        self.assertEqual([c.name for c in courses.list_courses(self.conn)], ["Art", "Math", "Science"])

    def test_get_unknown_course(self):
        with self.assertRaises(NotFound):
            courses.get_course(self.conn, 999)

    def test_rename_updates_every_record_snapshot(self):
        math = courses.create_course(self.conn, "Math", "G5")
        science = courses.create_course(self.conn, "Science", "G5")
        first = self._record(math.course_id)
        second = self._record(math.course_id, "2024-03-05")
        other = self._record(science.course_id)

        renamed = courses.rename_course(self.conn, math.course_id, "Algebra", "G6")
        self.assertEqual((renamed.name, renamed.grade), ("Algebra", "G6"))
        for record_id in (first.record_id, second.record_id):
            record = records.get_record(self.conn, record_id)
            self.assertEqual((record.course_name, record.grade), ("Algebra", "G6"))
        untouched = records.get_record(self.conn, other.record_id)
        self.assertEqual((untouched.course_name, untouched.grade), ("Science", "G5"))

        # Re-applying the same rename is harmless.
        courses.rename_course(self.conn, math.course_id, "Algebra", "G6")
        record = records.get_record(self.conn, first.record_id)
        self.assertEqual((record.course_name, record.grade), ("Algebra", "G6"))

    def test_rename_to_existing_pair_conflicts_and_changes_nothing(self):
        math = courses.create_course(self.conn, "Math", "G5")
        courses.create_course(self.conn, "Science", "G5")
        record = self._record(math.course_id)
        with self.assertRaises(Conflict):
            courses.rename_course(self.conn, math.course_id, "Science", "G5")
        self.assertEqual(courses.get_course(self.conn, math.course_id).name, "Math")
        self.assertEqual(records.get_record(self.conn, record.record_id).course_name, "Math")

    def test_rename_to_own_pair_is_allowed(self):
        math = courses.create_course(self.conn, "Math", "G5")
        self.assertEqual(courses.rename_course(self.conn, math.course_id, "Math", "G5").name, "Math")

    def test_rename_unknown_course(self):
        with self.assertRaises(NotFound):
            courses.rename_course(self.conn, 42, "Math", "G5")

    def test_delete_blocked_by_records(self):
        math = courses.create_course(self.conn, "Math", "G5")
        first = self._record(math.course_id)
        second = self._record(math.course_id, "2024-03-05")
        with self.assertRaises(Conflict) as ctx:
            courses.delete_course(self.conn, math.course_id)
        self.assertEqual(ctx.exception.blocking_count, 2)
        self.assertEqual(ctx.exception.details["blocking_count"], 2)
        self.assertEqual(courses.get_course(self.conn, math.course_id).name, "Math")

        records.delete_record(self.conn, first.record_id)
        records.delete_record(self.conn, second.record_id)
        courses.delete_course(self.conn, math.course_id)
        with self.assertRaises(NotFound):
            courses.get_course(self.conn, math.course_id)

    def test_delete_unknown_course(self):
        with self.assertRaises(NotFound):
            courses.delete_course(self.conn, 7)

    def test_closed_connection_reports_storage_error(self):
        self.conn.close()
        with self.assertRaises(StorageError):
            courses.list_courses(self.conn)
        self.conn = db.connect(os.path.join(self.temp_dir.name, "test.db"))


if __name__ == "__main__":
    unittest.main()
