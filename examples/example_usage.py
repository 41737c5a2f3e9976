from lessonlog import compute_stats, create_course, create_record, export_csv, list_records, percentage
from lessonlog.models import RecordFilter
from lessonlog.storage import db


def main() -> None:
    conn = db.connect(":memory:")
    db.init_db(conn)

    math = create_course(conn, "Math", "Grade 5")
    science = create_course(conn, "Science", "Grade 6")

    create_record(conn, math.course_id, "2024-03-02", "1.5", notes='Reviewed "fractions"')
    create_record(conn, math.course_id, "2024-03-09T19:30:00", "2")
    create_record(conn, science.course_id, "2024-03-15", "1")

    page = list_records(conn, RecordFilter(search="math"), page=1, page_size=10)
    print(f"{page.total_count} math records over {page.total_pages} page(s)")

    stats = compute_stats(conn, "2024-03")
    for stat in stats.course_stats:
        print(f"{stat.course_name}: {stat.total_hours}h ({percentage(stat.total_hours, stats.total_hours)}%)")

    export = export_csv(conn, "2024-03-01", "2024-03-31")
    print(export.filename)
    print(export.content)
    conn.close()


if __name__ == "__main__":
    main()
