import time

from sqlalchemy import text

from workdesk.db import repository
from workdesk.db.tables import TaskTemplate


def test_file_database_uses_wal(db):
    assert db.execute(text("PRAGMA journal_mode")).scalar() == "wal"


def test_open_reader_does_not_block_writer(session_factory):
    reader = session_factory()
    writer = session_factory()
    try:
        assert repository.list_templates(reader, TaskTemplate) == []

        started = time.monotonic()
        created = repository.create_template(writer, TaskTemplate, name="Survey")
        assert created.id is not None
        assert time.monotonic() - started < 1
    finally:
        reader.close()
        writer.close()

    check = session_factory()
    try:
        assert [t.name for t in repository.list_templates(check, TaskTemplate)] == ["Survey"]
    finally:
        check.close()


def test_savepoint_rollback_keeps_outer_work(db):
    db.add(TaskTemplate(name="Kept", created_at="t", updated_at="t"))
    db.flush()
    try:
        with db.begin_nested():
            db.add(TaskTemplate(name="Dropped", created_at="t", updated_at="t"))
            db.flush()
            raise RuntimeError("undo")
    except RuntimeError:
        pass
    db.commit()

    assert [t.name for t in repository.list_templates(db, TaskTemplate)] == ["Kept"]
