import os

os.environ["WORKDESK_SCHEDULER_ENABLED"] = "false"
os.environ.setdefault("WORKDESK_DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from workdesk import config
from workdesk.api.instances import get_evaluator
from workdesk.core.evaluator import RuleEvaluator
from workdesk.core.scheduler import build_scheduler
from workdesk.db import repository
from workdesk.db.database import get_db, init_db, make_engine
from workdesk.db.tables import FieldTemplate, FnTemplate, InputTemplate, TaskTemplate
from workdesk.main import app

API_KEY = config.API_KEY


class FakeNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, user_id, email, subject, payload):
        self.sent.append(
            {"user_id": user_id, "email": email, "subject": subject, "payload": payload}
        )


class Factory:
    """Builds directory rows and template graphs straight through the repository."""

    def __init__(self, db):
        self.db = db
        self._seq = 0

    def _next(self):
        self._seq += 1
        return self._seq

    def user(self, **fields):
        n = self._next()
        fields.setdefault("name", f"User {n}")
        fields.setdefault("email", f"user{n}@example.com")
        return repository.create_user(self.db, **fields)

    def customer(self, **fields):
        fields.setdefault("name", f"Customer {self._next()}")
        return repository.create_customer(self.db, **fields)

    def task_template(self, name="Task"):
        return repository.create_template(self.db, TaskTemplate, name=name)

    def fn_template(self, name="Fn", **fields):
        return repository.create_template(self.db, FnTemplate, name=name, **fields)

    def field_template(self, name="Field"):
        return repository.create_template(self.db, FieldTemplate, name=name)

    def input_template(self, name="Input", type="TEXT", **fields):
        return repository.create_template(
            self.db, InputTemplate, name=name, type=type, **fields
        )

    def link(self, parent, child):
        repository.link_templates(self.db, type(parent), parent.id, child.id)

    def rule(self, input_template, action_type, targets=None, notify_user_ids=None):
        return repository.create_conditional_action(
            self.db,
            input_template_id=input_template.id,
            name=f"{action_type} rule",
            action_type=action_type,
            targets=targets,
            notify_user_ids=notify_user_ids,
        )

    def chain(self, task_name="Task", fn_name="Fn", field_name="Field", inputs=()):
        """Task -> one fn -> one field -> the given input templates."""
        task = self.task_template(task_name)
        fn = self.fn_template(fn_name)
        field = self.field_template(field_name)
        self.link(task, fn)
        self.link(fn, field)
        for input_template in inputs:
            self.link(field, input_template)
        return task, fn, field


@pytest.fixture()
def session_factory(tmp_path):
    db_path = tmp_path / "test.db"
    engine = make_engine(f"sqlite:///{db_path}")
    init_db(bind=engine)
    yield sessionmaker(bind=engine)
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def factory(db):
    return Factory(db)


@pytest.fixture()
def notifier():
    return FakeNotifier()


@pytest.fixture()
def evaluator(notifier):
    return RuleEvaluator(notifier=notifier)


@pytest.fixture()
def client(session_factory, evaluator):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_evaluator] = lambda: evaluator
    app.state.session_factory = session_factory
    app.state.scheduler = build_scheduler(session_factory)

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture()
def headers():
    return {"X-API-Key": API_KEY}


@pytest.fixture()
def actor(factory, db):
    user = factory.user(name="Operator", roles=["OPERATOR"])
    # Detach the loaded user and end the read transaction before requests run.
    db.close()
    return user


@pytest.fixture()
def user_headers(headers, actor):
    return {**headers, "X-User-Id": str(actor.id)}
