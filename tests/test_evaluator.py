import pytest

from workdesk.core import workflow
from workdesk.core.errors import ConflictError, ValidationError
from workdesk.core.instantiation import instantiate_task
from workdesk.db import instances, repository
from workdesk.db.tables import ActivityLog, FieldInstance, FnInstance, InputInstance


@pytest.fixture()
def operator(factory):
    return factory.user(name="Operator")


@pytest.fixture()
def customer(factory):
    return factory.customer(name="Acme Power")


def open_task(db, task_template, operator, customer):
    return instantiate_task(
        db,
        task_template_id=task_template.id,
        customer_id=customer.id,
        assignee_id=operator.id,
        created_by_id=operator.id,
    )


def input_of(db, task_instance, input_template):
    return (
        db.query(InputInstance)
        .join(FieldInstance, InputInstance.field_instance_id == FieldInstance.id)
        .join(FnInstance, FieldInstance.fn_instance_id == FnInstance.id)
        .filter(FnInstance.task_instance_id == task_instance.id)
        .filter(InputInstance.input_template_id == input_template.id)
        .all()
    )


@pytest.fixture()
def install_survey(db, factory, operator, customer):
    voltage = factory.input_template(
        "Voltage", type="NUMBER", condition="GREATER_THAN", comparison_value="240"
    )
    safety_notes = factory.input_template("Safety Notes", type="TEXTAREA")
    task, _, _ = factory.chain(
        task_name="Install Survey",
        fn_name="Site Check",
        field_name="Measurements",
        inputs=[voltage],
    )
    rule = factory.rule(
        voltage,
        "ADD_DYNAMIC_INPUT",
        targets={"targeted_input_template_id": safety_notes.id},
    )
    task_instance = open_task(db, task, operator, customer)
    return task_instance, voltage, safety_notes, rule


def test_voltage_above_threshold_adds_safety_notes(db, evaluator, operator, install_survey):
    task_instance, voltage, safety_notes, rule = install_survey
    voltage_input = input_of(db, task_instance, voltage)[0]

    written, result = workflow.write_input_value(
        db, evaluator, voltage_input.id, 250, operator.id
    )

    assert written.value == 250
    assert [a.action_id for a in result.applied] == [rule.id]
    assert result.failures == []
    notes = input_of(db, task_instance, safety_notes)
    assert len(notes) == 1
    assert notes[0].field_instance_id == voltage_input.field_instance_id
    assert notes[0].is_dynamically_created is True
    assert notes[0].triggering_conditional_action_id == rule.id


def test_voltage_below_threshold_adds_nothing(db, evaluator, operator, install_survey):
    task_instance, voltage, safety_notes, rule = install_survey
    voltage_input = input_of(db, task_instance, voltage)[0]

    _, result = workflow.write_input_value(db, evaluator, voltage_input.id, 200, operator.id)

    assert result.applied == []
    assert result.not_triggered == [rule.id]
    assert input_of(db, task_instance, safety_notes) == []


def test_repeated_trigger_adds_one_dynamic_input(db, evaluator, operator, install_survey):
    task_instance, voltage, safety_notes, _ = install_survey
    voltage_input = input_of(db, task_instance, voltage)[0]

    for value in (250, 260, 300):
        workflow.write_input_value(db, evaluator, voltage_input.id, value, operator.id)

    assert len(input_of(db, task_instance, safety_notes)) == 1


def test_racing_trigger_adds_one_dynamic_input(
    db, evaluator, operator, install_survey, monkeypatch
):
    task_instance, voltage, safety_notes, rule = install_survey
    voltage_input = input_of(db, task_instance, voltage)[0]
    workflow.write_input_value(db, evaluator, voltage_input.id, 250, operator.id)

    # A concurrent writer that checked before the first insert landed sees
    # nothing and goes on to insert; the unique constraint must stop it.
    real_find = instances.find_dynamic_input
    calls = []

    def stale_find(db, field_instance_id, conditional_action_id):
        calls.append(field_instance_id)
        if len(calls) == 1:
            return None
        return real_find(db, field_instance_id, conditional_action_id)

    monkeypatch.setattr(instances, "find_dynamic_input", stale_find)
    _, result = workflow.write_input_value(
        db, evaluator, voltage_input.id, 270, operator.id
    )

    assert result.failures == []
    assert "already present" in result.applied[0].detail
    assert len(input_of(db, task_instance, safety_notes)) == 1


def test_dynamic_input_insert_conflict_is_reported(db, install_survey, operator):
    task_instance, voltage, safety_notes, rule = install_survey
    field_id = input_of(db, task_instance, voltage)[0].field_instance_id

    instances.add_dynamic_input(db, field_id, safety_notes.id, rule.id, operator.id)
    db.commit()
    with pytest.raises(ConflictError):
        instances.add_dynamic_input(db, field_id, safety_notes.id, rule.id, operator.id)
    db.commit()

    assert len(input_of(db, task_instance, safety_notes)) == 1


def test_non_numeric_value_does_not_trigger(db, factory, evaluator, operator, customer):
    reading = factory.input_template(
        "Reading", type="TEXT", condition="GREATER_THAN", comparison_value="10"
    )
    extra = factory.input_template("Extra")
    task, _, _ = factory.chain(inputs=[reading])
    rule = factory.rule(
        reading, "ADD_DYNAMIC_INPUT", targets={"targeted_input_template_id": extra.id}
    )
    task_instance = open_task(db, task, operator, customer)
    reading_input = input_of(db, task_instance, reading)[0]

    _, result = workflow.write_input_value(db, evaluator, reading_input.id, "abc", operator.id)
    assert result.not_triggered == [rule.id]

    _, result = workflow.write_input_value(db, evaluator, reading_input.id, "15", operator.id)
    assert [a.action_id for a in result.applied] == [rule.id]


def test_invalid_value_is_rejected_before_rules_run(db, evaluator, operator, install_survey):
    task_instance, voltage, safety_notes, _ = install_survey
    voltage_input = input_of(db, task_instance, voltage)[0]

    with pytest.raises(ValidationError):
        workflow.write_input_value(db, evaluator, voltage_input.id, "abc", operator.id)
    assert input_of(db, task_instance, safety_notes) == []


def test_mark_fn_on_closed_fn_keeps_closed_at(db, factory, evaluator, operator, customer):
    done = factory.input_template(
        "Done", type="BOOLEAN", condition="EQUALS", comparison_value="true"
    )
    task = factory.task_template()
    entry_fn = factory.fn_template("Entry")
    target_fn = factory.fn_template("Target")
    field = factory.field_template()
    factory.link(task, entry_fn)
    factory.link(task, target_fn)
    factory.link(entry_fn, field)
    factory.link(field, done)
    rule = factory.rule(done, "MARK_FN_AS_DONE", targets={"targeted_fn_template_id": target_fn.id})
    task_instance = open_task(db, task, operator, customer)

    target_instance = instances.find_fn_instances_by_template(db, task_instance.id, target_fn.id)[0]
    workflow.close_fn_instance(db, target_instance.id, operator.id)
    original_closed_at = db.get(FnInstance, target_instance.id).closed_at
    assert original_closed_at is not None

    done_input = input_of(db, task_instance, done)[0]
    _, result = workflow.write_input_value(db, evaluator, done_input.id, True, operator.id)

    assert result.applied[0].action_id == rule.id
    assert result.applied[0].detail.startswith("already closed")
    db.expire_all()
    assert db.get(FnInstance, target_instance.id).closed_at == original_closed_at


def test_mark_task_and_field_as_done(db, factory, evaluator, operator, customer):
    finished = factory.input_template(
        "Finished", type="NUMBER", condition="GREATER_THAN_EQUALS", comparison_value="100"
    )
    task, _, field = factory.chain(inputs=[finished])
    factory.rule(finished, "MARK_FIELD_AS_DONE", targets={"targeted_field_template_id": field.id})
    factory.rule(finished, "MARK_TASK_AS_DONE", targets={"targeted_task_template_id": task.id})
    task_instance = open_task(db, task, operator, customer)
    finished_input = input_of(db, task_instance, finished)[0]

    _, result = workflow.write_input_value(db, evaluator, finished_input.id, 100, operator.id)

    assert len(result.applied) == 2
    db.expire_all()
    assert db.get(FieldInstance, finished_input.field_instance_id).closed_at is not None
    closed_task = instances.get_task_instance(db, task_instance.id)
    assert closed_task.closed_at is not None
    assert closed_task.closed_by_id == operator.id

    with pytest.raises(ConflictError):
        workflow.write_input_value(db, evaluator, finished_input.id, 101, operator.id)


def test_failing_rule_does_not_block_others(db, factory, evaluator, operator, customer):
    level = factory.input_template(
        "Level", type="NUMBER", condition="LESS_THAN", comparison_value="5"
    )
    refill = factory.input_template("Refill Notes")
    elsewhere = factory.fn_template("Not in this task")
    task, _, _ = factory.chain(inputs=[level])
    broken = factory.rule(level, "MARK_FN_AS_DONE", targets={"targeted_fn_template_id": elsewhere.id})
    working = factory.rule(
        level, "ADD_DYNAMIC_INPUT", targets={"targeted_input_template_id": refill.id}
    )
    task_instance = open_task(db, task, operator, customer)
    level_input = input_of(db, task_instance, level)[0]

    written, result = workflow.write_input_value(db, evaluator, level_input.id, 2, operator.id)

    assert written.value == 2
    assert [f.action_id for f in result.failures] == [broken.id]
    assert result.failures[0].error_type == "NotFoundError"
    assert [a.action_id for a in result.applied] == [working.id]
    assert len(input_of(db, task_instance, refill)) == 1
    errors = db.query(ActivityLog).filter(ActivityLog.activity_type == "ERROR").all()
    assert len(errors) == 1


def test_mismatched_target_is_configuration_error(db, factory, evaluator, operator, customer):
    flag = factory.input_template("Flag", condition="EQUALS", comparison_value="yes")
    other = factory.input_template("Other")
    task, _, _ = factory.chain(inputs=[flag])
    bad = factory.rule(
        flag, "MARK_TASK_AS_DONE", targets={"targeted_input_template_id": other.id}
    )
    task_instance = open_task(db, task, operator, customer)
    flag_input = input_of(db, task_instance, flag)[0]

    _, result = workflow.write_input_value(db, evaluator, flag_input.id, "yes", operator.id)

    assert [f.action_id for f in result.failures] == [bad.id]
    assert result.failures[0].error_type == "ConfigurationError"
    assert instances.get_task_instance(db, task_instance.id).closed_at is None


def test_missing_condition_is_reported_per_rule(db, factory, evaluator, operator, customer):
    plain = factory.input_template("Plain")
    other = factory.input_template("Other")
    task, _, _ = factory.chain(inputs=[plain])
    rule = factory.rule(plain, "ADD_DYNAMIC_INPUT", targets={"targeted_input_template_id": other.id})
    task_instance = open_task(db, task, operator, customer)
    plain_input = input_of(db, task_instance, plain)[0]

    written, result = workflow.write_input_value(db, evaluator, plain_input.id, "hello", operator.id)

    assert written.value == "hello"
    assert [(f.action_id, f.error_type) for f in result.failures] == [
        (rule.id, "ConfigurationError")
    ]


def test_notify_users_skips_disabled(db, factory, evaluator, notifier, operator, customer):
    temperature = factory.input_template(
        "Temperature", type="NUMBER", condition="GREATER_THAN", comparison_value="80"
    )
    task, _, _ = factory.chain(inputs=[temperature])
    supervisor = factory.user(name="Supervisor", email="supervisor@example.com")
    retired = factory.user(name="Retired")
    repository.disable_user(db, retired.id)
    factory.rule(temperature, "NOTIFY_USERS", notify_user_ids=[supervisor.id, retired.id])
    task_instance = open_task(db, task, operator, customer)
    temperature_input = input_of(db, task_instance, temperature)[0]

    _, result = workflow.write_input_value(db, evaluator, temperature_input.id, 95, operator.id)

    assert result.failures == []
    assert [m["user_id"] for m in notifier.sent] == [supervisor.id]
    assert notifier.sent[0]["email"] == "supervisor@example.com"
    assert notifier.sent[0]["payload"]["task_code"] == task_instance.code
    logs = db.query(ActivityLog).filter(ActivityLog.activity_type == "NOTIFICATION").all()
    assert len(logs) == 1


def test_dynamic_input_not_added_to_field_closed_by_earlier_rule(
    db, factory, evaluator, operator, customer
):
    pressure = factory.input_template(
        "Pressure", type="NUMBER", condition="LESS_THAN", comparison_value="10"
    )
    follow_up = factory.input_template("Leak Notes")
    task, _, field = factory.chain(inputs=[pressure])
    close_field = factory.rule(
        pressure, "MARK_FIELD_AS_DONE", targets={"targeted_field_template_id": field.id}
    )
    add_input = factory.rule(
        pressure, "ADD_DYNAMIC_INPUT", targets={"targeted_input_template_id": follow_up.id}
    )
    task_instance = open_task(db, task, operator, customer)
    pressure_input = input_of(db, task_instance, pressure)[0]

    _, result = workflow.write_input_value(db, evaluator, pressure_input.id, 5, operator.id)

    assert [a.action_id for a in result.applied] == [close_field.id]
    assert [(f.action_id, f.error_type) for f in result.failures] == [
        (add_input.id, "ConflictError")
    ]
    db.expire_all()
    assert db.get(FieldInstance, pressure_input.field_instance_id).closed_at is not None
    assert input_of(db, task_instance, follow_up) == []


def test_fn_not_closed_inside_task_closed_by_earlier_rule(
    db, factory, evaluator, operator, customer
):
    approved = factory.input_template(
        "Approved", type="BOOLEAN", condition="EQUALS", comparison_value="true"
    )
    task = factory.task_template()
    entry_fn = factory.fn_template("Entry")
    other_fn = factory.fn_template("Other")
    field = factory.field_template()
    factory.link(task, entry_fn)
    factory.link(task, other_fn)
    factory.link(entry_fn, field)
    factory.link(field, approved)
    close_task = factory.rule(
        approved, "MARK_TASK_AS_DONE", targets={"targeted_task_template_id": task.id}
    )
    close_fn = factory.rule(
        approved, "MARK_FN_AS_DONE", targets={"targeted_fn_template_id": other_fn.id}
    )
    task_instance = open_task(db, task, operator, customer)
    approved_input = input_of(db, task_instance, approved)[0]

    _, result = workflow.write_input_value(db, evaluator, approved_input.id, True, operator.id)

    assert [a.action_id for a in result.applied] == [close_task.id]
    assert [(f.action_id, f.error_type) for f in result.failures] == [
        (close_fn.id, "ConflictError")
    ]
    db.expire_all()
    other = instances.find_fn_instances_by_template(db, task_instance.id, other_fn.id)[0]
    assert other.closed_at is None
