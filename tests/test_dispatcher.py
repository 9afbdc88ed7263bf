from __future__ import annotations

import json
import uuid

import httpx

from expense_ocr.core.db import SessionLocal
from expense_ocr.core.storage import get_storage
from expense_ocr.modules.dispatch.service import (
    FAILURE_MESSAGE,
    NO_TASKS_MESSAGE,
    SUCCESS_MESSAGE,
    process_next,
)
from expense_ocr.modules.expenses.models import Expense
from expense_ocr.modules.expenses.service import ExpenseInput, create_expense
from expense_ocr.modules.extraction.config import ExtractionConfig
from expense_ocr.modules.extraction.service import ExtractionAdapter
from expense_ocr.modules.files.service import UploadedFile
from expense_ocr.modules.mileage.models import EntryMethod, MileageLog, OdometerSide
from expense_ocr.modules.mileage.service import attach_odometer_image, create_mileage_log
from expense_ocr.modules.reconciliation.models import RecordStatus
from expense_ocr.modules.tasks.models import Task, TaskKind, TaskState
from expense_ocr.modules.tasks.service import create_task, task_payload

CITY_CABS = json.dumps(
    {
        "vendor": "City Cabs",
        "cost": 45.5,
        "date": "2024-03-15",
        "type": "Transportation",
        "location": "New York, NY",
    }
)


def _openai_adapter(handler, key: str | None = "sk-test") -> tuple[ExtractionAdapter, list]:
    calls: list[httpx.Request] = []

    def _record(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return handler(request)

    config = ExtractionConfig(
        api_keys={"openai": key} if key else {},
        models={"openai": "gpt-4o"},
    )
    client = httpx.Client(transport=httpx.MockTransport(_record))
    return ExtractionAdapter(config, client=client), calls


def _completion(text: str):
    return lambda request: httpx.Response(200, json={"choices": [{"message": {"content": text}}]})


def _upload_receipt(user, *, body: bytes = b"jpeg bytes") -> tuple[uuid.UUID, uuid.UUID]:
    with SessionLocal() as session:
        expense, task = create_expense(
            session,
            user=user,
            data=ExpenseInput(trip_name="Berlin trip", date="", cost="0"),
            template="travel",
            provider="openai",
            receipt=UploadedFile(filename="cab.jpg", content_type="image/jpeg", body=body),
        )
        return expense.id, task.id


def test_idle_when_nothing_is_pending(make_user):
    user = make_user()
    adapter, calls = _openai_adapter(_completion(CITY_CABS))
    with SessionLocal() as session:
        outcome = process_next(session, owner_id=user.id, adapter=adapter)

    assert outcome.status == "idle"
    assert outcome.message == NO_TASKS_MESSAGE
    assert calls == []


def test_receipt_extraction_fills_placeholders(make_user):
    user = make_user()
    expense_id, task_id = _upload_receipt(user)

    with SessionLocal() as session:
        expense = session.get(Expense, expense_id)
        assert expense.status == RecordStatus.PENDING
        assert expense.vendor == "Travel Vendor"

    adapter, calls = _openai_adapter(_completion(CITY_CABS))
    with SessionLocal() as session:
        outcome = process_next(session, owner_id=user.id, adapter=adapter)

    assert outcome.status == "completed"
    assert outcome.message == SUCCESS_MESSAGE
    assert outcome.task_id == task_id
    assert outcome.target_id == expense_id
    assert outcome.extracted_fields["vendor"] == "City Cabs"
    assert len(calls) == 1

    with SessionLocal() as session:
        expense = session.get(Expense, expense_id)
        assert expense.status == RecordStatus.COMPLETE
        assert expense.ocr_error is None
        assert expense.vendor == "City Cabs"
        assert expense.location == "New York, NY"
        assert expense.date == "2024-03-15"
        assert expense.cost == "45.5"
        assert expense.type == "Transportation"
        assert expense.trip_name == "Berlin trip"

        task = session.get(Task, task_id)
        assert task.state == TaskState.COMPLETED
        result = task_payload(task)["result"]
        assert result["message"] == "OCR processing completed successfully"
        assert result["extracted_fields"]["cost"] == 45.5


def test_provider_rejection_marks_record_failed(make_user):
    user = make_user()
    expense_id, task_id = _upload_receipt(user)
    adapter, calls = _openai_adapter(
        lambda request: httpx.Response(401, json={"error": "invalid key"})
    )

    with SessionLocal() as session:
        outcome = process_next(session, owner_id=user.id, adapter=adapter)

    assert outcome.status == "failed"
    assert outcome.message == FAILURE_MESSAGE
    assert outcome.error == "OpenAI API error (401)"
    assert len(calls) == 1

    with SessionLocal() as session:
        expense = session.get(Expense, expense_id)
        assert expense.status == RecordStatus.OCR_FAILED
        assert expense.ocr_error == "OpenAI API error (401)"
        assert expense.vendor == "Travel Vendor"

        task = session.get(Task, task_id)
        assert task.state == TaskState.FAILED
        assert task.error_message == "OpenAI API error (401)"


def test_missing_key_fails_without_calling_provider(make_user):
    user = make_user()
    expense_id, _ = _upload_receipt(user)
    adapter, calls = _openai_adapter(_completion(CITY_CABS), key=None)

    with SessionLocal() as session:
        outcome = process_next(session, owner_id=user.id, adapter=adapter)

    assert outcome.error == "OpenAI API key not configured"
    assert calls == []
    with SessionLocal() as session:
        assert session.get(Expense, expense_id).status == RecordStatus.OCR_FAILED


def test_unparseable_response_keeps_raw_text(make_user):
    user = make_user()
    expense_id, task_id = _upload_receipt(user)
    adapter, _ = _openai_adapter(_completion("I could not read the receipt."))

    with SessionLocal() as session:
        outcome = process_next(session, owner_id=user.id, adapter=adapter)

    assert outcome.status == "failed"
    with SessionLocal() as session:
        task = session.get(Task, task_id)
        assert task.state == TaskState.FAILED
        assert task_payload(task)["result"]["raw_text"] == "I could not read the receipt."
        assert session.get(Expense, expense_id).status == RecordStatus.OCR_FAILED


def test_missing_stored_image_fails_task(make_user):
    user = make_user()
    expense_id, task_id = _upload_receipt(user)
    with SessionLocal() as session:
        key = session.get(Expense, expense_id).receipt_path
    get_storage().delete(key=key)
    adapter, calls = _openai_adapter(_completion(CITY_CABS))

    with SessionLocal() as session:
        outcome = process_next(session, owner_id=user.id, adapter=adapter)

    assert outcome.status == "failed"
    assert outcome.error.startswith("Could not load stored image")
    assert calls == []
    with SessionLocal() as session:
        assert session.get(Expense, expense_id).status == RecordStatus.OCR_FAILED
        assert session.get(Task, task_id).state == TaskState.FAILED


def test_empty_stored_image_fails_task(make_user):
    user = make_user()
    expense_id, _ = _upload_receipt(user)
    with SessionLocal() as session:
        key = session.get(Expense, expense_id).receipt_path
    get_storage().put(key=key, body=b"", content_type="image/jpeg")
    adapter, calls = _openai_adapter(_completion(CITY_CABS))

    with SessionLocal() as session:
        outcome = process_next(session, owner_id=user.id, adapter=adapter)

    assert outcome.status == "failed"
    assert "empty" in outcome.error
    assert calls == []


def test_missing_target_fails_task(make_user):
    user = make_user()
    missing_id = uuid.uuid4()
    with SessionLocal() as session:
        task = create_task(
            session,
            owner_id=user.id,
            kind=TaskKind.RECEIPT_EXTRACTION,
            payload={
                "target_type": "expense",
                "target_id": str(missing_id),
                "storage_path": "receipts/nowhere.jpg",
            },
        )
        task_id = task.id
    adapter, calls = _openai_adapter(_completion(CITY_CABS))

    with SessionLocal() as session:
        outcome = process_next(session, owner_id=user.id, adapter=adapter)

    assert outcome.status == "failed"
    assert outcome.error == f"Target record not found: expense {missing_id}"
    assert outcome.target_id is None
    assert calls == []
    with SessionLocal() as session:
        assert session.get(Task, task_id).state == TaskState.FAILED


def test_other_owners_record_is_not_a_target(make_user):
    owner = make_user()
    intruder = make_user("intruder@example.com")
    expense_id, _ = _upload_receipt(owner)
    with SessionLocal() as session:
        create_task(
            session,
            owner_id=intruder.id,
            kind=TaskKind.RECEIPT_EXTRACTION,
            payload={"target_id": str(expense_id), "storage_path": "receipts/x.jpg"},
        )
    adapter, calls = _openai_adapter(_completion(CITY_CABS))

    with SessionLocal() as session:
        outcome = process_next(session, owner_id=intruder.id, adapter=adapter)

    assert outcome.status == "failed"
    assert outcome.error.startswith("Target record not found")
    with SessionLocal() as session:
        assert session.get(Expense, expense_id).status == RecordStatus.PENDING


def test_unsupported_task_kind_fails(make_user):
    user = make_user()
    with SessionLocal() as session:
        task = create_task(session, owner_id=user.id, kind=TaskKind.EXPORT, payload={})
        task_id = task.id
    adapter, calls = _openai_adapter(_completion(CITY_CABS))

    with SessionLocal() as session:
        outcome = process_next(session, owner_id=user.id, adapter=adapter)

    assert outcome.status == "failed"
    assert outcome.error == "Unsupported task kind: export"
    assert calls == []
    with SessionLocal() as session:
        assert session.get(Task, task_id).state == TaskState.FAILED


def test_tasks_run_oldest_first(make_user):
    user = make_user()
    first_expense, first_task = _upload_receipt(user)
    _, second_task = _upload_receipt(user)
    adapter, _ = _openai_adapter(_completion(CITY_CABS))

    with SessionLocal() as session:
        assert process_next(session, owner_id=user.id, adapter=adapter).task_id == first_task
    with SessionLocal() as session:
        assert process_next(session, owner_id=user.id, adapter=adapter).task_id == second_task
    with SessionLocal() as session:
        assert process_next(session, owner_id=user.id, adapter=adapter).status == "idle"


def test_odometer_image_sets_reading_and_distance(make_user):
    user = make_user()
    with SessionLocal() as session:
        log = create_mileage_log(
            session, user=user, trip_name="Client visit", trip_date="2024-03-15", start_odometer="45000"
        )
        task = attach_odometer_image(
            session,
            log=log,
            side=OdometerSide.END,
            image=UploadedFile(filename="dash.png", content_type="image/png", body=b"png"),
            provider="openai",
        )
        log_id, task_id = log.id, task.id
        assert task_payload(task)["template"] == "odometer"

    adapter, _ = _openai_adapter(_completion("The odometer shows 45,231.5 km"))
    with SessionLocal() as session:
        outcome = process_next(session, owner_id=user.id, adapter=adapter)

    assert outcome.status == "completed"
    assert outcome.extracted_fields == {"reading": 45231.5}
    with SessionLocal() as session:
        log = session.get(MileageLog, log_id)
        assert log.end_odometer == "45231.5"
        assert log.start_odometer == "45000"
        assert log.calculated_distance == 231.5
        assert log.entry_method == EntryMethod.OCR
        assert log.status == RecordStatus.COMPLETE
        assert session.get(Task, task_id).state == TaskState.COMPLETED


def test_mileage_log_stays_pending_until_both_readings_are_in(make_user):
    user = make_user()
    with SessionLocal() as session:
        log = create_mileage_log(
            session, user=user, trip_name="Client visit", trip_date="2024-03-15"
        )
        for side, name in ((OdometerSide.START, "start.png"), (OdometerSide.END, "end.png")):
            attach_odometer_image(
                session,
                log=log,
                side=side,
                image=UploadedFile(filename=name, content_type="image/png", body=b"png"),
                provider="openai",
            )
        log_id = log.id

    readings = iter(['{"reading": "45,000"}', '{"reading": "45,231.5"}'])
    adapter, _ = _openai_adapter(
        lambda request: httpx.Response(
            200, json={"choices": [{"message": {"content": next(readings)}}]}
        )
    )

    with SessionLocal() as session:
        assert process_next(session, owner_id=user.id, adapter=adapter).status == "completed"
    with SessionLocal() as session:
        log = session.get(MileageLog, log_id)
        assert log.start_odometer == "45000"
        assert log.status == RecordStatus.PENDING

    with SessionLocal() as session:
        assert process_next(session, owner_id=user.id, adapter=adapter).status == "completed"
    with SessionLocal() as session:
        log = session.get(MileageLog, log_id)
        assert log.end_odometer == "45231.5"
        assert log.calculated_distance == 231.5
        assert log.status == RecordStatus.COMPLETE
