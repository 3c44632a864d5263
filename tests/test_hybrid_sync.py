import pytest
from sqlalchemy import func, select

from models.processing_queue import JOB_TIMELINE_PROCESSING, ProcessingQueueEntry
from models.sync_session import SESSION_COMPLETED, SESSION_FAILED, SESSION_PARTIAL, SyncSession
from models.timeline_event import TimelineEvent
from services.hybrid_sync import MODE_BACKGROUND, MODE_INTERACTIVE, run_hybrid_sync, signal_queue_worker
from services.ingest_errors import TerminalIngestError


@pytest.fixture()
def dispatched():
    return []


@pytest.fixture()
def dispatcher(dispatched):
    def _dispatch():
        dispatched.append("employes.process_queue")

    return _dispatch


def _seed(fake_api, employment_payload):
    for employee_id in ("e1", "e2", "e3"):
        fake_api.add_employee(
            employee_id,
            start_date="2023-01-01",
            employments=[
                employment_payload(
                    salary=[
                        {"start_date": "2023-01-01", "month_wage": 3000},
                        {"start_date": "2024-01-01", "month_wage": 3150},
                    ]
                )
            ],
        )


def test_interactive_mode_builds_timelines_inline(
    db_session, employes_client, settings, fake_api, employment_payload, dispatcher, dispatched
):
    _seed(fake_api, employment_payload)

    outcome = run_hybrid_sync(
        db_session, employes_client, settings, source="dashboard", mode=MODE_INTERACTIVE, dispatcher=dispatcher
    )

    assert outcome.hybrid_processing == {"immediate": 3, "queued": 0, "mode": MODE_INTERACTIVE}
    assert outcome.result["employees_processed"] == 3
    assert outcome.result["timeline"]["events_created"] == 9
    assert outcome.worker_signal is None
    assert dispatched == []
    assert db_session.execute(select(func.count(ProcessingQueueEntry.id))).scalar_one() == 0
    session = db_session.get(SyncSession, outcome.sync_session_id)
    assert session.status == SESSION_COMPLETED
    assert session.successful_records == 3


def test_background_mode_enqueues_and_signals_worker(
    db_session, employes_client, settings, fake_api, employment_payload, dispatcher, dispatched
):
    _seed(fake_api, employment_payload)

    outcome = run_hybrid_sync(
        db_session, employes_client, settings, source="cron", mode=MODE_BACKGROUND, dispatcher=dispatcher
    )
    outcome.worker_signal.join(timeout=5)

    assert outcome.hybrid_processing == {"immediate": 0, "queued": 3, "mode": MODE_BACKGROUND}
    assert dispatched == ["employes.process_queue"]
    assert db_session.execute(select(func.count(TimelineEvent.id))).scalar_one() == 0
    (job,) = db_session.execute(select(ProcessingQueueEntry)).scalars()
    assert job.job_type == JOB_TIMELINE_PROCESSING
    assert job.priority == settings.background_priority
    assert job.created_by == "sync"
    assert job.payload["employee_ids"] == ["e1", "e2", "e3"]
    assert job.payload["trigger"] == "sync_background"
    assert job.payload["sync_id"] == str(outcome.sync_session_id)
    assert job.payload["error_limit"] == settings.error_list_limit


def test_partial_collection_still_processes_healthy_entities(
    db_session, employes_client, settings, fake_api, employment_payload, dispatcher
):
    _seed(fake_api, employment_payload)
    fake_api.always_fail["/employees/e2"] = 502

    outcome = run_hybrid_sync(db_session, employes_client, settings, mode=MODE_INTERACTIVE, dispatcher=dispatcher)

    assert outcome.hybrid_processing["immediate"] == 2
    assert outcome.result["error_count"] == 1
    assert outcome.result["partial_records"] == 1
    assert db_session.get(SyncSession, outcome.sync_session_id).status == SESSION_PARTIAL


def test_worker_signal_failure_is_swallowed():
    def broken():
        raise ConnectionError("broker down")

    thread = signal_queue_worker(broken)
    thread.join(timeout=5)

    assert not thread.is_alive()


def test_listing_failure_marks_session_failed(db_session, employes_client, settings, fake_api):
    fake_api.always_fail["/employees"] = 403

    with pytest.raises(TerminalIngestError):
        run_hybrid_sync(db_session, employes_client, settings)

    (session,) = db_session.execute(select(SyncSession)).scalars()
    assert session.status == SESSION_FAILED
    assert "403" in session.details["error"]


def test_unknown_mode_is_rejected(db_session, employes_client, settings):
    with pytest.raises(ValueError):
        run_hybrid_sync(db_session, employes_client, settings, mode="eventually")
