from __future__ import annotations

import asyncio
import json
import uuid
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from newsletter.jobs.runner import DeliveryWorkerHandle, start_delivery_workers, stop_delivery_workers
from newsletter.jobs.worker import ExecutionOutcome
from newsletter.notifications.contracts import PermanentEmailError, TransientEmailError
from newsletter.storage.delivery_queue_repo import DeliveryTask
from newsletter.storage.issues_repo import IssueNotFoundError, NewsletterIssueRecord
from tests.fakes import InMemoryDatabase, RecordingEmailClient, build_coordinator, build_worker

OWNER = uuid.UUID("2d7c5a0e-1b3f-4a6d-8e9c-7f0b1a2c3d4e")


async def _publish(database: InMemoryDatabase, key: str = "issue-1") -> uuid.UUID:
  coordinator = build_coordinator(database)
  response = await coordinator.publish(owner_id=OWNER, idempotency_key=key, title="Weekly digest", text_content="Hello in text", html_content="<p>Hello</p>")
  return uuid.UUID(json.loads(response.body)["issue_id"])


def _seed_issue(database: InMemoryDatabase, recipients: list[str]) -> uuid.UUID:
  issue_id = uuid.uuid4()
  database.issues[issue_id] = NewsletterIssueRecord(issue_id=issue_id, title="Weekly digest", text_content="text", html_content="<p>html</p>", published_at=datetime.now(UTC))
  database.queue.extend(DeliveryTask(issue_id=issue_id, subscriber_email=email) for email in recipients)
  return issue_id


async def _drain(worker) -> int:
  completed = 0
  while await worker.try_execute_task() is ExecutionOutcome.TASK_COMPLETED:
    completed += 1
  return completed


@pytest.mark.anyio
async def test_published_issue_reaches_every_confirmed_subscriber(database: InMemoryDatabase, email_client: RecordingEmailClient) -> None:
  for email in ("ada@example.com", "grace@example.com", "barbara@example.com"):
    database.add_subscriber(email)
  issue_id = await _publish(database)
  worker = build_worker(database, email_client)

  assert await _drain(worker) == 3

  assert sorted(email_client.recipients) == ["ada@example.com", "barbara@example.com", "grace@example.com"]
  assert database.pending_for(issue_id) == []
  message = email_client.sent[0]
  assert message.subject == "Weekly digest"
  assert message.html_body == "<p>Hello</p>"
  assert message.text_body == "Hello in text"

  # Replaying the publish returns the cached response and enqueues nothing new.
  assert await _publish(database) == issue_id
  assert await worker.try_execute_task() is ExecutionOutcome.EMPTY_QUEUE
  assert email_client.calls == 3


@pytest.mark.anyio
async def test_empty_queue(database: InMemoryDatabase, email_client: RecordingEmailClient) -> None:
  worker = build_worker(database, email_client)

  assert await worker.try_execute_task() is ExecutionOutcome.EMPTY_QUEUE
  assert email_client.calls == 0


@pytest.mark.anyio
async def test_transient_failure_leaves_task_pending_until_retry(database: InMemoryDatabase, email_client: RecordingEmailClient) -> None:
  issue_id = _seed_issue(database, ["ada@example.com"])
  email_client.failures.append(TransientEmailError("HTTP 503"))
  worker = build_worker(database, email_client)

  with pytest.raises(TransientEmailError):
    await worker.try_execute_task()

  assert len(database.pending_for(issue_id)) == 1
  assert database.task_locks == {}

  assert await worker.try_execute_task() is ExecutionOutcome.TASK_COMPLETED
  assert email_client.recipients == ["ada@example.com"]
  assert database.pending_for(issue_id) == []


@pytest.mark.anyio
async def test_permanent_failure_removes_task(database: InMemoryDatabase, email_client: RecordingEmailClient) -> None:
  issue_id = _seed_issue(database, ["bounced@example.com", "ada@example.com"])
  email_client.failures.append(PermanentEmailError("HTTP 422"))
  worker = build_worker(database, email_client)

  assert await _drain(worker) == 2

  assert email_client.recipients == ["ada@example.com"]
  assert database.pending_for(issue_id) == []


@pytest.mark.anyio
async def test_invalid_stored_address_is_skipped_without_sending(database: InMemoryDatabase, email_client: RecordingEmailClient) -> None:
  issue_id = _seed_issue(database, ["not-an-email", "ada@example.com"])
  worker = build_worker(database, email_client)

  assert await _drain(worker) == 2

  assert email_client.recipients == ["ada@example.com"]
  assert email_client.calls == 1
  assert database.pending_for(issue_id) == []


@pytest.mark.anyio
async def test_missing_issue_keeps_task_pending(database: InMemoryDatabase, email_client: RecordingEmailClient) -> None:
  orphan = DeliveryTask(issue_id=uuid.uuid4(), subscriber_email="ada@example.com")
  database.queue.append(orphan)
  worker = build_worker(database, email_client)

  with pytest.raises(IssueNotFoundError):
    await worker.try_execute_task()

  assert database.queue == [orphan]
  assert email_client.calls == 0


@pytest.mark.anyio
async def test_failed_delete_commit_means_redelivery(database: InMemoryDatabase, email_client: RecordingEmailClient) -> None:
  issue_id = _seed_issue(database, ["ada@example.com"])
  database.fail_next("commit", ConnectionResetError("connection reset"))
  worker = build_worker(database, email_client)

  with pytest.raises(ConnectionResetError):
    await worker.try_execute_task()
  assert len(database.pending_for(issue_id)) == 1

  assert await worker.try_execute_task() is ExecutionOutcome.TASK_COMPLETED
  # At-least-once: the first send happened before the failed commit.
  assert email_client.recipients == ["ada@example.com", "ada@example.com"]


@pytest.mark.anyio
async def test_concurrent_workers_never_share_a_task(database: InMemoryDatabase, email_client: RecordingEmailClient) -> None:
  recipients = [f"reader{index}@example.com" for index in range(25)]
  issue_id = _seed_issue(database, recipients)
  workers = [build_worker(database, email_client) for _ in range(4)]

  await asyncio.gather(*(_drain(worker) for worker in workers))

  assert sorted(email_client.recipients) == sorted(recipients)
  assert database.pending_for(issue_id) == []


@pytest.mark.anyio
async def test_locked_task_is_skipped_by_other_workers(database: InMemoryDatabase, email_client: RecordingEmailClient) -> None:
  _seed_issue(database, ["ada@example.com"])
  email_client.gate = asyncio.Event()
  first = build_worker(database, email_client)
  second = build_worker(database, email_client)

  in_flight = asyncio.create_task(first.try_execute_task())
  await asyncio.sleep(0.01)

  assert await second.try_execute_task() is ExecutionOutcome.EMPTY_QUEUE

  email_client.gate.set()
  assert await in_flight is ExecutionOutcome.TASK_COMPLETED
  assert email_client.recipients == ["ada@example.com"]


@pytest.mark.anyio
async def test_run_until_stopped_recovers_from_errors(database: InMemoryDatabase, email_client: RecordingEmailClient) -> None:
  _seed_issue(database, ["ada@example.com", "grace@example.com"])
  email_client.failures.append(TransientEmailError("timeout"))
  database.fail_next("dequeue", ConnectionResetError("connection reset"))
  worker = build_worker(database, email_client)
  stop_event = asyncio.Event()

  loop = asyncio.create_task(worker.run_until_stopped(stop_event))
  for _ in range(200):
    if not database.queue:
      break
    await asyncio.sleep(0.01)
  stop_event.set()
  await asyncio.wait_for(loop, timeout=1)

  assert sorted(email_client.recipients) == ["ada@example.com", "grace@example.com"]


@pytest.mark.anyio
async def test_handle_stops_idle_worker_promptly(database: InMemoryDatabase, email_client: RecordingEmailClient) -> None:
  worker = build_worker(database, email_client, idle_seconds=60)
  handle = DeliveryWorkerHandle(worker, shutdown_grace_seconds=5)
  handle.start()
  await asyncio.sleep(0.01)
  assert handle.running

  with pytest.raises(RuntimeError, match="already running"):
    handle.start()

  await asyncio.wait_for(handle.stop(), timeout=1)
  assert not handle.running


@pytest.mark.anyio
async def test_handle_cancels_stuck_attempt_and_task_stays_pending(database: InMemoryDatabase, email_client: RecordingEmailClient) -> None:
  issue_id = _seed_issue(database, ["ada@example.com"])
  email_client.gate = asyncio.Event()
  handle = DeliveryWorkerHandle(build_worker(database, email_client), shutdown_grace_seconds=0.05)
  handle.start()
  await asyncio.sleep(0.01)

  await asyncio.wait_for(handle.stop(), timeout=1)

  assert not handle.running
  assert email_client.sent == []
  assert len(database.pending_for(issue_id)) == 1
  assert database.task_locks == {}


@pytest.mark.anyio
async def test_start_and_stop_worker_pool(database: InMemoryDatabase, email_client: RecordingEmailClient) -> None:
  recipients = [f"reader{index}@example.com" for index in range(6)]
  _seed_issue(database, recipients)
  worker = build_worker(database, email_client)

  handles = start_delivery_workers(worker, count=3, shutdown_grace_seconds=1)
  assert [handle.name for handle in handles] == ["issue-delivery-worker-0", "issue-delivery-worker-1", "issue-delivery-worker-2"]
  for _ in range(200):
    if not database.queue:
      break
    await asyncio.sleep(0.01)
  await stop_delivery_workers(handles)

  assert sorted(email_client.recipients) == sorted(recipients)
  assert not any(handle.running for handle in handles)


@pytest.mark.anyio
async def test_worker_builds_message_from_issue(database: InMemoryDatabase) -> None:
  _seed_issue(database, ["ada@example.com"])
  transport = AsyncMock()
  worker = build_worker(database, transport)

  assert await worker.try_execute_task() is ExecutionOutcome.TASK_COMPLETED

  transport.send_email.assert_awaited_once()
  message = transport.send_email.await_args.args[0]
  assert message.recipient.value == "ada@example.com"
  assert message.subject == "Weekly digest"
  assert message.html_body == "<p>html</p>"
  assert database.queue == []


@pytest.mark.anyio
async def test_worker_loops_finish_each_task_once_despite_transient_failures(database: InMemoryDatabase, email_client: RecordingEmailClient) -> None:
  recipients = [f"reader{index}@example.com" for index in range(20)]
  issue_id = _seed_issue(database, recipients)
  email_client.failures.extend(TransientEmailError(f"HTTP 503 #{index}") for index in range(7))
  stop_event = asyncio.Event()
  loops = [asyncio.create_task(build_worker(database, email_client).run_until_stopped(stop_event)) for _ in range(4)]

  for _ in range(500):
    if not database.queue:
      break
    await asyncio.sleep(0.01)
  stop_event.set()
  await asyncio.wait_for(asyncio.gather(*loops), timeout=2)

  assert sorted(email_client.recipients) == sorted(recipients)
  assert len(email_client.recipients) == len(set(email_client.recipients))
  assert email_client.failures == []
  assert email_client.calls == len(recipients) + 7
  assert database.pending_for(issue_id) == []


def _loop_task(handle: DeliveryWorkerHandle) -> asyncio.Task:
  return next(task for task in asyncio.all_tasks() if task.get_name() == handle.name)


@pytest.mark.anyio
async def test_stop_after_loop_was_cancelled_elsewhere(database: InMemoryDatabase, email_client: RecordingEmailClient) -> None:
  handle = DeliveryWorkerHandle(build_worker(database, email_client, idle_seconds=60), shutdown_grace_seconds=5)
  handle.start()
  await asyncio.sleep(0.01)
  loop_task = _loop_task(handle)

  loop_task.cancel()
  await asyncio.sleep(0.01)
  assert loop_task.cancelled()

  await asyncio.wait_for(handle.stop(), timeout=1)
  assert not handle.running


@pytest.mark.anyio
async def test_stop_survives_loop_cancelled_during_grace_period(database: InMemoryDatabase, email_client: RecordingEmailClient) -> None:
  issue_id = _seed_issue(database, ["ada@example.com"])
  email_client.gate = asyncio.Event()
  handle = DeliveryWorkerHandle(build_worker(database, email_client), shutdown_grace_seconds=5)
  handle.start()
  await asyncio.sleep(0.01)
  loop_task = _loop_task(handle)

  stopping = asyncio.create_task(handle.stop())
  await asyncio.sleep(0.01)
  loop_task.cancel()
  await asyncio.wait_for(stopping, timeout=1)

  assert not handle.running
  assert len(database.pending_for(issue_id)) == 1
  assert database.task_locks == {}


@pytest.mark.anyio
async def test_stop_worker_pool_after_one_loop_was_cancelled(database: InMemoryDatabase, email_client: RecordingEmailClient) -> None:
  handles = start_delivery_workers(build_worker(database, email_client, idle_seconds=60), count=2, shutdown_grace_seconds=1)
  await asyncio.sleep(0.01)
  _loop_task(handles[0]).cancel()
  await asyncio.sleep(0.01)

  await asyncio.wait_for(stop_delivery_workers(handles), timeout=1)

  assert not any(handle.running for handle in handles)
