import pytest

from app.core.exceptions import InputValidationError, RemoteSubmissionError
from app.models.training_job import TrainingStatus
from app.models.user import User
from app.services.reorganizer import ReorganizeOutcome
from app.workers.training import TrainingWorkflow, final_folder_key, new_temp_folder_name

from conftest import OWNER_ID, PENDING

PHOTOS = [(b"photo-1", "image/jpeg"), (b"photo-2", "image/png"), (b"photo-3", "image/jpeg")]


class SpyReorganizer:
    def __init__(self, inner):
        self.inner = inner
        self.calls = []

    async def reorganize(self, owner_id, provisional_key, final_key):
        self.calls.append((owner_id, provisional_key, final_key))
        return await self.inner.reorganize(owner_id, provisional_key, final_key)


@pytest.fixture
def workflow(services):
    services.users.register_device_token(OWNER_ID, "ios-token-owner000", "ios")
    return TrainingWorkflow(services)


def model_count(services):
    db = services.users.session_factory()
    try:
        return db.query(User).filter(User.id == OWNER_ID).one().model_count
    finally:
        db.close()


def test_temp_folder_names_are_unique():
    first, second = new_temp_folder_name(), new_temp_folder_name()
    assert first.startswith("temp_")
    assert first != second


@pytest.mark.asyncio
async def test_end_to_end_training(workflow, services, remote, transport, sleep):
    remote.statuses = [PENDING, PENDING, PENDING, {
        "status": "completed", "id": "char_42", "thumbnail_url": "https://x/thumb.jpg",
    }]
    spy = SpyReorganizer(services.reorganizer)
    services.reorganizer = spy

    job, task_id = await workflow.start_from_uploads(OWNER_ID, "My Model", PHOTOS)

    assert job.status == TrainingStatus.PENDING
    assert task_id == "task-1"
    assert len(remote.submissions[0]["image_urls"]) == 3
    assert model_count(services) == 1

    result = await workflow.run_detached(job.id, task_id)

    assert result.status == TrainingStatus.COMPLETED
    assert result.external_character_id == "char_42"
    assert result.thumbnail_url == "https://x/thumb.jpg"
    assert remote.fetch_calls == 4
    assert len(sleep.calls) == 3
    assert spy.calls == [(OWNER_ID, job.provisional_folder_key, f"users/{OWNER_ID}/char_42/")]

    final_prefix = final_folder_key(OWNER_ID, "char_42")
    assert len(await services.storage.list_keys(final_prefix + "training/")) == 3
    assert await services.storage.list_keys(job.provisional_folder_key) == []

    assert len(transport.sent) == 1
    assert transport.sent[0][1].type == "training_completed"


@pytest.mark.asyncio
async def test_provider_failure_marks_job_failed_and_notifies(workflow, services, remote, transport):
    remote.statuses = [PENDING, {"status": "failed", "error": "not enough faces"}]
    job, task_id = await workflow.start_from_uploads(OWNER_ID, "My Model", PHOTOS)

    result = await workflow.run_detached(job.id, task_id)

    assert result.status == TrainingStatus.FAILED
    assert "not enough faces" in result.error_detail
    assert result.external_character_id is None
    assert transport.sent[0][1].type == "training_failed"
    # Photos stay in the provisional folder
    assert len(await services.storage.list_keys(job.provisional_folder_key)) == 3


@pytest.mark.asyncio
async def test_timeout_marks_job_failed(workflow, services, remote):
    services.poller.training_max_attempts = 3
    job, task_id = await workflow.start_from_uploads(OWNER_ID, "My Model", PHOTOS)

    result = await workflow.run_detached(job.id, task_id)

    assert result.status == TrainingStatus.FAILED
    assert remote.fetch_calls == 3


@pytest.mark.asyncio
async def test_submit_failure_marks_job_failed(workflow, services, remote):
    remote.submit_error = RemoteSubmissionError("Training submission failed: 500")

    with pytest.raises(RemoteSubmissionError):
        await workflow.start_from_uploads(OWNER_ID, "My Model", PHOTOS)

    jobs = services.store.list_training_jobs(OWNER_ID)
    assert [job.status for job in jobs] == [TrainingStatus.FAILED]
    assert model_count(services) == 0


@pytest.mark.asyncio
async def test_unexpected_error_fails_job_and_propagates(workflow, services):
    class BrokenPoller:
        async def run_training_poll(self, task_id):
            raise RuntimeError("bug")

    services.poller = BrokenPoller()
    job, task_id = await workflow.start_from_uploads(OWNER_ID, "My Model", PHOTOS)

    with pytest.raises(RuntimeError):
        await workflow.run_detached(job.id, task_id)
    assert services.store.get_training_job(job.id).status == TrainingStatus.FAILED


@pytest.mark.asyncio
async def test_incomplete_reorganize_still_completes(workflow, services, remote, transport):
    class FailingReorganizer:
        async def reorganize(self, owner_id, provisional_key, final_key):
            return ReorganizeOutcome(moved=0, failures=[(provisional_key, "denied")])

    services.reorganizer = FailingReorganizer()
    remote.statuses = [{"status": "completed", "id": "char_7"}]
    job, task_id = await workflow.start_from_uploads(OWNER_ID, "My Model", PHOTOS)

    result = await workflow.run_detached(job.id, task_id)

    assert result.status == TrainingStatus.COMPLETED
    assert transport.sent[0][1].type == "training_completed"


@pytest.mark.asyncio
@pytest.mark.parametrize("name, photos", [("", PHOTOS), ("My Model", [])])
async def test_invalid_input_is_rejected_before_anything_is_stored(workflow, services, remote, name, photos):
    with pytest.raises(InputValidationError):
        await workflow.start_from_uploads(OWNER_ID, name, photos)

    assert services.store.list_training_jobs(OWNER_ID) == []
    assert remote.submissions == []


@pytest.mark.asyncio
async def test_start_from_onboarding_folder(workflow, services, remote):
    folder = new_temp_folder_name()
    await workflow.store_photos(OWNER_ID, folder, PHOTOS)

    job, _ = await workflow.start_from_folder(OWNER_ID, "Onboarded", folder)

    assert job.provisional_folder_key == f"users/{OWNER_ID}/{folder}/"
    assert job.input_photo_count == 3
    assert all(url.startswith(f"/files/users/{OWNER_ID}/{folder}/training/") for url in remote.submissions[0]["image_urls"])


@pytest.mark.asyncio
async def test_start_from_empty_folder_is_rejected(workflow):
    with pytest.raises(InputValidationError):
        await workflow.start_from_folder(OWNER_ID, "Onboarded", "temp_1_missing")
