"""
API tests against an app wired to an in-memory database, local storage
and a recording dispatcher.
"""

from app.core.exceptions import RemoteSubmissionError
from app.models.user import User

from conftest import OWNER_ID


def photo_files(count, content_type="image/jpeg"):
    return [("photos", (f"p{i}.jpg", b"image-bytes-%d" % i, content_type)) for i in range(count)]


def set_model_count(services, value):
    db = services.users.session_factory()
    try:
        db.query(User).filter(User.id == OWNER_ID).update({"model_count": value})
        db.commit()
    finally:
        db.close()


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["docs"] == "/docs"


def test_start_training_accepts_and_dispatches(client, dispatcher, remote):
    response = client.post("/api/v1/train", data={"name": "My Model"}, files=photo_files(3))

    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "pending"
    assert body["input_photo_count"] == 3
    assert dispatcher.training == [(body["id"], remote.task_id)]

    status = client.get(f"/api/v1/train/{body['id']}")
    assert status.status_code == 200
    assert status.json()["display_name"] == "My Model"


def test_training_rejects_non_images(client, dispatcher):
    response = client.post("/api/v1/train", data={"name": "My Model"}, files=photo_files(1, "text/plain"))

    assert response.status_code == 400
    assert response.json()["error"] == "VALIDATION_ERROR"
    assert dispatcher.training == []


def test_training_submit_failure_returns_502(client, dispatcher, remote):
    remote.submit_error = RemoteSubmissionError("Training submission failed: 500")

    response = client.post("/api/v1/train", data={"name": "My Model"}, files=photo_files(2))

    assert response.status_code == 502
    assert dispatcher.training == []


def test_training_limit_returns_403(client, services):
    set_model_count(services, 10)

    response = client.post("/api/v1/train", data={"name": "My Model"}, files=photo_files(2))

    assert response.status_code == 403
    assert response.json()["error"] == "USAGE_LIMIT_EXCEEDED"


def test_other_owners_jobs_are_not_visible(client, services):
    job = services.store.create_training_job("user-2", "Theirs", 3, "users/user-2/temp_1_aaaa/")

    response = client.get(f"/api/v1/train/{job.id}")

    assert response.status_code == 404
    assert response.json()["error"] == "JOB_NOT_FOUND"


def test_generate_accepts_and_dispatches(client, dispatcher, remote):
    response = client.post("/api/v1/generate", json={"prompt": "a castle", "style_id": "style-1"})

    assert response.status_code == 202
    job_id = response.json()["id"]
    assert job_id.startswith(f"gen_{OWNER_ID}_")
    assert dispatcher.generation == [(job_id, remote.task_id)]
    assert remote.submissions[0]["aspect_ratio"] == "3:4"

    detail = client.get(f"/api/v1/generate/{job_id}").json()
    assert detail["status"] == "processing"
    assert detail["image_urls"] == []

    listing = client.get("/api/v1/generate").json()
    assert [item["id"] for item in listing] == [job_id]


def test_generate_with_unknown_character_returns_404(client, dispatcher):
    response = client.post(
        "/api/v1/generate",
        json={"prompt": "a castle", "style_id": "style-1", "character_id": "char_gone"},
    )

    assert response.status_code == 404
    assert response.json()["error"] == "CHARACTER_UNAVAILABLE"
    assert dispatcher.generation == []


def test_generate_validates_quality(client):
    response = client.post("/api/v1/generate", json={"prompt": "x", "style_id": "s", "quality": "ultra"})
    assert response.status_code == 422


def test_completed_generation_exposes_urls(client, services):
    job = services.store.create_generation_job(OWNER_ID, "prompt", "style-1")
    services.store.complete_generation(job.id, [f"users/{OWNER_ID}/style-1/generations/a.png"])

    detail = client.get(f"/api/v1/generate/{job.id}").json()

    assert detail["status"] == "completed"
    assert detail["image_urls"] == [f"/files/users/{OWNER_ID}/style-1/generations/a.png"]


def test_onboarding_upload_then_train(client, dispatcher):
    upload = client.post("/api/v1/onboarding/batch-upload", files=photo_files(15))
    assert upload.status_code == 201
    folder = upload.json()["temp_folder"]

    found = client.get("/api/v1/onboarding/temp-folder").json()
    assert found == {"found": True, "temp_folder": folder, "image_count": 15}

    response = client.post("/api/v1/onboarding/train", json={"name": "Onboarded", "temp_folder": folder})
    assert response.status_code == 202
    assert response.json()["input_photo_count"] == 15
    assert len(dispatcher.training) == 1


def test_onboarding_requires_enough_photos(client):
    response = client.post("/api/v1/onboarding/batch-upload", files=photo_files(3))
    assert response.status_code == 400


def test_uploaded_files_are_served(client):
    upload = client.post("/api/v1/onboarding/batch-upload", files=photo_files(15)).json()

    response = client.get(upload["image_urls"][0])

    assert response.status_code == 200
    assert response.content.startswith(b"image-bytes-")


def test_missing_file_returns_404(client):
    assert client.get("/files/users/user-1/nothing.jpg").status_code == 404


def test_device_token_and_usage(client):
    assert client.get("/api/v1/users/me/device-token").json() == {"has_active_token": False}

    response = client.post("/api/v1/users/me/device-token", json={"token": "ios-device-token-1", "platform": "ios"})
    assert response.status_code == 200
    assert client.get("/api/v1/users/me/device-token").json() == {"has_active_token": True}

    usage = client.get("/api/v1/users/me/usage").json()
    assert usage["subscription_tier"] == "free"
    assert usage["limits"] == {"models": 10, "monthly_generations": 100}


def test_models_listing(client, services):
    services.store.create_training_job(OWNER_ID, "Mine", 3, f"users/{OWNER_ID}/temp_1_aaaa/")

    models = client.get("/api/v1/users/me/models").json()

    assert [model["display_name"] for model in models] == ["Mine"]


def upgrade_to_pro(client):
    response = client.post("/api/v1/users/me/upgrade", json={"payment_info": {"method": "card"}})
    assert response.status_code == 200


def upload_onboarding_photo(client, temp_folder=None, content_type="image/jpeg"):
    data = {"temp_folder": temp_folder} if temp_folder else {}
    return client.post("/api/v1/onboarding/images", data=data, files={"file": ("p.jpg", b"image-bytes", content_type)})


def trained_model(client, services, photos=2):
    folder = upload_onboarding_photo(client).json()["temp_folder"]
    for _ in range(photos - 1):
        upload_onboarding_photo(client, folder)
    job = services.store.create_training_job(OWNER_ID, "Mine", photos, f"users/{OWNER_ID}/{folder}/")
    services.store.mark_training_started(job.id)
    return services.store.complete_training(job.id, "char_1", None)


def test_single_onboarding_uploads_share_a_folder(client):
    first = upload_onboarding_photo(client)
    assert first.status_code == 201
    folder = first.json()["temp_folder"]
    assert folder.startswith("temp_")
    assert first.json()["image_url"].startswith(f"/files/users/{OWNER_ID}/{folder}/training/")

    second = upload_onboarding_photo(client, folder)
    assert second.json()["temp_folder"] == folder

    found = client.get("/api/v1/onboarding/temp-folder").json()
    assert found == {"found": True, "temp_folder": folder, "image_count": 2}


def test_single_onboarding_upload_validates_input(client):
    assert upload_onboarding_photo(client, "../elsewhere").status_code == 400
    assert upload_onboarding_photo(client, content_type="text/plain").status_code == 400
    assert client.get("/api/v1/onboarding/temp-folder").json()["found"] is False


def test_onboarding_upload_is_for_free_users(client):
    upgrade_to_pro(client)

    assert upload_onboarding_photo(client).status_code == 403
    assert client.post("/api/v1/onboarding/batch-upload", files=photo_files(15)).status_code == 403


def test_profile_update(client):
    profile = client.get("/api/v1/users/me/profile").json()
    assert profile["id"] == OWNER_ID
    assert profile["subscription_tier"] == "free"
    assert profile["onboarding_completed"] is False

    response = client.put(
        "/api/v1/users/me/profile",
        json={"name": "  Ada  ", "date_of_birth": "1990-04-01", "gender": "female"},
    )

    assert response.status_code == 200
    assert response.json()["name"] == "Ada"
    assert client.get("/api/v1/users/me/profile").json()["date_of_birth"] == "1990-04-01"


def test_upgrade_requires_payment_info(client):
    assert client.post("/api/v1/users/me/upgrade", json={}).status_code == 422
    assert client.get("/api/v1/users/me/profile").json()["subscription_tier"] == "free"


def test_upgrade_lifts_limits(client, services):
    set_model_count(services, 10)

    upgrade_to_pro(client)

    usage = client.get("/api/v1/users/me/usage").json()
    assert usage["subscription_tier"] == "pro"
    assert usage["limits"] == {"models": -1, "monthly_generations": -1}
    assert usage["can_create_model"] is True


def test_complete_onboarding(client):
    response = client.post("/api/v1/users/me/complete-onboarding")

    assert response.status_code == 200
    assert response.json()["onboarding_completed"] is True


def test_model_delete_is_for_pro_users(client, services):
    job = trained_model(client, services)

    response = client.delete(f"/api/v1/models/{job.id}")

    assert response.status_code == 403
    assert client.get(f"/api/v1/train/{job.id}").status_code == 200


def test_pro_user_deletes_model_and_training_photos(client, services):
    job = trained_model(client, services)
    upgrade_to_pro(client)

    response = client.delete(f"/api/v1/models/{job.id}")

    assert response.status_code == 200
    assert response.json() == {"job_id": job.id, "deleted": 2}
    assert client.get(f"/api/v1/train/{job.id}").status_code == 404
    assert client.get("/api/v1/onboarding/temp-folder").json()["found"] is False


def test_model_in_training_cannot_be_deleted(client, services):
    job = services.store.create_training_job(OWNER_ID, "Mine", 3, f"users/{OWNER_ID}/temp_1_aaaa/")
    upgrade_to_pro(client)

    response = client.delete(f"/api/v1/models/{job.id}")

    assert response.status_code == 409
    assert response.json()["error"] == "INVALID_JOB_TRANSITION"
    assert services.store.get_training_job(job.id) is not None


def test_training_images_list_and_delete(client, services):
    job = trained_model(client, services)

    listing = client.get(f"/api/v1/images/training/{job.id}").json()
    assert listing["count"] == 2
    assert all(url.startswith(f"/files/users/{OWNER_ID}/temp_") for url in listing["images"])

    response = client.delete(f"/api/v1/images/training/{job.id}")
    assert response.json() == {"job_id": job.id, "deleted": 2}
    assert client.get(f"/api/v1/images/training/{job.id}").json()["count"] == 0
    assert client.get(f"/api/v1/train/{job.id}").json()["status"] == "completed"


def test_training_images_of_unknown_model_return_404(client):
    assert client.get("/api/v1/images/training/missing").status_code == 404
    assert client.delete("/api/v1/images/training/missing").status_code == 404


def test_image_gallery_lists_completed_generations(client, services):
    done = services.store.create_generation_job(OWNER_ID, "prompt", "style-1")
    services.store.complete_generation(done.id, [
        f"users/{OWNER_ID}/style-1/generations/a.png",
        f"users/{OWNER_ID}/style-1/generations/b.png",
    ])
    services.store.create_generation_job(OWNER_ID, "still running", "style-1")

    images = client.get("/api/v1/images").json()
    assert images["count"] == 2
    assert images["images"][0] == f"/files/users/{OWNER_ID}/style-1/generations/a.png"

    batches = client.get("/api/v1/images/batches").json()
    assert batches["count"] == 1
    assert batches["batches"][0]["generation_id"] == done.id
    assert len(batches["batches"][0]["image_urls"]) == 2
