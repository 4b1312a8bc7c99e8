import pytest

from app.services.reorganizer import Reorganizer
from app.services.storage import LocalStorageBackend, StorageService

OWNER = "user-1"
PROVISIONAL = f"users/{OWNER}/temp_1700000000000_abcd1234/"
FINAL = f"users/{OWNER}/char_42/"


class FlakyBackend(LocalStorageBackend):
    """Local backend whose copy fails for keys containing a marker."""

    def __init__(self, base_path, fail_marker):
        super().__init__(base_path)
        self.fail_marker = fail_marker

    def copy_object(self, src_key, dst_key):
        if self.fail_marker in src_key:
            raise OSError("simulated copy failure")
        super().copy_object(src_key, dst_key)


async def seed(storage, names):
    for name in names:
        await storage.put_object(PROVISIONAL + name, b"img-" + name.encode())


@pytest.mark.asyncio
async def test_moves_every_object_and_keeps_relative_paths(storage):
    await seed(storage, ["training/a.jpg", "training/b.jpg", "meta/info.json"])

    outcome = await Reorganizer(storage).reorganize(OWNER, PROVISIONAL, FINAL)

    assert outcome.moved == 3
    assert outcome.complete
    assert await storage.list_keys(PROVISIONAL) == []
    assert await storage.list_keys(FINAL) == [
        FINAL + "meta/info.json",
        FINAL + "training/a.jpg",
        FINAL + "training/b.jpg",
    ]
    assert await storage.get_file(FINAL + "training/a.jpg") == b"img-training/a.jpg"


@pytest.mark.asyncio
async def test_second_run_is_a_noop(storage):
    await seed(storage, ["training/a.jpg"])
    reorganizer = Reorganizer(storage)

    first = await reorganizer.reorganize(OWNER, PROVISIONAL, FINAL)
    second = await reorganizer.reorganize(OWNER, PROVISIONAL, FINAL)

    assert first.moved == 1
    assert second.moved == 0
    assert second.complete


@pytest.mark.asyncio
async def test_partial_failure_moves_the_rest(tmp_path):
    storage = StorageService(FlakyBackend(str(tmp_path / "blobs"), fail_marker="bad"))
    await seed(storage, ["training/a.jpg", "training/bad.jpg", "training/c.jpg"])

    outcome = await Reorganizer(storage).reorganize(OWNER, PROVISIONAL, FINAL)

    assert outcome.moved == 2
    assert not outcome.complete
    assert [key for key, _ in outcome.failures] == [PROVISIONAL + "training/bad.jpg"]
    assert await storage.list_keys(PROVISIONAL) == [PROVISIONAL + "training/bad.jpg"]
    assert len(await storage.list_keys(FINAL)) == 2


@pytest.mark.asyncio
async def test_refuses_prefixes_outside_owner_namespace(storage):
    await seed(storage, ["training/a.jpg"])

    outcome = await Reorganizer(storage).reorganize(OWNER, PROVISIONAL, "users/someone-else/char_42/")

    assert outcome.moved == 0
    assert not outcome.complete
    assert len(await storage.list_keys(PROVISIONAL)) == 1


@pytest.mark.asyncio
async def test_same_source_and_target_does_nothing(storage):
    await seed(storage, ["training/a.jpg"])

    outcome = await Reorganizer(storage).reorganize(OWNER, PROVISIONAL, PROVISIONAL.rstrip("/"))

    assert outcome.moved == 0
    assert outcome.complete
    assert len(await storage.list_keys(PROVISIONAL)) == 1
