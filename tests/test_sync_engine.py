"""Tests for manual sync orchestration."""

import asyncio
from unittest.mock import patch

import pytest

from fieldsync.core import ChangeKind, FieldSyncEngine, OfflineSyncRequested, SyncEngine
from fieldsync.storage import CollectionKey, StorageFailure

from conftest import gps_photo_payload, make_prober, make_pusher, make_settings, medicine_payload, milda_payload


async def save_three_distributions(engine):
    ids = []
    ids.append((await engine.save_distribution(milda_payload("A"), "milda"))["id"])
    ids.append((await engine.save_distribution(milda_payload("B"), "milda"))["id"])
    ids.append((await engine.save_distribution(medicine_payload("C"), "medicine"))["id"])
    return ids


class TestManualSync:
    """Manual sync passes with remote doubles."""

    async def test_all_pushes_succeed(self, engine):
        await save_three_distributions(engine)

        result = await engine.manual_sync()

        assert result.to_dict() == {"success": True, "synced_count": 3, "total_unsynced": 3}
        assert all(doc.synced for doc in await engine.get_all_distributions())
        assert (await engine.get_unsynced_count())["total"] == 0

    async def test_partial_failure_keeps_failed_document_unsynced(self, settings, db_manager):
        prober = make_prober(online=True)
        pusher = make_pusher()
        engine = FieldSyncEngine(settings=settings, db_manager=db_manager, prober=prober, pusher=pusher)
        await engine.start(probe=False)

        first = await engine.save_distribution(milda_payload("A"), "milda")
        second = await engine.save_distribution(milda_payload("B"), "milda")
        pusher.push.side_effect = make_pusher(fail_ids={second["id"]}).push.side_effect

        result = await engine.manual_sync()

        assert result.success is True
        assert result.synced_count == 1
        assert result.total_unsynced == 2
        assert result.collections[0].failed_ids == [second["id"]]

        flags = {doc.id: doc.synced for doc in await engine.get_all_distributions()}
        assert flags == {first["id"]: True, second["id"]: False}
        await engine.remote.close()

    async def test_failed_document_is_retried_next_pass(self, engine, pusher):
        doc_id = (await engine.save_gps_photo(gps_photo_payload()))["id"]
        pusher.push.side_effect = make_pusher(fail_ids={doc_id}).push.side_effect
        await engine.manual_sync()

        pusher.push.side_effect = make_pusher().push.side_effect
        result = await engine.manual_sync()

        assert result.synced_count == 1
        assert (await engine.get_all_gps_photos())[0].synced is True

    async def test_synced_documents_are_not_pushed_again(self, engine, pusher):
        await save_three_distributions(engine)
        await engine.manual_sync()
        pusher.push.reset_mock()

        result = await engine.manual_sync()

        assert result.to_dict() == {"success": True, "synced_count": 0, "total_unsynced": 0}
        pusher.push.assert_not_called()

    async def test_distributions_pushed_before_gps_photos(self, engine, pusher):
        await engine.save_gps_photo(gps_photo_payload())
        await engine.save_distribution(milda_payload(), "milda")

        await engine.manual_sync()

        remotes = [call.args[1] for call in pusher.push.call_args_list]
        assert remotes == ["omvs_distributions", "omvs_gps_photos"]

    async def test_empty_store(self, engine):
        result = await engine.manual_sync()
        assert result.to_dict() == {"success": True, "synced_count": 0, "total_unsynced": 0}


class TestOfflineSync:
    """Sync requested without connectivity."""

    async def test_offline_probes_once_then_refuses(self, settings, db_manager):
        prober = make_prober(online=False)
        pusher = make_pusher()
        engine = FieldSyncEngine(settings=settings, db_manager=db_manager, prober=prober, pusher=pusher)
        await engine.start(probe=False)
        await save_three_distributions(engine)

        with pytest.raises(OfflineSyncRequested):
            await engine.manual_sync()

        prober.probe.assert_awaited_once()
        pusher.push.assert_not_called()
        assert not any(doc.synced for doc in await engine.get_all_distributions())

        history = engine.get_sync_history()
        assert len(history) == 1
        assert history[0].success is False
        assert history[0].error_message == "Cannot sync while offline"
        await engine.remote.close()

    async def test_offline_probe_success_continues(self, settings, db_manager):
        prober = make_prober(online=False, probe_result=True)
        engine = FieldSyncEngine(settings=settings, db_manager=db_manager, prober=prober, pusher=make_pusher())
        await engine.start(probe=False)
        await engine.save_gps_photo(gps_photo_payload())

        result = await engine.manual_sync()

        assert result.synced_count == 1
        assert engine.get_status().is_online is True
        await engine.remote.close()


class TestSyncConcurrency:
    """Sync holds the collection while it pushes."""

    async def test_save_during_sync_is_not_lost(self, engine, pusher):
        first = await engine.save_distribution(milda_payload("A"), "milda")

        pushing = asyncio.Event()
        release = asyncio.Event()

        async def slow_push(document, remote_collection):
            pushing.set()
            await release.wait()
            document.synced = True
            return True

        pusher.push.side_effect = slow_push

        sync_task = asyncio.create_task(engine.manual_sync())
        await pushing.wait()

        save_task = asyncio.create_task(engine.save_distribution(milda_payload("B"), "milda"))
        for _ in range(5):
            await asyncio.sleep(0)
        assert not save_task.done()

        release.set()
        result = await sync_task
        second = await save_task

        assert result.synced_count == 1
        flags = {doc.id: doc.synced for doc in await engine.get_all_distributions()}
        assert flags == {first["id"]: True, second["id"]: False}

    async def test_reads_are_not_blocked_by_sync(self, engine, pusher):
        await engine.save_distribution(milda_payload(), "milda")

        pushing = asyncio.Event()
        release = asyncio.Event()

        async def slow_push(document, remote_collection):
            pushing.set()
            await release.wait()
            document.synced = True
            return True

        pusher.push.side_effect = slow_push
        sync_task = asyncio.create_task(engine.manual_sync())
        await pushing.wait()

        docs = await engine.get_all_distributions()
        assert len(docs) == 1 and docs[0].synced is False

        release.set()
        await sync_task

    @pytest.mark.integration
    async def test_pushes_are_sequential(self, remote_server, fake_couch, db_manager):
        fake_couch.push_delay = 0.05
        engine = FieldSyncEngine(settings=make_settings(remote_server), db_manager=db_manager)
        await engine.start()
        await save_three_distributions(engine)
        await engine.save_gps_photo(gps_photo_payload())

        result = await engine.manual_sync()

        assert result.synced_count == 4
        assert fake_couch.max_in_flight == 1
        pushed = [r["body"]["type"] for r in fake_couch.requests if r["method"] == "POST"]
        assert pushed == ["milda", "milda", "medicine", "gps_photo"]
        await engine.remote.close()


class TestSyncFailures:
    """Persistence failures and bookkeeping."""

    async def test_persist_failure_propagates(self, engine):
        await save_three_distributions(engine)

        with patch.object(engine.store, "_write", side_effect=StorageFailure("disk full", "distributions")):
            with pytest.raises(StorageFailure):
                await engine.manual_sync()

        history = engine.get_sync_history()
        assert history[0].success is False
        assert "disk full" in history[0].error_message

    async def test_sync_run_is_logged(self, engine):
        await save_three_distributions(engine)
        await engine.manual_sync()

        history = engine.get_sync_history()

        assert len(history) == 1
        assert history[0].success is True
        assert history[0].synced_count == 3
        assert history[0].total_unsynced == 3
        assert history[0].completed_at is not None

    async def test_synced_event_lists_flipped_ids(self, engine):
        ids = await save_three_distributions(engine)
        events = []
        engine.on_change(events.append)

        await engine.manual_sync()

        assert events[-1].kind == ChangeKind.SYNCED
        assert list(events[-1].document_ids) == ids
        assert events[-1].details["synced_count"] == 3

    async def test_sync_engine_without_notifier(self, store):
        engine = SyncEngine(
            store=store,
            prober=make_prober(online=True),
            pusher=make_pusher(),
            remote_collections={
                CollectionKey.DISTRIBUTIONS: "omvs_distributions",
                CollectionKey.GPS_PHOTOS: "omvs_gps_photos",
            }
        )

        result = await engine.manual_sync()

        assert result.success is True
        assert [c.collection_key for c in result.collections] == ["distributions", "gps_photos"]
