import json
import threading

import pytest

from mminstaller import orchestrator
from mminstaller.events import AddAlert, AlertLevel, ChangePhase, Phase, UpdateProgress
from mminstaller.exceptions import HTTPError, IntegrityError
from mminstaller.models import Manifest, Side
from mminstaller.ledger import InstallLedger
from mminstaller.orchestrator import Installer, ProgressTracker, RunState
from tests.conftest import (
    LOADER_BODY,
    MOD_A_BODY,
    MOD_B_BODY,
    RESOURCE_BODY,
    make_zip,
    pack_data,
    sha1,
)


def installer(manifest, settings, emitter=None, **kwargs):
    kwargs.setdefault("post_install", False)
    return Installer(manifest, settings, emitter, **kwargs)


def ledger_json(settings):
    return json.loads(settings.state_path.read_text(encoding="utf-8"))


async def test_full_install(pack, settings, events):
    run = installer(pack, settings, events)
    stats = await run.run()

    root = settings.install_dir
    assert run.state == RunState.DONE
    assert stats.downloaded == 4 and stats.skipped == 0
    assert (root / "forge-installer.jar").read_bytes() == LOADER_BODY
    assert (root / "mods" / "mod-a.jar").read_bytes() == MOD_A_BODY
    assert (root / "mods" / "mod-b.jar").read_bytes() == MOD_B_BODY
    assert (root / "config" / "defaults" / "options.txt").read_bytes() == RESOURCE_BODY
    assert list(settings.temp_dir.iterdir()) == []

    ledger = ledger_json(settings)
    assert ledger["modLoader"]["fileName"] == "forge-installer.jar"
    assert [m["fileName"] for m in ledger["mods"]] == ["mod-a.jar", "mod-b.jar"]
    assert ledger["mods"][1]["hash"] == sha1(MOD_B_BODY)
    assert ledger["resources"][0]["targetDir"] == "config/defaults"

    phases = [e.phase for e in events.received if isinstance(e, ChangePhase)]
    assert phases == [
        Phase.DOWNLOAD_MOD_LOADER,
        Phase.DOWNLOAD_MODS,
        Phase.DOWNLOAD_RESOURCES,
    ]


async def test_progress_is_monotonic_and_ends_at_one(pack, settings, events):
    await installer(pack, settings, events).run()

    values = [e.progress for e in events.received if isinstance(e, UpdateProgress)]
    assert values[0] == 0.0
    assert values == sorted(values)
    assert values[-1] == 1.0
    # 1 loader + 2 mods + 1 resource: every step boundary is reported
    for boundary in (0.25, 0.5, 0.75):
        assert boundary in values


async def test_second_run_is_idempotent(pack, settings, file_server):
    await installer(pack, settings).run()
    ledger_before = settings.state_path.read_bytes()
    hits_before = file_server.total_hits

    stats = await installer(pack, settings).run()

    assert stats.downloaded == 0 and stats.skipped == 4
    assert file_server.total_hits == hits_before
    assert settings.state_path.read_bytes() == ledger_before


async def test_drift_redownloads_and_replaces_record(file_server, settings, log_messages):
    await installer(Manifest.from_dict(pack_data(file_server)), settings).run()

    new_body = b"mod-a-v2" * 100
    file_server.add_file("/mods/mod-a-2.jar", new_body)
    data = pack_data(file_server)
    data["mods"][0]["hash"] = sha1(new_body)
    data["mods"][0]["url"] = file_server.url("/mods/mod-a.jar")
    file_server.add_redirect("/mods/mod-a.jar", "/mods/mod-a-2.jar")

    stats = await installer(Manifest.from_dict(data), settings).run()

    assert stats.downloaded == 1
    ledger = ledger_json(settings)
    assert len(ledger["mods"]) == 2
    assert ledger["mods"][0]["fileName"] == "mod-a-2.jar"
    assert ledger["mods"][0]["hash"] == sha1(new_body)
    mods_dir = settings.install_dir / "mods"
    assert sorted(p.name for p in mods_dir.iterdir()) == ["mod-a-2.jar", "mod-b.jar"]
    assert any(m.startswith("[漂移]") for m in log_messages)


async def test_interrupted_run_resumes(file_server, settings):
    data = pack_data(file_server)
    file_server.add_status("/mods/mod-b.jar", 404, "not yet")

    failed = installer(Manifest.from_dict(data), settings)
    with pytest.raises(HTTPError):
        await failed.run()
    assert failed.state == RunState.FAILED

    ledger = ledger_json(settings)
    assert ledger["modLoader"] is not None
    assert [m["fileName"] for m in ledger["mods"]] == ["mod-a.jar"]
    assert ledger["resources"] == []

    file_server.add_file("/mods/mod-b.jar", MOD_B_BODY)
    file_server.hits.clear()
    stats = await installer(Manifest.from_dict(data), settings).run()

    assert stats.downloaded == 2 and stats.skipped == 2
    assert set(file_server.hits) == {"/mods/mod-b.jar", "/res/options.txt"}


async def test_hash_mismatch_never_reaches_destination(file_server, settings):
    data = pack_data(file_server)
    data["mods"][0]["hash"] = sha1(b"something else")

    run = installer(Manifest.from_dict(data), settings)
    with pytest.raises(IntegrityError):
        await run.run()

    assert run.state == RunState.FAILED
    assert not (settings.install_dir / "mods" / "mod-a.jar").exists()
    assert not (settings.temp_dir / "mod-a.jar").exists()
    assert [m["fileName"] for m in ledger_json(settings)["mods"]] == []


async def test_missing_file_on_disk_is_redownloaded(pack, settings):
    await installer(pack, settings).run()
    (settings.install_dir / "mods" / "mod-b.jar").unlink()
    (settings.install_dir / "mods" / "mod-a.jar").write_bytes(b"tampered")

    stats = await installer(pack, settings).run()

    assert stats.downloaded == 2
    assert (settings.install_dir / "mods" / "mod-a.jar").read_bytes() == MOD_A_BODY


async def test_trusting_the_ledger_when_verification_is_off(pack, settings):
    await installer(pack, settings).run()
    (settings.install_dir / "mods" / "mod-b.jar").unlink()
    settings.verify_on_disk = False

    stats = await installer(pack, settings).run()

    assert stats.downloaded == 0


async def test_side_filter(pack, settings, file_server, events):
    settings.side = Side.SERVER

    run = installer(pack, settings, events)
    assert run.total_steps() == 3
    stats = await run.run()

    assert stats.downloaded == 3
    assert file_server.hits["/mods/mod-b.jar"] == 0
    values = [e.progress for e in events.received if isinstance(e, UpdateProgress)]
    assert values[-1] == 1.0


async def test_decompressed_resource(file_server, settings):
    archive = make_zip({"shader/main.glsl": b"void main() {}", "info.txt": b"x"})
    file_server.add_file("/res/shaders.zip", archive)
    data = pack_data(file_server)
    data["resources"].append(
        {
            "name": "Shaders",
            "type": "direct",
            "url": file_server.url("/res/shaders.zip"),
            "hash": sha1(archive),
            "targetDir": "shaderpacks/pack",
            "decompress": True,
        }
    )

    await installer(Manifest.from_dict(data), settings).run()

    target = settings.install_dir / "shaderpacks" / "pack"
    assert (target / "shader" / "main.glsl").read_bytes() == b"void main() {}"
    assert not (target / "shaders.zip").exists()
    assert ledger_json(settings)["resources"][1]["decompress"] is True

    stats = await installer(Manifest.from_dict(data), settings).run()
    assert stats.downloaded == 0


async def test_post_install_adds_profile(pack, settings, events):
    settings.minecraft_dir.mkdir(parents=True)
    profiles = settings.minecraft_dir / "launcher_profiles.json"
    profiles.write_text(json.dumps({"profiles": {}, "settings": {}, "version": 3}))

    run = installer(pack, settings, events, post_install=True)
    await run.run()

    assert run.state == RunState.DONE
    names = [p["name"] for p in json.loads(profiles.read_text())["profiles"].values()]
    assert names == ["Test Pack"]
    assert not [e for e in events.received if isinstance(e, AddAlert)]


async def test_post_install_failures_are_alerts(file_server, settings, events, monkeypatch):
    launched = []
    monkeypatch.setattr(
        "mminstaller.orchestrator.launch_jar",
        lambda jar, cwd: launched.append((jar, cwd)),
    )
    data = pack_data(file_server)
    data["modLoader"]["autoOpen"] = True

    run = installer(Manifest.from_dict(data), settings, events, post_install=True)
    await run.run()

    assert run.state == RunState.DONE
    alerts = [e for e in events.received if isinstance(e, AddAlert)]
    assert alerts == [
        AddAlert(AlertLevel.WARNING, "alertOnFailedAddProfile"),
        AddAlert(AlertLevel.INFO, "alertOnLaunchModLoader"),
    ]
    assert launched == [(settings.install_dir / "forge-installer.jar", settings.install_dir)]
    phases = [e.phase for e in events.received if isinstance(e, ChangePhase)]
    assert phases[-2:] == [Phase.ADD_PROFILE, Phase.LAUNCH_MOD_LOADER]


async def test_failed_launch_is_an_alert(file_server, settings, events, monkeypatch):
    def broken(jar, cwd):
        raise OSError("no java")

    monkeypatch.setattr("mminstaller.orchestrator.launch_jar", broken)
    data = pack_data(file_server)
    data["modLoader"]["autoOpen"] = True

    run = installer(Manifest.from_dict(data), settings, events, post_install=True)
    await run.run()

    assert run.state == RunState.DONE
    alerts = [e for e in events.received if isinstance(e, AddAlert)]
    assert alerts[-1] == AddAlert(AlertLevel.WARNING, "alertOnFailedLaunchModLoader")


async def test_stale_scratch_files_are_wiped(pack, settings):
    settings.temp_dir.mkdir(parents=True)
    (settings.temp_dir / "partial.jar.part").write_bytes(b"half")

    await installer(pack, settings).run()

    assert not (settings.temp_dir / "partial.jar.part").exists()


def test_states_only_move_forward(pack, settings):
    run = installer(pack, settings)
    run._transition(RunState.PREPARE_WORKSPACE)
    run._transition(RunState.INSTALL_MODS)

    with pytest.raises(RuntimeError):
        run._transition(RunState.INSTALL_LOADER)

    run._transition(RunState.FAILED)
    assert run.state == RunState.FAILED


def test_progress_tracker_ignores_unknown_sizes(events):
    from mminstaller.download import DownloadProgress

    tracker = ProgressTracker(4, events)
    tracker.start()
    tracker.on_download(DownloadProgress(100, None))
    tracker.on_download(DownloadProgress(50, 100))
    tracker.complete_step()
    tracker.on_download(DownloadProgress(0, 100))
    tracker.finish()

    values = [e.progress for e in events.received]
    assert values == [0.0, 0.125, 0.25, 1.0]


async def test_blocking_io_runs_off_the_event_loop(file_server, settings, monkeypatch):
    loop_thread = threading.get_ident()
    threads = {}

    real_extract = orchestrator.extract_archive
    real_load = InstallLedger.load_or_create

    def extract(archive, target_dir):
        threads["extract"] = threading.get_ident()
        return real_extract(archive, target_dir)

    def load(path, version):
        threads["ledger"] = threading.get_ident()
        return real_load(path, version)

    monkeypatch.setattr("mminstaller.orchestrator.extract_archive", extract)
    monkeypatch.setattr(InstallLedger, "load_or_create", staticmethod(load))

    archive = make_zip({"a.txt": b"a"})
    file_server.add_file("/res/pack.zip", archive)
    data = pack_data(file_server)
    data["resources"][0].update(
        url=file_server.url("/res/pack.zip"), hash=sha1(archive), decompress=True
    )

    await installer(Manifest.from_dict(data), settings).run()

    assert set(threads) == {"extract", "ledger"}
    assert loop_thread not in threads.values()
