"""End-to-end tests for UploadOrchestrator against a fake Agora server."""
import hashlib
import io
import os
import tempfile
import zipfile

import pytest

from agora_uploader import ImportOptions, TransportConfig, UploadOrchestrator
from agora_uploader.errors import ImportFailedError, ImportSessionError
from agora_uploader.models import ReconciliationStatus, UploadConfig

BASE_URL = "http://agora.test"


@pytest.fixture
def scratch(tmp_path, monkeypatch):
    """Redirect temporary directories so leftovers can be inspected."""
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(scratch))
    return scratch


def _orchestrator(server, config):
    transport = TransportConfig(BASE_URL, api_key=server.api_key)
    return UploadOrchestrator(transport, config=config, http_transport=server.transport)


def _upload_requests(server):
    return [r for r in server.requests if r.url.path.endswith("/upload/")]


@pytest.mark.asyncio
async def test_small_files_in_folder_go_out_as_one_archive(tmp_path, fake_server, fast_config, scratch):
    folder = tmp_path / "study"
    folder.mkdir()
    for i in range(5):
        (folder / f"img_{i}.dcm").write_bytes(os.urandom(10 * 1024))

    async with _orchestrator(fake_server, fast_config) as uploader:
        outcome = await uploader.upload_path(folder, ImportOptions(target_folder_id=12))

    assert outcome.import_id == fake_server.import_id
    assert [r.filename for r in outcome.results] == ["upload_0.agora_upload"]
    assert outcome.failed_units == []
    assert len(fake_server.chunks) == 1
    (transfer_id,) = fake_server.chunks
    assert fake_server.filenames[transfer_id] == "upload_0.agora_upload"
    with zipfile.ZipFile(io.BytesIO(fake_server.assembled(transfer_id))) as zf:
        assert sorted(zf.namelist()) == [f"img_{i}.dcm" for i in range(5)]
    assert fake_server.complete_body == {"folder": "12"}
    assert outcome.progress.state == 4
    assert list(scratch.iterdir()) == []


@pytest.mark.asyncio
async def test_large_file_is_chunked_and_verified(tmp_path, fake_server, fast_config, scratch):
    big = tmp_path / "volume.nii"
    content = os.urandom(250 * 1024)
    big.write_bytes(content)

    async with _orchestrator(fake_server, fast_config) as uploader:
        outcome = await uploader.upload_path(big)

    (result,) = outcome.results
    assert result.success
    assert fake_server.total_chunks[result.transfer_id] == 3
    assert hashlib.sha256(fake_server.assembled(result.transfer_id)).digest() == hashlib.sha256(content).digest()
    sizes = [f["flowCurrentChunkSize"] for f in fake_server.chunk_fields]
    assert sizes == [str(100 * 1024), str(100 * 1024), str(50 * 1024)]


@pytest.mark.asyncio
async def test_failed_unit_does_not_block_completion(tmp_path, fake_server, fast_config, scratch):
    folder = tmp_path / "study"
    folder.mkdir()
    (folder / "good.raw").write_bytes(os.urandom(150 * 1024))
    (folder / "bad.raw").write_bytes(os.urandom(150 * 1024))
    fake_server.fail_uploads_for.add("bad.raw")

    async with _orchestrator(fake_server, fast_config) as uploader:
        outcome = await uploader.upload_path(folder)

    assert [r.filename for r in outcome.failed_units] == ["bad.raw"]
    assert fake_server.complete_body == {}


@pytest.mark.asyncio
async def test_verify_reconciles_datafiles(tmp_path, fake_server, fast_config, scratch):
    folder = tmp_path / "study"
    folder.mkdir()
    content = b"dicom" * 10
    (folder / "a.dcm").write_bytes(content)
    (folder / "b.dcm").write_bytes(b"other")
    fake_server.progress_states = [{"state": 4, "progress": 100}, {"state": 5, "progress": 100}]
    fake_server.result = [
        {
            "datafiles": [
                {"id": 1, "name": "a.dcm", "sha1": hashlib.sha1(content).hexdigest()},
                {"id": 2, "name": "b.dcm", "sha1": "mismatch"},
            ]
        }
    ]

    async with _orchestrator(fake_server, fast_config) as uploader:
        outcome = await uploader.upload_path(folder, verify=True)

    assert outcome.progress.state == 5
    statuses = {e.unit.name: e.status for e in outcome.reconciliation}
    assert statuses == {"a.dcm": ReconciliationStatus.IMPORTED, "b.dcm": ReconciliationStatus.FAILED}
    assert outcome.all_imported is False


@pytest.mark.asyncio
async def test_dry_run_creates_and_completes_without_sending(tmp_path, fake_server, scratch):
    big = tmp_path / "volume.nii"
    big.write_bytes(os.urandom(1024))
    config = UploadConfig(chunk_size=100, dry_run=True, progress_interval=0)

    async with _orchestrator(fake_server, config) as uploader:
        outcome = await uploader.upload_path(big)

    assert outcome.results[0].success
    assert _upload_requests(fake_server) == []
    assert fake_server.complete_body == {}


@pytest.mark.asyncio
async def test_create_failure_is_fatal(tmp_path, fake_server, fast_config, scratch):
    big = tmp_path / "a.bin"
    big.write_bytes(b"x")
    fake_server.create_status = 500

    async with _orchestrator(fake_server, fast_config) as uploader:
        with pytest.raises(ImportSessionError):
            await uploader.upload_path(big)

    assert _upload_requests(fake_server) == []


@pytest.mark.asyncio
async def test_complete_failure_is_fatal(tmp_path, fake_server, fast_config, scratch):
    big = tmp_path / "a.bin"
    big.write_bytes(b"x")
    fake_server.complete_status = 400

    async with _orchestrator(fake_server, fast_config) as uploader:
        with pytest.raises(ImportSessionError):
            await uploader.upload_path(big, ImportOptions(target_folder_id=999))


@pytest.mark.asyncio
async def test_failed_import(tmp_path, fake_server, fast_config, scratch):
    big = tmp_path / "a.bin"
    big.write_bytes(b"x")
    fake_server.progress_states = [{"state": 1, "progress": 0}, {"state": -1, "progress": 0}]

    async with _orchestrator(fake_server, fast_config) as uploader:
        with pytest.raises(ImportFailedError):
            await uploader.upload_path(big)


@pytest.mark.asyncio
async def test_upload_without_wait_skips_progress(tmp_path, fake_server, fast_config, scratch):
    big = tmp_path / "a.bin"
    big.write_bytes(b"x")

    async with _orchestrator(fake_server, fast_config) as uploader:
        outcome = await uploader.upload([big], wait=False)

    assert outcome.progress is None
    assert not any(r.url.path.endswith("/progress/") for r in fake_server.requests)


@pytest.mark.asyncio
async def test_malformed_flowfile_fails_only_that_unit(tmp_path, fake_server, fast_config, scratch):
    folder = tmp_path / "study"
    folder.mkdir()
    (folder / "good.raw").write_bytes(os.urandom(150 * 1024))
    (folder / "bad.raw").write_bytes(os.urandom(150 * 1024))
    fake_server.malformed_flowfile_for.add("bad.raw")

    async with _orchestrator(fake_server, fast_config) as uploader:
        outcome = await uploader.upload_path(folder)

    assert [r.filename for r in outcome.failed_units] == ["bad.raw"]
    assert "malformed flowfile" in outcome.failed_units[0].error
    assert [r.filename for r in outcome.results if r.success] == ["good.raw"]
    assert fake_server.complete_body == {}
    assert list(scratch.iterdir()) == []


@pytest.mark.asyncio
async def test_verify_reports_units_without_datafile(tmp_path, fake_server, fast_config, scratch):
    folder = tmp_path / "study"
    folder.mkdir()
    content = b"dicom" * 10
    (folder / "a.dcm").write_bytes(content)
    (folder / "b.dcm").write_bytes(b"dropped")
    fake_server.progress_states = [{"state": 5, "progress": 100}]
    fake_server.result = [{"datafiles": [{"id": 1, "name": "a.dcm", "sha1": hashlib.sha1(content).hexdigest()}]}]

    async with _orchestrator(fake_server, fast_config) as uploader:
        outcome = await uploader.upload_path(folder, verify=True)

    statuses = {e.unit.name: e.status for e in outcome.reconciliation}
    assert statuses == {"a.dcm": ReconciliationStatus.IMPORTED, "b.dcm": ReconciliationStatus.MISSING}
    assert not outcome.all_imported


@pytest.mark.asyncio
async def test_upload_requires_context(tmp_path, fake_server, fast_config):
    uploader = _orchestrator(fake_server, fast_config)

    with pytest.raises(RuntimeError, match="async with"):
        await uploader.upload([tmp_path])
