import asyncio

import aiohttp
import pytest

from app.core.errors import (
    ConversionTimeoutError,
    NotFoundError,
    RemoteServiceError,
    ValidationError,
)
from app.services.convert import ConversionJob, JobState, Pdf24Converter
from conftest import FakeResponse, FakeSession

PDF_BYTES = b"%PDF-1.4\n" + b"x" * 200_000

UPLOADED = FakeResponse(
    json_data=[
        {"file": "f1", "host": "h1", "name": "itin.docx", "size": 10, "ctime": 1}
    ]
)
STARTED = FakeResponse(json_data={"jobId": "job-42"})


def _status(value):
    return FakeResponse(json_data={"status": value})


@pytest.fixture
def docx(tmp_path):
    path = tmp_path / "itin.docx"
    path.write_bytes(b"PK\x03\x04 fake docx")
    return path


def _converter(session, max_attempts=3):
    return Pdf24Converter(
        base_url="https://pdf.example/client.php",
        poll_interval=0,
        max_attempts=max_attempts,
        session=session,
    )


@pytest.mark.asyncio
async def test_convert_polls_until_done_and_streams_pdf(docx, tmp_path):
    session = FakeSession(
        [
            UPLOADED,
            STARTED,
            _status("converting"),
            _status("done"),
            FakeResponse(body=PDF_BYTES),
        ]
    )
    converter = _converter(session)
    pdf = tmp_path / "out" / "itin.pdf"
    job = ConversionJob(source=docx)

    result = await converter.convert(docx, pdf, job)

    assert result == pdf
    assert pdf.read_bytes() == PDF_BYTES
    assert job.state == JobState.DONE
    assert job.attempts == 2
    assert job.job_id == "job-42"
    assert not pdf.with_suffix(".pdf.part").exists()

    urls = [(method, url) for method, url, _ in session.requests]
    assert urls[0] == ("POST", "https://pdf.example/client.php?action=upload")
    assert urls[1] == ("POST", "https://pdf.example/client.php?action=convertToPdf")
    start_body = session.requests[1][2]["json"]
    assert start_body["files"][0]["file"] == "f1"
    assert start_body["options"] == {"usePdfa": False}
    assert session.requests[2][2]["params"] == {
        "action": "getJobStatus",
        "jobId": "job-42",
    }
    assert session.requests[4][2]["params"]["action"] == "downloadJobResult"


@pytest.mark.asyncio
async def test_server_failure(docx, tmp_path):
    session = FakeSession([UPLOADED, STARTED, _status("failed")])
    job = ConversionJob(source=docx)
    with pytest.raises(RemoteServiceError, match="failed on server"):
        await _converter(session).convert(docx, tmp_path / "itin.pdf", job)
    assert job.state == JobState.FAILED
    assert not (tmp_path / "itin.pdf").exists()


@pytest.mark.asyncio
async def test_timeout_after_max_attempts(docx, tmp_path):
    session = FakeSession(
        [UPLOADED, STARTED, _status("converting"), _status("queued")]
    )
    job = ConversionJob(source=docx)
    with pytest.raises(ConversionTimeoutError):
        await _converter(session, max_attempts=2).convert(
            docx, tmp_path / "itin.pdf", job
        )
    assert job.state == JobState.TIMED_OUT
    assert job.attempts == 2


@pytest.mark.asyncio
async def test_empty_upload_reply(docx, tmp_path):
    session = FakeSession([FakeResponse(json_data=[])])
    with pytest.raises(RemoteServiceError, match="upload failed"):
        await _converter(session).convert(docx, tmp_path / "itin.pdf")


@pytest.mark.asyncio
async def test_missing_job_id(docx, tmp_path):
    session = FakeSession([UPLOADED, FakeResponse(json_data={})])
    with pytest.raises(RemoteServiceError, match="failed to start"):
        await _converter(session).convert(docx, tmp_path / "itin.pdf")


@pytest.mark.asyncio
async def test_output_must_be_pdf(docx, tmp_path):
    session = FakeSession([])
    with pytest.raises(ValidationError):
        await _converter(session).convert(docx, tmp_path / "itin.docx")
    assert session.requests == []


@pytest.mark.asyncio
async def test_input_must_exist(tmp_path):
    with pytest.raises(NotFoundError):
        await _converter(FakeSession([])).convert(
            tmp_path / "missing.docx", tmp_path / "out.pdf"
        )


@pytest.mark.asyncio
async def test_started_job_can_be_cancelled(docx, tmp_path):
    converter = Pdf24Converter(
        base_url="https://pdf.example/client.php",
        poll_interval=60,
        session=FakeSession([UPLOADED, STARTED]),
    )
    task = asyncio.create_task(converter.convert(docx, tmp_path / "itin.pdf"))
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert not (tmp_path / "itin.pdf").exists()


class BrokenContent:
    async def iter_chunked(self, size):
        yield b"%PDF-1.4 partial"
        raise aiohttp.ClientPayloadError("connection reset")


@pytest.mark.asyncio
async def test_interrupted_download_leaves_no_pdf(docx, tmp_path):
    broken = FakeResponse()
    broken.content = BrokenContent()
    session = FakeSession([UPLOADED, STARTED, _status("done"), broken])
    pdf = tmp_path / "itin.pdf"

    with pytest.raises(RemoteServiceError):
        await _converter(session).convert(docx, pdf)

    assert not pdf.exists()
    assert not pdf.with_suffix(".pdf.part").exists()


@pytest.mark.asyncio
async def test_concurrent_conversions_track_separate_jobs(docx, tmp_path):
    first = FakeSession(
        [UPLOADED, STARTED, _status("done"), FakeResponse(body=b"%PDF-1")]
    )
    second = FakeSession(
        [
            UPLOADED,
            FakeResponse(json_data={"jobId": "job-43"}),
            _status("failed"),
        ]
    )
    job_a, job_b = ConversionJob(source=docx), ConversionJob(source=docx)

    results = await asyncio.gather(
        _converter(first).convert(docx, tmp_path / "a.pdf", job_a),
        _converter(second).convert(docx, tmp_path / "b.pdf", job_b),
        return_exceptions=True,
    )

    assert results[0] == tmp_path / "a.pdf"
    assert isinstance(results[1], RemoteServiceError)
    assert (job_a.job_id, job_a.state) == ("job-42", JobState.DONE)
    assert (job_b.job_id, job_b.state) == ("job-43", JobState.FAILED)
