import io

import pytest
from starlette.datastructures import Headers, UploadFile

from acadlib.core.errors import InvalidRequestError, NotFoundError


def make_upload(name: str, content: bytes, mime: str) -> UploadFile:
    return UploadFile(file=io.BytesIO(content), filename=name, headers=Headers({"content-type": mime}))


@pytest.mark.asyncio
async def test_save_uses_unique_names(blob_store):
    first = await blob_store.save(make_upload("Thesis.DOCX", b"one", "application/vnd.openxmlformats-officedocument.wordprocessingml.document"))
    second = await blob_store.save(make_upload("Thesis.DOCX", b"two", "application/vnd.openxmlformats-officedocument.wordprocessingml.document"))

    assert first != second
    assert first.startswith("materialFile-") and first.endswith(".docx")
    assert blob_store.path_for(first).read_bytes() == b"one"
    assert blob_store.path_for(second).read_bytes() == b"two"


@pytest.mark.asyncio
async def test_delete_reports_missing_files(blob_store):
    stored = await blob_store.save(make_upload("notes.txt", b"hello", "text/plain"))

    assert await blob_store.delete(stored) is True
    assert await blob_store.delete(stored) is False
    assert not blob_store.exists(stored)


@pytest.mark.asyncio
async def test_rejects_disallowed_type(blob_store):
    with pytest.raises(InvalidRequestError):
        await blob_store.save(make_upload("run.sh", b"#!/bin/sh", "application/x-sh"))


def test_path_for_stays_inside_root(blob_store):
    blob_store.root.mkdir(parents=True, exist_ok=True)

    with pytest.raises(NotFoundError):
        blob_store.path_for("../secrets.env")
