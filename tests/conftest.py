"""Shared fixtures: an in-memory record store and a scripted content generator."""

import asyncio
from collections import Counter
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from bson import ObjectId

from backend.errors import GenerationError, StoreError
from backend.generator import ContentGenerator
from backend.schemas import Status
from backend.service import JobApplicationService


class InMemoryStore:
    """Dict-backed stand-in for JobApplicationStore with the same contract."""

    def __init__(self):
        self.docs = {}
        self.calls = Counter()
        self.fail_updates = False
        self._seq = 0

    async def create(self, data):
        self.calls["create"] += 1
        self._seq += 1
        now = datetime.now(timezone.utc)
        record_id = str(ObjectId())
        doc = {
            **data,
            "id": record_id,
            "status": Status.PENDING.value,
            "created_at": now,
            "updated_at": now,
            "_seq": self._seq,
        }
        self.docs[record_id] = doc
        return self._public(doc)

    async def find_by_id(self, record_id, fields=None):
        self.calls["find_by_id"] += 1
        doc = self.docs.get(record_id)
        if doc is None:
            return None
        if fields:
            return {"id": record_id, **{f: doc[f] for f in fields if f in doc}}
        return self._public(doc)

    async def update_by_id(self, record_id, changes, expected_status=None):
        self.calls["update_by_id"] += 1
        if self.fail_updates:
            raise StoreError("store unavailable")
        doc = self.docs.get(record_id)
        if doc is None:
            return None
        if expected_status is not None and doc["status"] != Status(expected_status).value:
            return None
        doc.update(changes)
        doc["updated_at"] = datetime.now(timezone.utc)
        return self._public(doc)

    async def find_many(self, skip=0, limit=10):
        self.calls["find_many"] += 1
        ordered = sorted(self.docs.values(), key=lambda d: d["_seq"], reverse=True)
        return [self._public(d) for d in ordered[skip:skip + limit]]

    async def delete_by_id(self, record_id):
        self.calls["delete_by_id"] += 1
        doc = self.docs.pop(record_id, None)
        return self._public(doc) if doc else None

    async def count(self):
        self.calls["count"] += 1
        return len(self.docs)

    async def ping(self):
        return ["jobapplication"]

    @staticmethod
    def _public(doc):
        return {k: v for k, v in doc.items() if k != "_seq"}


class FakeGenerator(ContentGenerator):
    """Returns text derived from the resume; failures and delays are switchable."""

    def __init__(self, fail_summary=False, fail_letter=False, delay=0.0, summary_text=None):
        super().__init__(client=MagicMock())
        self.fail_summary = fail_summary
        self.fail_letter = fail_letter
        self.delay = delay
        self.summary_text = summary_text
        self.gate = None
        self.calls = []

    async def _wait(self):
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)

    async def summarize(self, resume, job_description):
        self.calls.append(("summary", resume, job_description))
        await self._wait()
        if self.fail_summary:
            raise GenerationError("summary backend down", message="Failed to generate tailored summary")
        if self.summary_text is not None:
            return self.summary_text
        return f"Backend engineer whose experience ({resume[:40]}) fits the role."

    async def cover_letter(self, resume, job_description):
        self.calls.append(("cover_letter", resume, job_description))
        await self._wait()
        if self.fail_letter:
            raise GenerationError("cover letter backend down", message="Failed to generate cover letter")
        return f"Dear Hiring Manager,\n\nMy background in {resume[:40]} matches your needs.\n\nSincerely,"


RESUME = "Senior Python developer, 8 years building FastAPI and MongoDB services."
JOB_DESCRIPTION = "We are hiring a backend engineer to own our async Python APIs."


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def service(store, generator):
    return JobApplicationService(store, generator)
