import datetime as dt
import pathlib
import sys

import pytest

# Ensure the repository root is on the path for direct test runs.
REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.append(str(REPO_ROOT))

from srs.db.card_store import SQLAlchemyCardStore
from srs.db.content_reader import SQLAlchemyContentReader
from srs.db.models import Document, DocumentChunk, QuizQuestion
from srs.db.review_log import SQLAlchemyReviewLog

BASE_TIME = dt.datetime(2024, 1, 1, 12, 0, 0, tzinfo=dt.timezone.utc)


class InMemoryRedis:
    """Minimal stand-in for the handful of redis.Redis calls the session cache makes."""

    def __init__(self):
        self.data = {}
        self.expiry = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, ex=None, nx=False):
        if nx and key in self.data:
            return None
        self.data[key] = value
        self.expiry[key] = ex
        return True

    def delete(self, key):
        self.data.pop(key, None)
        return 1


@pytest.fixture
def base_time():
    return BASE_TIME


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'srs.db'}"


@pytest.fixture
def card_store(db_url):
    store = SQLAlchemyCardStore(db_url)
    yield store
    store.close()


@pytest.fixture
def review_log(db_url):
    log = SQLAlchemyReviewLog(db_url)
    yield log
    log.close()


@pytest.fixture
def fake_redis():
    return InMemoryRedis()


@pytest.fixture
def content_reader(db_url):
    reader = SQLAlchemyContentReader(db_url)
    yield reader
    reader.close()


@pytest.fixture
def study_material(content_reader):
    """One document with two chunks and a quiz question on the first chunk."""
    with content_reader.SessionLocal() as session:
        session.add(Document(id="doc-1", title="Cell Biology"))
        session.flush()
        session.add_all(
            [
                DocumentChunk(id="chunk-1", document_id="doc-1", chunk_index=0, text="Mitochondria produce ATP.", page_number=4),
                DocumentChunk(id="chunk-2", document_id="doc-1", chunk_index=1, text="Ribosomes build proteins.", slide_number=7),
            ]
        )
        session.flush()
        session.add(
            QuizQuestion(
                id="q-1",
                question_type="multiple_choice",
                prompt="Which organelle produces ATP?",
                options=["Mitochondria", "Ribosome", "Nucleus"],
                correct_answer="Mitochondria",
                explanation="Cellular respiration happens in the mitochondria.",
                chunk_id="chunk-1",
            )
        )
        session.commit()
    return {"document_id": "doc-1", "chunk_ids": ["chunk-1", "chunk-2"], "question_id": "q-1"}
