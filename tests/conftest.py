from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from database import PredictionStore
from main import create_app
from model_loader import ModelHandle, ModelState, ModelStatus


class FakeModel:
    channels_first = False

    def __init__(self, score=0.9):
        self.score = score
        self.batches = []

    def predict(self, batch):
        self.batches.append(batch)
        return self.score


class DuplicateKeyError(Exception):
    pass


class FakeCollection:
    """In-memory stand-in for a pymongo collection."""

    def __init__(self, fail_with=None):
        self.documents = {}
        self.fail_with = fail_with

    def insert_one(self, document):
        if self.fail_with is not None:
            raise self.fail_with
        if document["_id"] in self.documents:
            raise DuplicateKeyError(document["_id"])
        self.documents[document["_id"]] = dict(document)

    def find_one(self, query):
        document = self.documents.get(query["_id"])
        return dict(document) if document is not None else None


def make_png(size=(64, 48), color=(200, 30, 30)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def ready_handle(model) -> ModelHandle:
    return ModelHandle(ModelState(ModelStatus.READY, model=model))


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def model():
    return FakeModel()


@pytest.fixture
def collection():
    return FakeCollection()


@pytest.fixture
def client(model, collection):
    app = create_app(model_handle=ready_handle(model), store=PredictionStore(collection), load_on_startup=False)
    with TestClient(app) as c:
        yield c
