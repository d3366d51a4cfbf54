import copy
from decimal import Decimal

import pytest

from group_ledger.config import firebase_config
from group_ledger.firebase_store import FirestoreDataStore
from group_ledger.models import Expense, ExpenseShare


class FakeSnapshot:
    def __init__(self, doc_id, data):
        self.id = doc_id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data)


class FakeDocumentRef:
    def __init__(self, db, collection, doc_id):
        self._db = db
        self._collection = collection
        self.id = doc_id

    def _docs(self):
        return self._db.data.setdefault(self._collection, {})

    def set(self, data):
        self._docs()[self.id] = copy.deepcopy(data)

    def get(self):
        return FakeSnapshot(self.id, self._docs().get(self.id))

    def update(self, data):
        docs = self._docs()
        if self.id not in docs:
            raise KeyError(f"No document {self._collection}/{self.id}")
        docs[self.id].update(copy.deepcopy(data))


def _matches(data, field_filter):
    value = data.get(field_filter.field_path)
    if field_filter.op_string == "array_contains":
        return isinstance(value, list) and field_filter.value in value
    return value == field_filter.value


class FakeQuery:
    def __init__(self, db, collection, filters=()):
        self._db = db
        self._collection = collection
        self._filters = list(filters)

    def where(self, filter=None):
        assert filter.op_string in ("==", "array_contains")
        return FakeQuery(self._db, self._collection, self._filters + [filter])

    def stream(self):
        docs = self._db.data.get(self._collection, {})
        for doc_id, data in list(docs.items()):
            if all(_matches(data, f) for f in self._filters):
                yield FakeSnapshot(doc_id, data)


class FakeCollection(FakeQuery):
    def document(self, doc_id=None):
        if doc_id is None:
            self._db.counter += 1
            doc_id = f"{self._collection}-{self._db.counter:04d}"
        return FakeDocumentRef(self._db, self._collection, doc_id)


class FakeBatch:
    def __init__(self, db):
        self._db = db
        self.operations = []

    def update(self, doc_ref, data):
        self.operations.append(("update", doc_ref, data))

    def set(self, doc_ref, data):
        self.operations.append(("set", doc_ref, data))

    def commit(self):
        if self._db.fail_next_commit:
            self._db.fail_next_commit = False
            raise RuntimeError("commit failed")
        for op, doc_ref, data in self.operations:
            getattr(doc_ref, op)(data)
        self._db.commits += 1


class FakeFirestore:
    """In-memory stand-in for the Firestore client."""

    def __init__(self):
        self.data = {}
        self.counter = 0
        self.commits = 0
        self.fail_next_commit = False

    def collection(self, name):
        return FakeCollection(self, name)

    def batch(self):
        return FakeBatch(self)


@pytest.fixture
def db():
    fake = FakeFirestore()
    firebase_config.set_db(fake)
    yield fake
    firebase_config.set_db(None)


@pytest.fixture
def store(db):
    return FirestoreDataStore()


def _make_expense(expense_id, amount, paid_by, shares, split_type="equal", is_active=True):
    """
    Build an Expense; shares is a list of (user_id, amount) or
    (user_id, amount, {"percentage": ..., "shares": ...}) tuples.
    """
    participants = []
    for entry in shares:
        extra = entry[2] if len(entry) > 2 else {}
        participants.append(ExpenseShare(entry[0], Decimal(str(entry[1])), **extra))
    return Expense(
        expense_id=expense_id,
        group_id="g1",
        amount=Decimal(str(amount)),
        paid_by=paid_by,
        split_type=split_type,
        participants=participants,
        is_active=is_active
    )


@pytest.fixture
def make_expense():
    return _make_expense


@pytest.fixture
def dinner():
    """Scenario: A pays 90, split equally between A, B and C."""
    return _make_expense("e1", 90, "A", [("A", 30), ("B", 30), ("C", 30)])
