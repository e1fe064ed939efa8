"""
backend/tests/fakes.py

Purpose:
    In-memory stand-ins for the motor client, database, collections and
    sessions used by the services. Supports the query/update operators the
    services use, multi-document transactions with rollback, and
    write-write conflicts between concurrent transactions (raised with the
    TransientTransactionError label, like a replica set does).

    Every operation yields to the event loop once, so coroutines started with
    asyncio.gather interleave at the storage boundary.
"""

from __future__ import annotations

import asyncio
import copy
from types import SimpleNamespace
from typing import Any

from bson import ObjectId
from pymongo.errors import OperationFailure

_MISSING = object()


def transient_conflict() -> OperationFailure:
    return OperationFailure(
        "WriteConflict error: this operation conflicted with another operation.",
        code=112,
        details={"errorLabels": ["TransientTransactionError"]},
    )


# ---------------------------------------------------------------------------
# Query / update / expression evaluation
# ---------------------------------------------------------------------------

def _compare(op: str, value: Any, arg: Any) -> bool:
    if value is None or value is _MISSING:
        return False
    try:
        if op == "$gt":
            return value > arg
        if op == "$gte":
            return value >= arg
        if op == "$lt":
            return value < arg
        return value <= arg
    except TypeError:
        return False


def _equals(value: Any, expected: Any) -> bool:
    if expected is None:
        return value is None or value is _MISSING
    if isinstance(value, list) and not isinstance(expected, list):
        return expected in value
    return value == expected


def _match_condition(value: Any, cond: Any) -> bool:
    if isinstance(cond, dict) and cond and all(k.startswith("$") for k in cond):
        for op, arg in cond.items():
            if op in ("$gt", "$gte", "$lt", "$lte"):
                if not _compare(op, value, arg):
                    return False
            elif op == "$ne":
                if _equals(value, arg):
                    return False
            elif op == "$in":
                if not any(_equals(value, a) for a in arg):
                    return False
            elif op == "$nin":
                if any(_equals(value, a) for a in arg):
                    return False
            elif op == "$exists":
                if (value is not _MISSING) != bool(arg):
                    return False
            else:
                raise NotImplementedError(f"query operator {op}")
        return True
    return _equals(value, cond)


def matches(doc: dict, flt: dict | None) -> bool:
    for key, cond in (flt or {}).items():
        if key == "$or":
            if not any(matches(doc, c) for c in cond):
                return False
        elif key == "$and":
            if not all(matches(doc, c) for c in cond):
                return False
        elif not _match_condition(doc.get(key, _MISSING), cond):
            return False
    return True


def apply_update(doc: dict, update: dict, *, is_insert: bool = False) -> None:
    for op, fields in update.items():
        if op == "$set":
            for k, v in fields.items():
                doc[k] = copy.deepcopy(v)
        elif op == "$inc":
            for k, v in fields.items():
                doc[k] = (doc.get(k) or 0) + v
        elif op == "$setOnInsert":
            if is_insert:
                for k, v in fields.items():
                    doc[k] = copy.deepcopy(v)
        elif op == "$unset":
            for k in fields:
                doc.pop(k, None)
        else:
            raise NotImplementedError(f"update operator {op}")


def evaluate(expr: Any, doc: dict) -> Any:
    """Aggregation expression subset: field paths, $cond, $eq, $ifNull, literals."""
    if isinstance(expr, str) and expr.startswith("$"):
        return doc.get(expr[1:])
    if isinstance(expr, dict) and len(expr) == 1:
        (op, arg), = expr.items()
        if op == "$cond":
            if isinstance(arg, dict):
                arg = [arg["if"], arg["then"], arg["else"]]
            return evaluate(arg[1], doc) if evaluate(arg[0], doc) else evaluate(arg[2], doc)
        if op == "$eq":
            return evaluate(arg[0], doc) == evaluate(arg[1], doc)
        if op == "$ifNull":
            value = evaluate(arg[0], doc)
            return evaluate(arg[1], doc) if value is None else value
    return expr


def _sort_docs(docs: list[dict], spec: list[tuple[str, int]]) -> list[dict]:
    result = list(docs)
    for key, direction in reversed(spec):
        present = [d for d in result if d.get(key) is not None]
        absent = [d for d in result if d.get(key) is None]
        present.sort(key=lambda d: d[key], reverse=direction < 0)
        # Nulls sort lowest
        result = absent + present if direction > 0 else present + absent
    return result


# ---------------------------------------------------------------------------
# Cursors
# ---------------------------------------------------------------------------

class FakeCursor:
    def __init__(self, docs: list[dict]):
        self._docs = docs
        self._sort: list[tuple[str, int]] = []
        self._skip = 0
        self._limit = 0

    def sort(self, key_or_list, direction: int | None = None) -> "FakeCursor":
        if isinstance(key_or_list, str):
            self._sort = [(key_or_list, direction if direction is not None else 1)]
        else:
            self._sort = list(key_or_list)
        return self

    def skip(self, n: int) -> "FakeCursor":
        self._skip = n
        return self

    def limit(self, n: int) -> "FakeCursor":
        self._limit = n
        return self

    def _materialize(self) -> list[dict]:
        docs = _sort_docs(self._docs, self._sort) if self._sort else list(self._docs)
        docs = docs[self._skip:]
        if self._limit:
            docs = docs[:self._limit]
        return docs

    async def to_list(self, length: int | None = None) -> list[dict]:
        await asyncio.sleep(0)
        docs = self._materialize()
        return docs[:length] if length else docs

    def __aiter__(self):
        self._iter = iter(self._materialize())
        return self

    async def __anext__(self) -> dict:
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------

class FakeCollection:
    def __init__(self, database: "FakeDatabase", name: str):
        self.database = database
        self.name = name
        self.docs: dict[Any, dict] = {}

    # -- test helpers -------------------------------------------------------

    def add(self, doc: dict) -> dict:
        """Insert synchronously, outside any session. Returns the stored copy."""
        doc = copy.deepcopy(doc)
        doc.setdefault("_id", ObjectId())
        self.docs[doc["_id"]] = doc
        return copy.deepcopy(doc)

    def get(self, _id) -> dict | None:
        doc = self.docs.get(_id)
        return copy.deepcopy(doc) if doc is not None else None

    def all(self) -> list[dict]:
        return [copy.deepcopy(d) for d in self.docs.values()]

    # -- write bookkeeping --------------------------------------------------

    def _before_write(self, session, _id, original) -> None:
        if session is None or not session.in_transaction:
            return
        db = self.database
        if db.injected_conflicts.get(self.name, 0) > 0:
            db.injected_conflicts[self.name] -= 1
            raise transient_conflict()
        key = (self.name, _id)
        holder = db.write_locks.get(key)
        if holder is not None and holder is not session:
            raise transient_conflict()
        db.write_locks[key] = session
        if key not in session.undo:
            session.undo[key] = copy.deepcopy(original) if original is not None else _MISSING

    def _find_docs(self, flt) -> list[dict]:
        return [d for d in self.docs.values() if matches(d, flt)]

    def _upsert_doc(self, flt: dict, update: dict, session) -> dict:
        doc = {
            k: copy.deepcopy(v) for k, v in (flt or {}).items()
            if not k.startswith("$") and not (isinstance(v, dict) and any(x.startswith("$") for x in v))
        }
        doc.setdefault("_id", ObjectId())
        self._before_write(session, doc["_id"], None)
        apply_update(doc, update, is_insert=True)
        self.docs[doc["_id"]] = doc
        return doc

    # -- motor API ----------------------------------------------------------

    async def create_index(self, *_args, **_kwargs) -> str:
        return "index"

    async def find_one(self, flt=None, projection=None, session=None, **_kwargs) -> dict | None:
        await asyncio.sleep(0)
        found = self._find_docs(flt)
        return copy.deepcopy(found[0]) if found else None

    def find(self, flt=None, projection=None, session=None, **_kwargs) -> FakeCursor:
        return FakeCursor([copy.deepcopy(d) for d in self._find_docs(flt)])

    async def count_documents(self, flt=None, session=None, **_kwargs) -> int:
        await asyncio.sleep(0)
        return len(self._find_docs(flt))

    async def distinct(self, key: str, flt=None, session=None, **_kwargs) -> list:
        await asyncio.sleep(0)
        values = []
        for doc in self._find_docs(flt):
            value = doc.get(key)
            if value is not None and value not in values:
                values.append(value)
        return values

    async def insert_one(self, doc: dict, session=None, **_kwargs):
        await asyncio.sleep(0)
        doc.setdefault("_id", ObjectId())
        self._before_write(session, doc["_id"], None)
        self.docs[doc["_id"]] = copy.deepcopy(doc)
        return SimpleNamespace(inserted_id=doc["_id"], acknowledged=True)

    async def insert_many(self, docs: list[dict], session=None, **_kwargs):
        ids = [(await self.insert_one(d, session=session)).inserted_id for d in docs]
        return SimpleNamespace(inserted_ids=ids, acknowledged=True)

    async def update_one(self, flt, update, upsert=False, session=None, **_kwargs):
        await asyncio.sleep(0)
        found = self._find_docs(flt)
        if not found:
            if upsert:
                doc = self._upsert_doc(flt, update, session)
                return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=doc["_id"])
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)
        doc = found[0]
        self._before_write(session, doc["_id"], doc)
        before = copy.deepcopy(doc)
        apply_update(doc, update)
        return SimpleNamespace(matched_count=1, modified_count=int(before != doc), upserted_id=None)

    async def update_many(self, flt, update, upsert=False, session=None, **_kwargs):
        await asyncio.sleep(0)
        modified = 0
        found = self._find_docs(flt)
        for doc in found:
            self._before_write(session, doc["_id"], doc)
            before = copy.deepcopy(doc)
            apply_update(doc, update)
            modified += int(before != doc)
        return SimpleNamespace(matched_count=len(found), modified_count=modified, upserted_id=None)

    async def find_one_and_update(
        self, flt, update, projection=None, return_document=False, upsert=False, session=None, **_kwargs,
    ) -> dict | None:
        await asyncio.sleep(0)
        found = self._find_docs(flt)
        if not found:
            if upsert:
                doc = self._upsert_doc(flt, update, session)
                return copy.deepcopy(doc) if return_document else None
            return None
        doc = found[0]
        self._before_write(session, doc["_id"], doc)
        before = copy.deepcopy(doc)
        apply_update(doc, update)
        return copy.deepcopy(doc) if return_document else before

    async def delete_many(self, flt, session=None, **_kwargs):
        await asyncio.sleep(0)
        found = self._find_docs(flt)
        for doc in found:
            self._before_write(session, doc["_id"], doc)
            del self.docs[doc["_id"]]
        return SimpleNamespace(deleted_count=len(found))

    def aggregate(self, pipeline: list[dict], session=None, **_kwargs) -> FakeCursor:
        docs = [copy.deepcopy(d) for d in self.docs.values()]
        for stage in pipeline:
            (op, arg), = stage.items()
            if op == "$match":
                docs = [d for d in docs if matches(d, arg)]
            elif op == "$group":
                docs = self._group(docs, arg)
            elif op == "$sort":
                docs = _sort_docs(docs, list(arg.items()))
            elif op == "$limit":
                docs = docs[:arg]
            elif op == "$project":
                continue
            else:
                raise NotImplementedError(f"aggregation stage {op}")
        return FakeCursor(docs)

    @staticmethod
    def _group(docs: list[dict], spec: dict) -> list[dict]:
        groups: dict[Any, dict] = {}
        for doc in docs:
            key = evaluate(spec["_id"], doc)
            row = groups.setdefault(key, {"_id": key})
            for field, acc in spec.items():
                if field == "_id":
                    continue
                (acc_op, acc_expr), = acc.items()
                if acc_op != "$sum":
                    raise NotImplementedError(f"accumulator {acc_op}")
                value = evaluate(acc_expr, doc)
                row[field] = row.get(field, 0) + (value if isinstance(value, (int, float)) else 0)
        return list(groups.values())


# ---------------------------------------------------------------------------
# Database, sessions, client
# ---------------------------------------------------------------------------

class FakeDatabase:
    def __init__(self, name: str = "huskybids_test"):
        self.name = name
        self._collections: dict[str, FakeCollection] = {}
        self.write_locks: dict[tuple[str, Any], "FakeSession"] = {}
        self.injected_conflicts: dict[str, int] = {}
        self.commits = 0
        self.aborts = 0

    def __getattr__(self, name: str) -> FakeCollection:
        if name.startswith("_"):
            raise AttributeError(name)
        return self[name]

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self._collections:
            self._collections[name] = FakeCollection(self, name)
        return self._collections[name]

    def inject_write_conflict(self, collection: str, times: int = 1) -> None:
        """Make the next `times` transactional writes to a collection fail as transient."""
        self.injected_conflicts[collection] = self.injected_conflicts.get(collection, 0) + times

    async def command(self, name: str, *_args, **_kwargs) -> dict:
        return {"ok": 1.0}


class _Transaction:
    def __init__(self, session: "FakeSession"):
        self._session = session

    async def __aenter__(self):
        self._session.in_transaction = True
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self._session.commit()
        else:
            self._session.abort()
        return False


class FakeSession:
    def __init__(self, database: FakeDatabase):
        self._db = database
        self.in_transaction = False
        self.undo: dict[tuple[str, Any], Any] = {}

    def start_transaction(self) -> _Transaction:
        return _Transaction(self)

    def _release(self) -> None:
        for key in self.undo:
            if self._db.write_locks.get(key) is self:
                del self._db.write_locks[key]
        self.undo = {}
        self.in_transaction = False

    def commit(self) -> None:
        self._db.commits += 1
        self._release()

    def abort(self) -> None:
        self._db.aborts += 1
        for (coll_name, _id), original in self.undo.items():
            docs = self._db[coll_name].docs
            if original is _MISSING:
                docs.pop(_id, None)
            else:
                docs[_id] = original
        self._release()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if self.in_transaction:
            self.abort()
        return False


class FakeMongoClient:
    def __init__(self):
        self._databases: dict[str, FakeDatabase] = {}

    def __getitem__(self, name: str) -> FakeDatabase:
        if name not in self._databases:
            self._databases[name] = FakeDatabase(name)
        return self._databases[name]

    async def start_session(self) -> FakeSession:
        await asyncio.sleep(0)
        # One database per test client
        return FakeSession(next(iter(self._databases.values())))

    def close(self) -> None:
        pass
