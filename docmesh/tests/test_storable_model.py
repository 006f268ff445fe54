"""
StorableModel Test Suite: persistence in the meta partition.

Run: python -m pytest docmesh/tests/test_storable_model.py -v
"""

from __future__ import annotations

import pytest

from docmesh.cache import cached_method
from docmesh.core.errors import (
    DatabaseNotReady,
    FieldRequired,
    ModelDestroyed,
    ModelNotFound,
    ModelSaveRequired,
)
from docmesh.core.types import DocumentId
from docmesh.models import ModelCursor, StorableModel
from docmesh.schema import ArrayField, BooleanField, NumberField, StringField
from docmesh.storage import ASCENDING, DESCENDING


class User(StorableModel):
    __key_field__ = "username"
    __indexes__ = [{"index": [("username", ASCENDING)], "options": {"unique": True}}]

    username = StringField(required=True)
    password = StringField(restricted=True)
    role = StringField(rejected=True, default="member")
    age = NumberField()
    active = BooleanField(default=True)
    friends = ArrayField(default_factory=list)

    lookups = 0

    @cached_method(ttl=30)
    async def friends_count(self):
        type(self).lookups += 1
        return len(self.friends)


async def make_users(*names: str, **extra):
    users = []
    for index, name in enumerate(names):
        data = {"username": name, "age": 20 + index, **extra}
        users.append(await User.make(data).save())
    return users


# =============================================================================
# TEST: SAVE AND LOAD
# =============================================================================
async def test_save_assigns_identifier(context):
    user = await User.make({"username": " bob ", "password": "pw"}).save()

    assert isinstance(user._id, DocumentId)
    assert not user.is_new
    assert user.username == "bob"


async def test_trimmed_key_is_persisted_and_renamed(context):
    user = await User.make({"username": " bob ", "password": "pw"}).save()

    stored = await User.get(user._id)
    assert stored.username == "bob"
    assert (await User.find_one({"username": "bob"}))._id == user._id

    await stored.update({"username": "carol"})

    renamed = await User.find_one({"username": "carol"})
    assert renamed is not None
    assert renamed._id == user._id
    assert await User.find_one({"username": "bob"}) is None
    assert await User.find().count() == 1


async def test_get_by_id_string_and_key_field(context):
    (user,) = await make_users("bob")

    by_id = await User.get(user._id)
    by_hex = await User.get(str(user._id))
    by_key = await User.get("bob")

    for loaded in (by_id, by_hex, by_key):
        assert isinstance(loaded, User)
        assert loaded._id == user._id
        assert loaded.username == "bob"


async def test_get_none_and_missing(context):
    assert await User.get(None) is None
    assert await User.get("nobody") is None


async def test_get_raise_error(context):
    with pytest.raises(ModelNotFound) as exc:
        await User.get("nobody", raise_error="no such user")
    assert "no such user" in str(exc.value)

    with pytest.raises(LookupError):
        await User.get("nobody", raise_error=LookupError("gone"))


async def test_restricted_fields_are_persisted_but_hidden(context):
    await User.make({"username": "bob", "password": "secret"}).save()
    loaded = await User.get("bob")

    assert loaded.password == "secret"
    assert "password" not in loaded.to_object()


async def test_save_is_idempotent(context):
    user = await User.make({"username": "bob"}).save()
    first_id = user._id

    await user.save()
    await user.save()

    assert user._id == first_id
    assert await User.find().count() == 1


async def test_invalid_instance_is_not_persisted(context):
    with pytest.raises(FieldRequired):
        await User.make({"username": "  "}).save()
    assert await User.find().count() == 0


async def test_update_persists_and_ignores_rejected(context):
    user = await User.make({"username": "bob"}).save()
    await user.update({"age": 31, "role": "admin"})

    loaded = await User.get(user._id)
    assert loaded.age == 31
    assert loaded.role == "member"


async def test_destroy_removes_document(context):
    user = await User.make({"username": "bob"}).save()
    doc_id = user._id

    await user.destroy()

    assert user.is_new
    assert await User.get(doc_id) is None


async def test_reload(context):
    user = await User.make({"username": "bob", "age": 1}).save()
    await User.update_many({"username": "bob"}, {"$set": {"age": 2}})

    await user.reload()
    assert user.age == 2

    await User.destroy_all()
    with pytest.raises(ModelDestroyed):
        await user.reload()


# =============================================================================
# TEST: QUERIES
# =============================================================================
async def test_find_returns_model_cursor(context):
    await make_users("ann", "bob", "cid")

    cursor = User.find({"age": {"$gte": 21}})
    assert isinstance(cursor, ModelCursor)

    users = await cursor.sort("age", DESCENDING).all()
    assert [u.username for u in users] == ["cid", "bob"]


async def test_cursor_skip_limit_next(context):
    await make_users("ann", "bob", "cid")

    cursor = User.find().sort("username").skip(1).limit(1)
    first = await cursor.next()

    assert first.username == "bob"
    assert await cursor.next() is None
    assert await cursor.count() == 3


async def test_cursor_has_next_and_rewind(context):
    await make_users("ann", "bob")

    cursor = User.find().sort("username")
    assert await cursor.has_next()
    assert await cursor.has_next()
    assert (await cursor.next()).username == "ann"
    assert (await cursor.next()).username == "bob"
    assert not await cursor.has_next()
    assert await cursor.next() is None

    assert cursor.rewind() is cursor
    assert await cursor.has_next()
    assert (await cursor.next()).username == "ann"


async def test_cursor_has_next_on_empty_result(context):
    cursor = User.find({"username": "nobody"})
    assert not await cursor.has_next()
    assert await cursor.next() is None


async def test_cursor_for_each(context):
    await make_users("ann", "bob")
    seen = []

    async def collect(user, index):
        seen.append((index, user.username))

    await User.find().sort("username").for_each(collect)
    assert seen == [(0, "ann"), (1, "bob")]


async def test_cursor_async_iteration(context):
    await make_users("ann", "bob")
    names = [user.username async for user in User.find()]
    assert sorted(names) == ["ann", "bob"]


async def test_update_many_and_destroy_many(context):
    await make_users("ann", "bob", "cid")

    result = await User.update_many({"age": {"$lt": 22}}, {"$set": {"active": False}})
    assert result.matched_count == 2

    deleted = await User.destroy_many({"active": False})
    assert deleted.deleted_count == 2
    assert [u.username for u in await User.find().all()] == ["cid"]


async def test_ensure_indexes(context):
    assert await User.ensure_indexes() == ["username_1"]
    collection = context.meta.collection(User.__collection__)
    assert collection.index_information()["username_1"][1] == {"unique": True}


# =============================================================================
# TEST: ATOMIC UPDATES
# =============================================================================
async def test_db_update_applies_and_reloads(context):
    user = await User.make({"username": "bob", "age": 1}).save()

    assert await user.db_update({"$inc": {"age": 5}})
    assert user.age == 6


async def test_db_update_condition_not_met(context):
    user = await User.make({"username": "bob", "age": 1}).save()

    assert not await user.db_update({"$set": {"age": 9}}, when={"age": 2})
    assert (await User.get("bob")).age == 1


async def test_db_update_without_reload(context):
    user = await User.make({"username": "bob", "age": 1}).save()

    assert await user.db_update({"$set": {"age": 9}}, reload=False)
    assert user.age == 1
    assert (await User.get("bob")).age == 9


async def test_db_update_requires_saved_instance(context):
    with pytest.raises(ModelSaveRequired):
        await User.make({"username": "bob"}).db_update({"$set": {"age": 2}})


# =============================================================================
# TEST: CONTEXT BINDING AND CACHE
# =============================================================================
async def test_unbound_model_raises():
    with pytest.raises(DatabaseNotReady):
        await User.get("bob")


async def test_cached_method_uses_context_cache(context):
    User.lookups = 0
    user = await User.make({"username": "bob", "friends": ["ann", "cid"]}).save()

    assert await user.friends_count() == 2
    assert await user.friends_count() == 2
    assert User.lookups == 1
    assert await context.cache.has(User.friends_count.cache_key(user))

    assert await User.friends_count.invalidate(user)
    assert await user.friends_count() == 2
    assert User.lookups == 2
