"""
Tests for the ObjectRepository and the ManagedObject handle
"""

# Third Party
import pytest

# Local
from kubemapper.constants import MAIN_NAMESPACE
from kubemapper.managed_object import ManagedObject
from kubemapper.repository import ObjectRepository
from kubemapper.test_helpers.helpers import (
    SOME_OTHER_NAMESPACE,
    TEST_NAMESPACE,
    make_group,
    make_secret,
    setup_cr,
)

## ManagedObject ###############################################################


def test_managed_object_properties():
    """Make sure the handle reads through to its definition"""
    obj = ManagedObject(make_group("my-group"))
    assert obj.kind == "Group"
    assert obj.group == "atlas.generated.mongodb.com"
    assert obj.version == "v1"
    assert obj.name == "my-group"
    assert obj.namespace == TEST_NAMESPACE

    obj.definition["metadata"]["name"] = "renamed"
    assert obj.name == "renamed"


def test_managed_object_core_group():
    """Make sure core objects have an empty group"""
    obj = ManagedObject(make_secret("my-secret"))
    assert obj.group == ""
    assert obj.is_type("", "v1", "Secret")
    assert not obj.is_type("", "v1", "ConfigMap")


def test_managed_object_requires_type():
    """Make sure an object without kind or apiVersion is rejected"""
    with pytest.raises(AssertionError):
        ManagedObject({"apiVersion": "v1"})
    with pytest.raises(AssertionError):
        ManagedObject({"kind": "Secret"})


def test_managed_object_from_parts():
    """Make sure a skeleton object carries only its identity"""
    obj = ManagedObject.from_parts("v1", "Secret", "s1")
    assert obj.definition == {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"namespace": MAIN_NAMESPACE, "name": "s1"},
    }


def test_managed_object_copy_is_deep():
    """Make sure a copy does not share the definition"""
    obj = ManagedObject(make_secret("s1", {"a": "b"}))
    other = obj.copy()
    other.definition["data"]["a"] = "changed"
    assert obj.definition["data"]["a"] != "changed"
    assert obj.key == other.key


## Lookup ######################################################################


def test_find_by_name_in_main_namespace():
    """Make sure lookups default to the main object's namespace"""
    repo = ObjectRepository(setup_cr(), [make_secret("s1")])
    found = repo.find("s1")
    assert found is not None
    assert found.kind == "Secret"
    assert repo.has("s1")
    assert not repo.has("s2")


def test_find_other_namespace():
    """Make sure an explicit namespace is honored"""
    repo = ObjectRepository(
        setup_cr(), [make_secret("s1", namespace=SOME_OTHER_NAMESPACE)]
    )
    assert repo.find("s1") is None
    assert repo.find("s1", SOME_OTHER_NAMESPACE) is not None


def test_find_by_kind():
    """Make sure the kind narrows the lookup"""
    repo = ObjectRepository(setup_cr(), [make_secret("shared"), make_group("shared")])
    assert repo.find("shared", kind="Group").kind == "Group"
    assert repo.find("shared", kind="Secret").kind == "Secret"
    assert repo.find("shared", kind="CustomRole") is None


def test_dependency_without_namespace_is_normalized():
    """Make sure a dependency without a namespace joins the main namespace"""
    secret = make_secret("s1")
    del secret["metadata"]["namespace"]
    repo = ObjectRepository(setup_cr(), [secret])
    assert repo.find("s1").namespace == TEST_NAMESPACE


def test_main_object_is_not_a_dependency():
    """Make sure the main object is not listed among the dependencies"""
    repo = ObjectRepository(setup_cr(), [make_secret("s1")])
    assert repo.main.kind == "DatabaseUser"
    assert [obj.name for obj in repo.objects()] == ["s1"]


## Add #########################################################################


def test_add_new_object():
    """Make sure an added object is tracked and recorded"""
    repo = ObjectRepository(setup_cr())
    added = repo.add(ManagedObject.from_parts("v1", "Secret", "s1"))
    assert added.namespace == TEST_NAMESPACE
    assert repo.find("s1") is added
    assert repo.added == [added]


def test_add_replaces_same_identity():
    """Make sure adding the same identity twice keeps a single entry"""
    repo = ObjectRepository(setup_cr())
    repo.add(make_secret("s1", {"a": "1"}))
    second = repo.add(make_secret("s1", {"a": "2"}))
    assert len(repo.added) == 1
    assert repo.added[0] is second
    assert repo.find("s1") is second


def test_add_replaces_existing_dependency():
    """Make sure replacing a dependency records it as added"""
    repo = ObjectRepository(setup_cr(), [make_secret("s1", {"a": "1"})])
    assert repo.added == []
    repo.add(make_secret("s1", {"a": "2"}))
    assert len(repo.added) == 1
    assert len(list(repo.objects())) == 1


def test_add_main_object_is_not_recorded():
    """Make sure the main object is never reported as added"""
    cr = setup_cr()
    repo = ObjectRepository(cr)
    repo.add(cr)
    assert repo.added == []


def test_added_is_a_copy():
    """Make sure callers can not change the added list"""
    repo = ObjectRepository(setup_cr())
    repo.add(make_secret("s1"))
    repo.added.clear()
    assert len(repo.added) == 1


## Transaction #################################################################


def test_transaction_rolls_back_on_error():
    """Make sure a failed transaction forgets what it added"""
    repo = ObjectRepository(setup_cr(), [make_secret("s1", {"a": "1"})])
    with pytest.raises(ValueError):
        with repo.transaction():
            repo.add(make_secret("s2"))
            repo.add(make_secret("s1", {"a": "2"}))
            raise ValueError("boom")
    assert repo.added == []
    assert repo.find("s2") is None
    assert repo.find("s1").definition["data"] == make_secret("s1", {"a": "1"})["data"]


def test_transaction_keeps_changes_on_success():
    """Make sure a successful transaction keeps what it added"""
    repo = ObjectRepository(setup_cr())
    with repo.transaction():
        repo.add(make_secret("s1"))
    assert [obj.name for obj in repo.added] == ["s1"]
