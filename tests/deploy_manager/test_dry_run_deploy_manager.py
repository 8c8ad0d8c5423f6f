"""Tests for the DryRunDeployManager

NOTE: The majority of the functionality is exercised by the session and status
    tests, so the tests here only test elements that are particularly delicate
    and/or not covered elsewhere.
"""

# Third Party
import pytest

# Local
from kubemapper.deploy_manager import DryRunDeployManager
from kubemapper.deploy_manager.dry_run_deploy_manager import _match_selector
from kubemapper.test_helpers.helpers import SOME_OTHER_NAMESPACE, TEST_NAMESPACE

## Helpers #####################################################################


def make_obj(
    api_version="v1",
    kind="Secret",
    name="foobar",
    namespace=TEST_NAMESPACE,
    labels=None,
    data=None,
):
    return {
        "apiVersion": api_version,
        "kind": kind,
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": labels or {"app": "foobar", "run": "frontend"},
        },
        "data": data or {"a": "b"},
    }


## deploy ######################################################################


def test_deploy_and_get():
    """Make sure a deployed object can be read back with server fields set"""
    dm = DryRunDeployManager()
    success, changed = dm.deploy([make_obj()])
    assert success
    assert changed

    success, obj = dm.get_object_current_state("Secret", "foobar", TEST_NAMESPACE)
    assert success
    assert obj["data"] == {"a": "b"}
    for key in ["resourceVersion", "creationTimestamp", "uid"]:
        assert key in obj["metadata"]


def test_deploy_does_not_keep_caller_object():
    """Make sure later changes by the caller do not leak into the cluster"""
    dm = DryRunDeployManager()
    obj = make_obj()
    dm.deploy([obj])
    obj["data"]["a"] = "changed"
    assert dm.get_object_current_state("Secret", "foobar", TEST_NAMESPACE)[1][
        "data"
    ] == {"a": "b"}


def test_deploy_unchanged():
    """Make sure redeploying the same content is not a change and keeps the
    uid and creation timestamp
    """
    dm = DryRunDeployManager([make_obj()])
    before = dm.get_object_current_state("Secret", "foobar", TEST_NAMESPACE)[1]
    success, changed = dm.deploy([make_obj()])
    assert success
    assert not changed
    after = dm.get_object_current_state("Secret", "foobar", TEST_NAMESPACE)[1]
    assert after["metadata"]["uid"] == before["metadata"]["uid"]
    assert (
        after["metadata"]["creationTimestamp"]
        == before["metadata"]["creationTimestamp"]
    )


def test_deploy_changed():
    """Make sure new content is reported as a change"""
    dm = DryRunDeployManager([make_obj()])
    assert dm.deploy([make_obj(data={"a": "c"})]) == (True, True)


def test_deploy_without_resource_version():
    """Make sure resource versions can be disabled"""
    dm = DryRunDeployManager([make_obj()], generate_resource_version=False)
    obj = dm.get_object_current_state("Secret", "foobar", TEST_NAMESPACE)[1]
    assert "resourceVersion" not in obj["metadata"]


## get_object_current_state ####################################################


def test_get_missing_object():
    """Make sure a missing object is a successful lookup of None"""
    dm = DryRunDeployManager([make_obj()])
    assert dm.get_object_current_state("Secret", "other", TEST_NAMESPACE) == (
        True,
        None,
    )
    assert dm.get_object_current_state("Secret", "foobar", SOME_OTHER_NAMESPACE) == (
        True,
        None,
    )


def test_get_by_api_version():
    """Make sure the api version narrows the lookup and is needed when a kind
    exists in several versions
    """
    dm = DryRunDeployManager(
        [
            make_obj(api_version="foo.bar/v1", kind="Foo"),
            make_obj(api_version="foo.bar/v2", kind="Foo"),
        ]
    )
    assert dm.get_object_current_state("Foo", "foobar", TEST_NAMESPACE)[1] is None
    obj = dm.get_object_current_state(
        "Foo", "foobar", TEST_NAMESPACE, api_version="foo.bar/v2"
    )[1]
    assert obj["apiVersion"] == "foo.bar/v2"


## filter_objects_current_state ################################################


def test_filter_by_namespace_and_version():
    """Make sure only objects of the kind, namespace and version are listed"""
    dm = DryRunDeployManager(
        [
            make_obj(name="a"),
            make_obj(name="b"),
            make_obj(name="c", namespace=SOME_OTHER_NAMESPACE),
            make_obj(name="d", kind="ConfigMap"),
            make_obj(name="e", api_version="v2"),
        ]
    )
    success, objs = dm.filter_objects_current_state(
        "Secret", TEST_NAMESPACE, api_version="v1"
    )
    assert success
    assert sorted(obj["metadata"]["name"] for obj in objs) == ["a", "b"]

    _, objs = dm.filter_objects_current_state("Secret", TEST_NAMESPACE)
    assert sorted(obj["metadata"]["name"] for obj in objs) == ["a", "b", "e"]


def test_filter_by_label_selector():
    """Make sure label selectors filter the listed objects"""
    dm = DryRunDeployManager(
        [
            make_obj(name="a", labels={"app": "web"}),
            make_obj(name="b", labels={"app": "db"}),
        ]
    )
    _, objs = dm.filter_objects_current_state(
        "Secret", TEST_NAMESPACE, label_selector="app=web"
    )
    assert [obj["metadata"]["name"] for obj in objs] == ["a"]


@pytest.mark.parametrize(
    ["selector", "matches"],
    [
        ("app=web", True),
        ("app==web", True),
        ("app=db", False),
        ("app!=db", True),
        ("app!=web", False),
        ("tier!=db", True),
        ("app", True),
        ("tier", False),
        ("!tier", True),
        ("!app", False),
        ("app=web,run=frontend", True),
        ("app=web, run=backend", False),
        ("", True),
    ],
)
def test_match_selector(selector, matches):
    """Make sure equality and existence selectors are honored"""
    labels = {"app": "web", "run": "frontend"}
    assert _match_selector(labels, selector) is matches


## set_status ##################################################################


def test_set_status():
    """Make sure a status is written and a change is reported"""
    dm = DryRunDeployManager([make_obj()])
    assert dm.set_status("Secret", "foobar", TEST_NAMESPACE, {"a": 1}) == (True, True)
    obj = dm.get_object_current_state("Secret", "foobar", TEST_NAMESPACE)[1]
    assert obj["status"] == {"a": 1}
    assert dm.set_status("Secret", "foobar", TEST_NAMESPACE, {"a": 1}) == (
        True,
        False,
    )


def test_set_status_missing_object():
    """Make sure setting the status of a missing object fails"""
    dm = DryRunDeployManager()
    assert dm.set_status("Secret", "foobar", TEST_NAMESPACE, {"a": 1}) == (
        False,
        False,
    )
