"""
Tests for translating custom resources to and from API documents
"""

# Standard
import copy

# Third Party
import pytest

# Local
from kubemapper.exceptions import (
    ConfigError,
    ReferenceResolutionError,
    SchemaValidationError,
)
from kubemapper.test_helpers.helpers import (
    SAMPLE_OPENAPI_SCHEMA,
    TEST_KIND,
    TEST_MAJOR_VERSION,
    TEST_NAMESPACE,
    make_crd,
    make_custom_role,
    make_group,
    make_secret,
    setup_cr,
)
from kubemapper.translate import Translator

## Helpers #####################################################################


def mapped_cr():
    return setup_cr(
        spec={
            TEST_MAJOR_VERSION: {
                "groupRef": {"name": "my-group"},
                "entry": {
                    "username": "jane",
                    "passwordSecretRef": {"name": "creds", "key": "password"},
                    "roles": [{"roleNameRef": {"name": "rw"}, "databaseName": "admin"}],
                },
            }
        }
    )


def dependencies():
    return [
        make_group("my-group", group_id="abc123"),
        make_secret("creds", {"password": "s3cr3t"}),
        make_custom_role("rw", "readWrite"),
    ]


def api_document():
    return {
        "groupId": "abc123",
        "username": "jane",
        "password": "s3cr3t",
        "roles": [{"roleName": "readWrite", "databaseName": "admin"}],
    }


## Construction ################################################################


def test_construct(translator):
    """Make sure a translator is built from a valid CRD"""
    assert translator.kind == TEST_KIND
    assert translator.major_version == TEST_MAJOR_VERSION
    assert translator.schema is not None
    assert translator.annotation("api-mappings") is not None
    assert translator.annotation("not-there") is None


def test_construct_without_mappings():
    """Make sure a CRD without the mappings annotation has no schema"""
    translator = Translator(make_crd(mappings_yaml=None), "v1", TEST_MAJOR_VERSION)
    assert translator.schema is None


def test_construct_missing_version():
    """Make sure an unknown CRD version is a config error"""
    with pytest.raises(ConfigError):
        Translator(make_crd(), "v2", TEST_MAJOR_VERSION)


def test_construct_missing_major_version():
    """Make sure a major version the CRD does not describe is a config error"""
    with pytest.raises(ConfigError):
        Translator(make_crd(), "v1", "v20990101")


def test_construct_missing_openapi_schema():
    """Make sure a version without a schema is a config error"""
    crd = make_crd()
    del crd["spec"]["versions"][0]["schema"]
    with pytest.raises(ConfigError):
        Translator(crd, "v1", TEST_MAJOR_VERSION)


def test_construct_invalid_openapi_schema():
    """Make sure a CRD schema that does not compile is a config error"""
    openapi_schema = {
        "type": "object",
        "properties": {
            "spec": {"properties": {TEST_MAJOR_VERSION: {"type": "not-a-type"}}}
        },
    }
    with pytest.raises(ConfigError):
        Translator(make_crd(openapi_schema=openapi_schema), "v1", TEST_MAJOR_VERSION)


def test_construct_invalid_mappings():
    """Make sure unparsable mappings are a config error"""
    with pytest.raises(ConfigError):
        Translator(make_crd(mappings_yaml="a: [b"), "v1", TEST_MAJOR_VERSION)


## Validate ####################################################################


def test_validate(translator):
    """Make sure objects are checked against the CRD schema"""
    translator.validate(mapped_cr())
    bad_cr = mapped_cr()
    bad_cr["spec"][TEST_MAJOR_VERSION]["groupId"] = 42
    with pytest.raises(SchemaValidationError, match="groupId"):
        translator.validate(bad_cr)


## to_api ######################################################################


def test_to_api(translator):
    """Make sure references are collapsed and the entry is flattened"""
    source = mapped_cr()
    original = copy.deepcopy(source)
    request = translator.to_api(source, dependencies())
    assert request == {
        "groupId": "abc123",
        "username": "jane",
        "password": "s3cr3t",
        "roles": [{"roleName": "readWrite", "databaseName": "admin"}],
    }
    assert source == original


def test_to_api_entry_wins(translator):
    """Make sure entry fields override fields of the versioned spec"""
    source = setup_cr(
        spec={TEST_MAJOR_VERSION: {"username": "outer", "entry": {"username": "in"}}}
    )
    assert translator.to_api(source) == {"username": "in"}


def test_to_api_without_entry(translator):
    """Make sure a versioned spec without an entry is copied as is"""
    source = setup_cr(spec={TEST_MAJOR_VERSION: {"groupId": "abc123"}})
    assert translator.to_api(source) == {"groupId": "abc123"}


def test_to_api_ignores_status(translator):
    """Make sure the status does not leak into the request"""
    source = mapped_cr()
    source["status"] = {TEST_MAJOR_VERSION: {"id": "xyz"}}
    assert "id" not in translator.to_api(source, dependencies())


def test_to_api_missing_versioned_spec(translator):
    """Make sure a CR without the pinned major version fails"""
    with pytest.raises(SchemaValidationError):
        translator.to_api(setup_cr(spec={"other": {}}))


def test_to_api_missing_dependency(translator):
    """Make sure a dangling reference fails the translation"""
    with pytest.raises(ReferenceResolutionError):
        translator.to_api(mapped_cr(), [make_group("my-group", group_id="abc123")])


def test_to_api_invalid_cr(translator):
    """Make sure an invalid CR is rejected before mapping"""
    source = mapped_cr()
    source["spec"][TEST_MAJOR_VERSION]["entry"]["username"] = ["not", "a", "string"]
    with pytest.raises(SchemaValidationError):
        translator.to_api(source, dependencies())


def test_to_api_without_mappings():
    """Make sure a CRD without mappings only flattens the spec"""
    translator = Translator(make_crd(mappings_yaml=None), "v1", TEST_MAJOR_VERSION)
    source = setup_cr(
        spec={TEST_MAJOR_VERSION: {"groupId": "abc", "entry": {"username": "u"}}}
    )
    assert translator.to_api(source) == {"groupId": "abc", "username": "u"}


## from_api ####################################################################


def test_from_api(translator):
    """Make sure the response lands in the spec, entry and status and that
    referenced values are moved into related objects
    """
    target_cr = setup_cr()
    original = copy.deepcopy(target_cr)
    target, *related = translator.from_api(
        target_cr, api_document(), [make_group("my-group", group_id="abc123")]
    )
    assert target_cr == original

    spec = target["spec"][TEST_MAJOR_VERSION]
    assert spec["groupRef"] == {"name": "my-group"}
    assert spec["entry"]["username"] == "jane"
    assert target["status"][TEST_MAJOR_VERSION] == api_document()

    kinds = [obj["kind"] for obj in related]
    assert kinds == ["Secret", "CustomRole"]
    secret = related[0]
    assert secret["metadata"]["namespace"] == TEST_NAMESPACE
    assert spec["entry"]["passwordSecretRef"] == {
        "name": secret["metadata"]["name"],
        "key": "password",
    }


def test_from_api_then_to_api(translator):
    """Make sure a translated response can be sent back unchanged"""
    group = make_group("my-group", group_id="abc123")
    target, *related = translator.from_api(setup_cr(), api_document(), [group])
    request = translator.to_api(target, [group] + related)
    assert request == api_document()


def test_from_api_is_idempotent(translator):
    """Make sure translating the same response twice adds no new objects"""
    group = make_group("my-group", group_id="abc123")
    target, *related = translator.from_api(setup_cr(), api_document(), [group])
    again, *related_again = translator.from_api(
        target, api_document(), [group] + related
    )
    assert related_again == []
    assert again == target


def test_from_api_invalid_response(translator):
    """Make sure a response that does not fit the CRD schema is rejected"""
    response = api_document()
    response["groupId"] = 42
    with pytest.raises(SchemaValidationError):
        translator.from_api(setup_cr(), response)


def test_from_api_without_mappings():
    """Make sure a CRD without mappings copies the response only"""
    translator = Translator(make_crd(mappings_yaml=None), "v1", TEST_MAJOR_VERSION)
    objects = translator.from_api(setup_cr(), {"groupId": "abc"})
    assert len(objects) == 1
    assert objects[0]["spec"][TEST_MAJOR_VERSION] == {
        "groupId": "abc",
        "entry": {"groupId": "abc"},
    }


AUDITING_MAPPINGS_YAML = f"""
properties:
  spec:
    properties:
      {TEST_MAJOR_VERSION}:
        properties:
          auditFilter:
            type: string
          enabled:
            type: boolean
"""

AUDITING_OPENAPI_SCHEMA = {
    "type": "object",
    "properties": {
        "spec": {
            "type": "object",
            "properties": {
                TEST_MAJOR_VERSION: {
                    "type": "object",
                    "properties": {
                        "auditFilter": {"type": "string"},
                        "enabled": {"type": "boolean"},
                        "entry": {"type": "object"},
                    },
                },
            },
        },
        "status": {"type": "object"},
    },
}


def test_from_api_plain_fields_only():
    """Make sure a schema without references copies the response and adds no
    related objects
    """
    translator = Translator(
        make_crd(
            mappings_yaml=AUDITING_MAPPINGS_YAML,
            openapi_schema=AUDITING_OPENAPI_SCHEMA,
            kind="Auditing",
        ),
        "v1",
        TEST_MAJOR_VERSION,
    )
    response = {"auditFilter": "{}", "enabled": True}
    target, *related = translator.from_api(setup_cr(kind="Auditing"), response)
    assert related == []
    assert target["spec"][TEST_MAJOR_VERSION] == {
        "auditFilter": "{}",
        "enabled": True,
        "entry": {"auditFilter": "{}", "enabled": True},
    }
    assert target["status"][TEST_MAJOR_VERSION] == response
    assert translator.to_api(target) == response


def test_sample_schema_unchanged(translator):
    """Make sure translating does not change the shared CRD schema"""
    original = copy.deepcopy(SAMPLE_OPENAPI_SCHEMA)
    translator.to_api(mapped_cr(), dependencies())
    assert SAMPLE_OPENAPI_SCHEMA == original
