"""
Shared test config
"""

# Third Party
import pytest

# Local
from kubemapper.test_helpers.helpers import (
    TEST_MAJOR_VERSION,
    configure_logging,
    make_crd,
    sample_schema,
)
from kubemapper.translate import Translator

configure_logging()


@pytest.fixture
def schema():
    """The sample database user mapping schema"""
    return sample_schema()


@pytest.fixture
def translator():
    """A translator for the sample database user CRD"""
    return Translator(make_crd(), "v1", TEST_MAJOR_VERSION)
