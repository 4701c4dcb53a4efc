import os
import pytest
import responses

from exporter.sword.client import AuthCredentials
from exporter.sword.client import SwordError
from exporter.sword.client import parse_service_document
from exporter.sword.protocol import CommonSwordRepository


TEST_DATA_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'sword', 'test_data')

SWORD_BASE = 'https://dspace.example.org/swordv2'
SERVICE_DOCUMENT_URL = SWORD_BASE + '/servicedocument'


def sub_service_url(name):
    return '{}/servicedocument/{}'.format(SWORD_BASE, name)


@pytest.fixture
def load_test_data():
    """
    Returns a function reading a file from ``sword/test_data`` as bytes
    """
    def load(name):
        with open(os.path.join(TEST_DATA_DIR, name), 'rb') as f:
            return f.read()
    return load


@pytest.fixture
def credentials():
    return AuthCredentials('vetinari@example.org', 'psst')


@pytest.fixture
def mocked_responses():
    """
    Mocks all requests made with requests during the test
    """
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


@pytest.fixture
def common_repository(credentials):
    return CommonSwordRepository(SERVICE_DOCUMENT_URL, credentials)


@pytest.fixture
def flat_service_document(load_test_data):
    return parse_service_document(load_test_data('servicedocument_flat.xml'))


@pytest.fixture
def nested_service_document(load_test_data):
    return parse_service_document(load_test_data('servicedocument_nested.xml'))


@pytest.fixture
def nested_repository(mocked_responses, load_test_data):
    """
    Serves the nested service document and its sub-services:

    root -> A -> B -> C (http://x/42)
         -> Broken (status 500)
         -> Sibling -> untitled community -> Deep
    """
    mocked_responses.add(responses.GET, SERVICE_DOCUMENT_URL, body=load_test_data('servicedocument_nested.xml'))
    mocked_responses.add(responses.GET, sub_service_url('A'), body=load_test_data('community_a.xml'))
    mocked_responses.add(responses.GET, sub_service_url('B'), body=load_test_data('community_b.xml'))
    mocked_responses.add(responses.GET, sub_service_url('broken'), status=500)
    mocked_responses.add(responses.GET, sub_service_url('sibling'), body=load_test_data('community_sibling.xml'))
    mocked_responses.add(responses.GET, sub_service_url('untitled'), body=load_test_data('community_untitled.xml'))
    return mocked_responses


@pytest.fixture
def fetch_from_test_data(load_test_data):
    """
    A fetch for the hierarchy resolver that reads the sub-services from the test data instead of the network.
    The list ``fetched`` of the function records the requested URLs.
    """
    files = {
        sub_service_url('A'): 'community_a.xml',
        sub_service_url('B'): 'community_b.xml',
        sub_service_url('sibling'): 'community_sibling.xml',
        sub_service_url('untitled'): 'community_untitled.xml',
    }

    def fetch(url):
        fetch.fetched.append(url)
        if url not in files:
            raise SwordError(500, '', 'Internal server error')
        return load_test_data(files[url])

    fetch.fetched = []
    return fetch
