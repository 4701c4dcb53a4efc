import argparse
import pytest
import responses

from exporter import check
from exporter.conftest import SERVICE_DOCUMENT_URL
from exporter.sword.hierarchy import HierarchyNode


EDIT_URL = 'https://dspace.example.org/swordv2/edit/8128'


@pytest.fixture(autouse=True)
def no_logging_config(monkeypatch):
    monkeypatch.setattr('exporter.settings.configure_logging', lambda level=None: None)


class TestParseMetadata:

    def test_parse(self):
        assert check.parse_metadata(['title=Foo', 'creator=A', 'creator=B=C']) == {
            'title': ['Foo'],
            'creator': ['A', 'B=C'],
        }

    @pytest.mark.parametrize('value', ['title', '=Foo'])
    def test_invalid(self, value):
        with pytest.raises(argparse.ArgumentTypeError):
            check.parse_metadata([value])


class TestHasFailedBranches:

    def test_failed_deep_down(self):
        node = HierarchyNode(children=[HierarchyNode('A', children=[HierarchyNode('B', failed=True)])])
        assert check.has_failed_branches(node)

    def test_complete(self):
        assert not check.has_failed_branches(HierarchyNode(children=[HierarchyNode('A')]))


class TestMain:

    def test_collections(self, nested_repository, capsys):
        assert check.main([SERVICE_DOCUMENT_URL, '--user', 'vetinari', '--password', 'psst']) == 0
        out = capsys.readouterr().out
        assert '== Is SWORD interface accessible: True' in out
        assert '== Is service document with subservices: True' in out
        assert '1: C\n-- URL:  http://x/42\n-- hierarchy:  A->B->C\n' in out
        assert '-- hierarchy:  Sibling->Untitled community->Deep' in out
        assert 'Warning: some services could not be fetched' in out

    def test_separator(self, nested_repository, capsys):
        check.main([SERVICE_DOCUMENT_URL, '--api-token', 'abcd', '--separator', ' / '])
        assert '-- hierarchy:  A / B / C' in capsys.readouterr().out

    def test_not_accessible(self, mocked_responses, capsys):
        mocked_responses.add(responses.GET, SERVICE_DOCUMENT_URL, status=401)
        assert check.main([SERVICE_DOCUMENT_URL, '--user', 'vetinari', '--password', 'wrong']) == 1
        assert 'stop testing' in capsys.readouterr().out

    def test_password_prompt(self, mocked_responses, monkeypatch):
        mocked_responses.add(responses.GET, SERVICE_DOCUMENT_URL, status=401)
        monkeypatch.setattr('getpass.getpass', lambda prompt: 'psst')
        check.main([SERVICE_DOCUMENT_URL, '--user', 'vetinari', '--on-behalf-of', 'ridcully'])
        headers = mocked_responses.calls[0].request.headers
        assert headers['On-Behalf-Of'] == 'ridcully'

    def test_no_user(self):
        with pytest.raises(SystemExit):
            check.main([SERVICE_DOCUMENT_URL])

    def test_replace(self, nested_repository, capsys):
        nested_repository.add(responses.PUT, EDIT_URL, status=200)
        check.main([SERVICE_DOCUMENT_URL, '--api-token', 'abcd', '--replace-entry', EDIT_URL, '--metadata', 'title=Foo'])
        assert 'Replacement result: successful!' in capsys.readouterr().out

    def test_replace_failed(self, nested_repository, capsys):
        nested_repository.add(responses.PUT, EDIT_URL, status=403)
        check.main([SERVICE_DOCUMENT_URL, '--api-token', 'abcd', '--replace-entry', EDIT_URL])
        assert 'Replacement result: not successful!' in capsys.readouterr().out
