import logging
import pytest

from exporter.conftest import sub_service_url
from exporter.sword.client import SWORDCollection
from exporter.sword.client import SWORDWorkspace
from exporter.sword.client import ServiceDocument
from exporter.sword.client import SwordClientError
from exporter.sword.hierarchy import CollectionRef
from exporter.sword.hierarchy import HierarchyNode
from exporter.sword.hierarchy import HierarchyResolver
from exporter.sword.hierarchy import collection_path
from exporter.sword.hierarchy import find_service_titles
from exporter.sword.hierarchy import flatten_collections
from exporter.sword.hierarchy import flatten_with_path


@pytest.fixture
def three_levels():
    """
    root -> A -> B -> C (http://x/42)
    """
    b = HierarchyNode('B', 'http://x/b', leaves=[CollectionRef('C', 'http://x/42')])
    a = HierarchyNode('A', 'http://x/a', children=[b])
    return HierarchyNode(children=[a])


@pytest.fixture
def resolver(fetch_from_test_data):
    return HierarchyResolver(fetch_from_test_data)


class TestHierarchyNode:

    def test_defaults(self):
        node = HierarchyNode()
        assert node.title == ''
        assert node.locator == ''
        assert node.children == ()
        assert node.leaves == ()
        assert node.failed is False

    def test_lists_become_tuples(self):
        node = HierarchyNode('A', leaves=[CollectionRef('C', 'http://x/42')])
        assert node.leaves == (CollectionRef('C', 'http://x/42'),)
        with pytest.raises(AttributeError):
            node.title = 'B'


class TestResolve:

    def test_flat_service_document(self, resolver, flat_service_document, fetch_from_test_data):
        """
        Without services, every collection becomes a leaf of the root and nothing is fetched
        """
        root = resolver.resolve(flat_service_document)
        assert root.children == ()
        assert root.leaves == (
            CollectionRef('Theses', 'https://dspace.example.org/swordv2/collection/123456789/2'),
            CollectionRef('Research data', 'https://dspace.example.org/swordv2/collection/123456789/3'),
        )
        assert fetch_from_test_data.fetched == []

    def test_nested_service_document(self, resolver, nested_service_document):
        root = resolver.resolve(nested_service_document)

        assert root.title == ''
        assert root.locator == ''
        assert root.leaves == (CollectionRef('Top collection', 'https://dspace.example.org/swordv2/collection/top'),)
        assert [child.title for child in root.children] == ['A', 'Broken', 'Sibling']

        a = root.children[0]
        assert a.locator == sub_service_url('A')
        assert a.leaves == (CollectionRef('Collection in A', 'https://dspace.example.org/swordv2/collection/in-a'),)
        assert len(a.children) == 1
        b = a.children[0]
        assert b.title == 'B'
        assert b.leaves == (CollectionRef('C', 'http://x/42'),)
        assert b.children == ()

    def test_failed_branch_does_not_stop_siblings(self, resolver, nested_service_document, caplog):
        root = resolver.resolve(nested_service_document)

        broken = root.children[1]
        assert broken.failed
        assert broken.locator == sub_service_url('broken')
        assert broken.children == ()
        assert broken.leaves == ()

        sibling = root.children[2]
        assert not sibling.failed
        assert sibling.leaves == (CollectionRef('Sibling collection', 'https://dspace.example.org/swordv2/collection/sibling-collection'),)

        errors = [r for r in caplog.records if r.levelname == 'ERROR']
        assert len(errors) == 1
        assert errors[0].name == 'sword_exporter.exporter.sword.hierarchy'
        assert sub_service_url('broken') in errors[0].getMessage()

    def test_title_of_block_wins(self, resolver, nested_service_document):
        """
        A's own service document is titled "Workspace of A", the block linking to it says "A"
        """
        root = resolver.resolve(nested_service_document)
        assert root.children[0].title == 'A'

    def test_title_of_service_document_without_block_title(self, resolver, nested_service_document):
        root = resolver.resolve(nested_service_document)
        untitled = root.children[2].children[0]
        assert untitled.title == 'Untitled community'
        assert untitled.leaves == (CollectionRef('Deep', 'https://dspace.example.org/swordv2/collection/deep'),)

    def test_idempotent(self, resolver, nested_service_document):
        assert resolver.resolve(nested_service_document) == resolver.resolve(nested_service_document)

    def test_first_sub_service_is_used(self, fetch_from_test_data):
        service_document = ServiceDocument(workspaces=[SWORDWorkspace(collections=[
            SWORDCollection(title='B', href='http://x/b', sub_services=[sub_service_url('B'), sub_service_url('A')]),
        ])])
        root = HierarchyResolver(fetch_from_test_data).resolve(service_document)
        assert fetch_from_test_data.fetched == [sub_service_url('B')]
        assert root.children[0].leaves == (CollectionRef('C', 'http://x/42'),)

    def test_collection_without_href_skipped(self, fetch_from_test_data):
        service_document = ServiceDocument(workspaces=[SWORDWorkspace(collections=[
            SWORDCollection(title='Nowhere'),
        ])])
        root = HierarchyResolver(fetch_from_test_data).resolve(service_document)
        assert root.leaves == ()
        assert root.children == ()


class TestResolveSubService:

    def test_malformed_blocks_dropped(self, resolver):
        """
        community_a.xml also holds a collection without title and one without href
        """
        node = resolver.resolve_sub_service(sub_service_url('A'))
        hrefs = [leaf.href for leaf in node.leaves]
        assert hrefs == ['https://dspace.example.org/swordv2/collection/in-a']

    def test_fetch_error(self, resolver):
        assert resolver.resolve_sub_service(sub_service_url('broken')) is None

    def test_client_error(self, caplog):
        def fetch(url):
            raise SwordClientError('Connection refused')
        assert HierarchyResolver(fetch).resolve_sub_service('http://x/a') is None
        assert 'SwordClientError' in caplog.records[0].getMessage()

    @pytest.mark.parametrize('body', [b'', b'This is no XML'])
    def test_no_xml(self, body):
        assert HierarchyResolver(lambda url: body).resolve_sub_service('http://x/a') is None

    def test_unknown_errors_are_raised(self):
        def fetch(url):
            raise KeyError(url)
        with pytest.raises(KeyError):
            HierarchyResolver(fetch).resolve_sub_service('http://x/a')

    def test_str_body(self):
        body = '''<?xml version="1.0" encoding="utf-8"?>
            <service xmlns="http://www.w3.org/2007/app" xmlns:atom="http://www.w3.org/2005/Atom">
                <workspace>
                    <collection href="http://x/1"><atom:title>Bücher</atom:title></collection>
                </workspace>
            </service>'''
        node = HierarchyResolver(lambda url: body).resolve_sub_service('http://x/a')
        assert node.leaves == (CollectionRef('Bücher', 'http://x/1'),)

    def test_prefixed_and_unclosed_blocks(self):
        """
        Prefixes do not matter and a truncated document still gives what could be read
        """
        body = b'''<app:service xmlns:app="http://www.w3.org/2007/app" xmlns:atom="http://www.w3.org/2005/Atom">
            <app:workspace>
                <app:collection href="http://x/1"><atom:title>One</atom:title></app:collection>
                <app:collection href="http://x/2"><atom:title>Two</atom:title>'''
        node = HierarchyResolver(lambda url: body).resolve_sub_service('http://x/a')
        assert CollectionRef('One', 'http://x/1') in node.leaves

    def test_service_without_url_dropped(self):
        body = b'''<service xmlns="http://www.w3.org/2007/app" xmlns:atom="http://www.w3.org/2005/Atom">
            <workspace>
                <collection href="http://x/1">
                    <atom:title>Empty</atom:title>
                    <service xmlns="http://purl.org/net/sword/terms/"> </service>
                </collection>
            </workspace>
        </service>'''
        node = HierarchyResolver(lambda url: body).resolve_sub_service('http://x/a')
        assert node.children == ()
        assert node.leaves == ()

    def test_link_to_itself_not_followed(self, caplog):
        body = b'''<service xmlns="http://www.w3.org/2007/app" xmlns:atom="http://www.w3.org/2005/Atom">
            <workspace>
                <atom:title>Loop</atom:title>
                <collection href="http://x/loop">
                    <atom:title>Again</atom:title>
                    <service xmlns="http://purl.org/net/sword/terms/">http://x/a</service>
                </collection>
                <collection href="http://x/1"><atom:title>One</atom:title></collection>
            </workspace>
        </service>'''
        node = HierarchyResolver(lambda url: body).resolve_sub_service('http://x/a')
        assert node.leaves == (CollectionRef('One', 'http://x/1'),)
        assert node.children == (HierarchyNode('Again', 'http://x/a', failed=True),)
        assert 'http://x/a' in caplog.records[0].getMessage()

    def test_link_to_ancestor_not_followed(self):
        bodies = {
            'http://x/a': b'''<service xmlns="http://www.w3.org/2007/app" xmlns:atom="http://www.w3.org/2005/Atom">
                <workspace><collection href="http://x/cb"><atom:title>B</atom:title>
                    <service xmlns="http://purl.org/net/sword/terms/">http://x/b</service>
                </collection></workspace></service>''',
            'http://x/b': b'''<service xmlns="http://www.w3.org/2007/app" xmlns:atom="http://www.w3.org/2005/Atom">
                <workspace><collection href="http://x/ca"><atom:title>A again</atom:title>
                    <service xmlns="http://purl.org/net/sword/terms/">http://x/a</service>
                </collection></workspace></service>''',
        }
        service_document = ServiceDocument(workspaces=[SWORDWorkspace(collections=[
            SWORDCollection(title='A', href='http://x/ca', sub_services=['http://x/a']),
        ])])
        root = HierarchyResolver(bodies.get).resolve(service_document)
        b = root.children[0].children[0]
        assert b.title == 'B'
        assert b.children == (HierarchyNode('A again', 'http://x/a', failed=True),)

    def test_default_logger(self):
        assert HierarchyResolver(lambda url: b'').logger is logging.getLogger('sword_exporter.exporter.sword.hierarchy')

    def test_injected_logger(self):
        messages = []

        class ListLogger:
            def error(self, msg):
                messages.append(msg)

            def debug(self, msg):
                pass

        def fetch(url):
            raise SwordClientError('Timeout')

        HierarchyResolver(fetch, logger=ListLogger()).resolve_sub_service('http://x/a')
        assert len(messages) == 1
        assert 'http://x/a' in messages[0]


class TestFlattenCollections:

    def test_three_levels(self, three_levels):
        assert flatten_collections(three_levels) == {'http://x/42': 'C'}

    def test_nested(self, resolver, nested_service_document):
        collections = flatten_collections(resolver.resolve(nested_service_document))
        assert collections == {
            'https://dspace.example.org/swordv2/collection/top': 'Top collection',
            'https://dspace.example.org/swordv2/collection/in-a': 'Collection in A',
            'http://x/42': 'C',
            'https://dspace.example.org/swordv2/collection/sibling-collection': 'Sibling collection',
            'https://dspace.example.org/swordv2/collection/deep': 'Deep',
        }

    def test_duplicate_href_last_wins(self):
        root = HierarchyNode(
            leaves=[CollectionRef('First', 'http://x/1')],
            children=[HierarchyNode('A', leaves=[CollectionRef('Second', 'http://x/1')])],
        )
        assert flatten_collections(root) == {'http://x/1': 'Second'}

    def test_failed_node(self):
        root = HierarchyNode(children=[HierarchyNode('Broken', 'http://x/b', failed=True)])
        assert flatten_collections(root) == {}


class TestFlattenWithPath:

    def test_three_levels(self, three_levels):
        assert flatten_with_path(three_levels, '->') == {'http://x/42': 'A->B->C'}

    def test_root_collection_has_no_separator(self):
        root = HierarchyNode(leaves=[CollectionRef('Theses', 'http://x/1')])
        assert flatten_with_path(root, '->') == {'http://x/1': 'Theses'}

    def test_nested(self, resolver, nested_service_document):
        paths = flatten_with_path(resolver.resolve(nested_service_document), ' / ')
        assert paths == {
            'https://dspace.example.org/swordv2/collection/top': 'Top collection',
            'https://dspace.example.org/swordv2/collection/in-a': 'A / Collection in A',
            'http://x/42': 'A / B / C',
            'https://dspace.example.org/swordv2/collection/sibling-collection': 'Sibling / Sibling collection',
            'https://dspace.example.org/swordv2/collection/deep': 'Sibling / Untitled community / Deep',
        }

    def test_same_keys_as_flatten_collections(self, resolver, nested_service_document):
        root = resolver.resolve(nested_service_document)
        assert set(flatten_with_path(root, '->')) == set(flatten_collections(root))

    def test_untitled_service_adds_no_segment(self):
        root = HierarchyNode(children=[
            HierarchyNode('', 'http://x/a', children=[
                HierarchyNode('B', 'http://x/b', leaves=[CollectionRef('C', 'http://x/42')]),
            ]),
        ])
        assert flatten_with_path(root, '->') == {'http://x/42': 'B->C'}


class TestFindServiceTitles:

    def test_three_levels(self, three_levels):
        assert find_service_titles(three_levels, 'http://x/42') == ['', 'A', 'B']

    def test_at_root(self):
        root = HierarchyNode(leaves=[CollectionRef('Theses', 'http://x/1')])
        assert find_service_titles(root, 'http://x/1') == ['']

    def test_not_found(self, three_levels):
        assert find_service_titles(three_levels, 'http://x/43') is None

    def test_collection_path(self, three_levels):
        assert collection_path(three_levels, 'http://x/42', '->') == 'A->B->C'
        assert collection_path(three_levels, 'http://x/43', '->') is None
