# -*- encoding: utf-8 -*-

# SWORD exporter: export helpers for SWORD v2 repositories
# Copyright (C) 2018 The SWORD exporter authors
#
# This program is free software; you can redistribute it and/or
# modify it under the terms of the GNU Affero General Public License
# as published by the Free Software Foundation; either version 2
# of the License, or (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program; if not, write to the Free Software
# Foundation, Inc., 51 Franklin Street, Fifth Floor, Boston, MA  02110-1301, USA.
#

"""
Discovery of the collection hierarchy of a SWORD repository.

A service document lists collections, but some of its entries are links to
further service documents (``<sword:service>``), e.g. DSpace communities.
:class:`HierarchyResolver` follows those links and returns the whole tree as
an immutable :class:`HierarchyNode`. The functions below the resolver work on
such a tree only and make no requests.

A sub-service that cannot be fetched or parsed does not stop the discovery:
it shows up as a node with ``failed`` set and nothing below it. So for a
collection that is missing in the flattened views, you can not tell whether
it does not exist or just could not be discovered.
"""

import logging

from collections import namedtuple

from lxml import etree

from exporter.sword.client import ProtocolViolationError
from exporter.sword.client import SwordClientError
from exporter.sword.client import SwordError


logger = logging.getLogger('sword_exporter.' + __name__)

#: Errors of the fetch that end the discovery of one branch
FETCH_ERRORS = (SwordClientError, SwordError, ProtocolViolationError)


class CollectionRef(namedtuple('CollectionRef', ['title', 'href'])):
    """
    A collection that accepts deposits. ``href`` identifies it in the flattened views.
    """
    __slots__ = ()


class HierarchyNode(namedtuple('HierarchyNode', ['title', 'locator', 'children', 'leaves', 'failed'])):
    """
    One level of the hierarchy: the service document itself (empty title and
    locator) or a sub-service found in it. ``children`` are the nested
    sub-services, ``leaves`` the collections directly at this level.
    """
    __slots__ = ()

    def __new__(cls, title='', locator='', children=(), leaves=(), failed=False):
        return super().__new__(cls, title, locator, tuple(children), tuple(leaves), failed)


def _local_name(elem):
    return etree.QName(elem).localname


def _find_child(elem, name):
    for child in elem.iterchildren(etree.Element):
        if _local_name(child) == name:
            return child
    return None


def _child_text(elem, name):
    child = _find_child(elem, name)
    if child is None or child.text is None:
        return ''
    return child.text.strip()


def _parse(body):
    """
    Parses as much of the body as possible. Returns the root element or None.
    """
    if isinstance(body, str):
        body = body.encode('utf-8')
    parser = etree.XMLParser(recover=True, resolve_entities=False, no_network=True)
    try:
        return etree.fromstring(body, parser)
    except etree.XMLSyntaxError:
        return None


class HierarchyResolver(object):
    """
    Builds the hierarchy of a service document.

    :param fetch: callable taking the URL of a sub-service and returning the raw
        body (bytes or str) of its service document. It is expected to raise one
        of ``FETCH_ERRORS`` when the request fails.
    :param logger: logger to report failed branches to, defaults to the logger of this module
    """

    logger = logger

    def __init__(self, fetch, logger=None):
        self.fetch = fetch
        if logger is not None:
            self.logger = logger

    def resolve(self, service_document):
        """
        :param service_document: :class:`~exporter.sword.client.ServiceDocument`, already fetched
        :returns: the root :class:`HierarchyNode`
        """
        children = []
        leaves = []
        for workspace in service_document.workspaces:
            for collection in workspace.collections:
                if collection.sub_services:
                    children.append(self._resolve_child(collection.title, collection.sub_services[0]))
                elif collection.href:
                    leaves.append(CollectionRef(collection.title, collection.href))
                else:
                    self.logger.debug('Skipping collection without href in service document')
        return HierarchyNode('', '', children, leaves)

    def resolve_sub_service(self, url):
        """
        Fetches the service document at ``url`` and resolves everything below it.

        :returns: :class:`HierarchyNode` or ``None`` if the fetch failed or the answer is no XML at all
        """
        return self._resolve_sub_service(url, ())

    def _resolve_sub_service(self, url, path):
        path = path + (url,)
        try:
            body = self.fetch(url)
        except FETCH_ERRORS as e:
            self.logger.error('Exception by getting content via SWORD from {}: {}: {}'.format(url, type(e).__name__, e))
            return None

        root = _parse(body)
        if root is None:
            self.logger.error('Content of {} could not be parsed as XML'.format(url))
            return None

        children = []
        leaves = []
        for block in root.iter(etree.Element):
            if _local_name(block) != 'collection':
                continue
            title = _child_text(block, 'title')
            service = _find_child(block, 'service')
            if service is not None:
                locator = (service.text or '').strip()
                if locator:
                    children.append(self._resolve_child(title, locator, path))
                else:
                    self.logger.debug('Dropping service without URL below {}'.format(url))
            else:
                href = block.get('href')
                if href and title:
                    leaves.append(CollectionRef(title, href))
                else:
                    self.logger.debug('Dropping collection without href or title below {}'.format(url))

        workspace = _find_child(root, 'workspace')
        title = _child_text(workspace, 'title') if workspace is not None else ''
        return HierarchyNode(title, url, children, leaves)

    def _resolve_child(self, title, url, path=()):
        """
        Resolves a sub-service found in a ``<collection>`` block. The title of the
        block wins over the title of the fetched service document.
        ``path`` holds the URLs of the services above, a link back to one of them is not followed.
        """
        if url in path:
            self.logger.error('Service {} links back to {}, not followed'.format(path[-1], url))
            return HierarchyNode(title, url, failed=True)
        node = self._resolve_sub_service(url, path)
        if node is None:
            return HierarchyNode(title, url, failed=True)
        if title:
            node = node._replace(title=title)
        return node


def flatten_collections(node):
    """
    All collections of the tree as ``{href: title}``.
    If the same href appears twice, the one visited last wins.
    """
    collections = {leaf.href: leaf.title for leaf in node.leaves}
    for child in node.children:
        collections.update(flatten_collections(child))
    return collections


def flatten_with_path(node, separator):
    """
    All collections of the tree as ``{href: path}``, where path joins the titles
    of the services above the collection and the collection title with ``separator``,
    e.g. ``"Community->Sub-community->Collection"``. Empty titles are left out.
    """
    paths = {}

    def walk(node, ancestors):
        if node.title:
            ancestors = ancestors + [node.title]
        for leaf in node.leaves:
            paths[leaf.href] = separator.join(t for t in ancestors + [leaf.title] if t)
        for child in node.children:
            walk(child, ancestors)

    walk(node, [])
    return paths


def find_service_titles(node, href):
    """
    Titles of the nodes from ``node`` down to the one holding the collection ``href``.

    :returns: list of titles (the root contributes its empty title), or ``None`` if the href is not in the tree
    """
    titles = _find_titles(node, href)
    if titles is None:
        return None
    return titles[:-1]


def collection_path(node, href, separator):
    """
    Path of a single collection, as in :func:`flatten_with_path`, or ``None`` if it is not in the tree
    """
    titles = _find_titles(node, href)
    if titles is None:
        return None
    return separator.join(t for t in titles if t)


def _find_titles(node, href):
    """
    Depth first search for ``href``. Returns the titles of the nodes on the way down, followed by the collection title.
    """
    for leaf in node.leaves:
        if leaf.href == href:
            return [node.title, leaf.title]
    for child in node.children:
        titles = _find_titles(child, href)
        if titles is not None:
            return [node.title] + titles
    return None
