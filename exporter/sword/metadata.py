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
Atom entries carrying Dublin Core metadata, as sent by SWORD deposits.
"""

from lxml import etree

from exporter.sword.client import ATOM
from exporter.sword.client import ATOM_NAMESPACE
from exporter.sword.client import DC
from exporter.sword.client import DC_NAMESPACE


def addChild(elem, childName, text=None):
    """
    Utility function: create a node, append it and return it
    """
    node = etree.Element(childName)
    elem.append(node)
    if text is not None:
        node.text = text
    return node


class EntryPart(object):
    """
    The metadata part of a deposit. Every value becomes one ``dcterms`` element,
    e.g. ``add_dublin_core('creator', 'Doe, Jane')`` gives ``<dcterms:creator>Doe, Jane</dcterms:creator>``.
    Terms unknown to the repository are usually ignored by it.
    """

    def __init__(self):
        self.dublin_core = []

    @classmethod
    def from_metadata(cls, metadata):
        """
        :param metadata: dict mapping a term to a list of values
        """
        entry_part = cls()
        for term, values in metadata.items():
            for value in values:
                entry_part.add_dublin_core(term, value)
        return entry_part

    def add_dublin_core(self, term, value):
        self.dublin_core.append((term, value))

    def render(self):
        nsmap = {None: ATOM_NAMESPACE, 'dcterms': DC_NAMESPACE}
        entry = etree.Element(ATOM + 'entry', nsmap=nsmap)
        for term, value in self.dublin_core:
            addChild(entry, DC + term, value)
        return entry

    def to_string(self, pretty=False, xml_declaration=True):
        """
        The entry as bytes, ready to be sent
        """
        return etree.tostring(self.render(),
                              pretty_print=pretty,
                              encoding='UTF-8',
                              xml_declaration=xml_declaration)
