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
Checks what a SWORD repository offers to a user::

    sword-exporter-check https://demo.dspace.org/swordv2/servicedocument --user someone@example.org

Prints the collections with their hierarchy and can replace the metadata of
an existing entry to check write access.
"""

import argparse
import getpass
import sys

from exporter import settings
from exporter.sword.client import SwordClientError
from exporter.sword.hierarchy import flatten_collections
from exporter.sword.hierarchy import flatten_with_path
from exporter.sword.protocol import CommonSwordRepository


def parse_metadata(values):
    """
    Turns ``["title=Foo", "creator=A", "creator=B"]`` into ``{'title': ['Foo'], 'creator': ['A', 'B']}``
    """
    metadata = {}
    for value in values:
        term, sep, text = value.partition('=')
        if not sep or not term:
            raise argparse.ArgumentTypeError('Metadata must look like term=value, got {}'.format(value))
        metadata.setdefault(term.strip(), []).append(text)
    return metadata


def has_failed_branches(node):
    return node.failed or any(has_failed_branches(child) for child in node.children)


def get_parser():
    parser = argparse.ArgumentParser(description='Check the SWORD v2 interface of a repository.')
    parser.add_argument('service_document_url', help='URL of the service document')
    parser.add_argument('--user', help='login of the user, usually an e-mail address')
    parser.add_argument('--password', help='password of the user, asked for if not given')
    parser.add_argument('--on-behalf-of', dest='on_behalf_of', help='export in the name of this user, --user being an admin')
    parser.add_argument('--api-token', dest='api_token', help='API token, e.g. for Dataverse, instead of user and password')
    parser.add_argument('--separator', default=settings.HIERARCHY_SEPARATOR, help='separator of the hierarchy levels')
    parser.add_argument('--replace-entry', dest='replace_entry', help='edit URL of an entry whose metadata are replaced')
    parser.add_argument('--metadata', action='append', default=[], help='term=value, can be repeated')
    parser.add_argument('--log-level', dest='log_level', default=None, help='level of the exporter logger')
    return parser


def get_repository(args):
    if args.api_token:
        return CommonSwordRepository.with_token(args.service_document_url, args.api_token)
    if not args.user:
        raise SystemExit('Either --user or --api-token is needed')
    password = args.password
    if password is None:
        password = getpass.getpass('Password for "{}": '.format(args.user))
    if args.on_behalf_of:
        return CommonSwordRepository.on_behalf_of(args.service_document_url, args.user, password, args.on_behalf_of)
    return CommonSwordRepository.for_user(args.service_document_url, args.user, password)


def main(argv=None):
    parser = get_parser()
    args = parser.parse_args(argv)
    try:
        metadata = parse_metadata(args.metadata)
    except argparse.ArgumentTypeError as e:
        parser.error(str(e))
    settings.configure_logging(args.log_level)

    repository = get_repository(args)

    service_document = repository.get_service_document(args.service_document_url)
    print('== Is SWORD interface accessible: {}'.format(service_document is not None))
    if service_document is None:
        print('Error! SWORD API is not accessible, stop testing...')
        return 1

    print('== Is service document with subservices: {}'.format(
        repository.is_service_document_with_subservices(service_document)))

    print('== User available collections:')
    hierarchy = repository.create_hierarchy(service_document)
    paths = flatten_with_path(hierarchy, args.separator)
    for i, (url, title) in enumerate(sorted(flatten_collections(hierarchy).items()), 1):
        print('{}: {}'.format(i, title))
        print('-- URL:  {}'.format(url))
        print('-- hierarchy:  {}'.format(paths.get(url)))
    if has_failed_branches(hierarchy):
        print('Warning: some services could not be fetched, the list is incomplete')

    if args.replace_entry:
        print('== Replace metadata for the entry: {}'.format(args.replace_entry))
        try:
            repository.replace_metadata_entry(args.replace_entry, metadata, True)
            print('Replacement result: successful!')
        except SwordClientError as e:
            print('Replacement result: not successful! Exception: {}'.format(e))
    return 0


if __name__ == '__main__':
    sys.exit(main())
