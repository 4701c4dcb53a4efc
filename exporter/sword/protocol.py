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

import logging
import mimetypes
import os

from enum import Enum

from lxml import etree

from exporter import settings
from exporter.protocol import ExportError
from exporter.protocol import ExportRepository
from exporter.sword.client import MIME_FORMAT_ATOM_XML
from exporter.sword.client import MIME_FORMAT_OCTET_STREAM
from exporter.sword.client import MIME_FORMAT_ZIP
from exporter.sword.client import NSMAP
from exporter.sword.client import AuthCredentials
from exporter.sword.client import Deposit
from exporter.sword.client import ProtocolViolationError
from exporter.sword.client import SWORDClient
from exporter.sword.client import SwordClientError
from exporter.sword.client import SwordError
from exporter.sword.client import UriRegistry
from exporter.sword.hierarchy import HierarchyResolver
from exporter.sword.hierarchy import flatten_collections
from exporter.sword.hierarchy import flatten_with_path
from exporter.sword.metadata import EntryPart
from exporter.utils import get_file_extension
from exporter.utils import get_package_format


logger = logging.getLogger('sword_exporter.' + __name__)


class SwordRequestType(Enum):
    DEPOSIT = 'DEPOSIT' # POST
    REPLACE = 'REPLACE' # PUT
    DELETE = 'DELETE' # reserved, not supported yet

    def __str__(self):
        return self.value


class SwordExporter(object):
    """
    General exporting methods for SWORD-based repositories (e.g. DSpace, Dataverse).

    The credentials are given once with the constructor and used implicitly by
    every request. To change them, create a new exporter.
    Repository specific exporters subclass this and implement the methods
    raising ``NotImplementedError``.
    """

    get_file_extension = staticmethod(get_file_extension)
    get_package_format = staticmethod(get_package_format)

    @staticmethod
    def create_auth_credentials(user_login, user_password):
        """
        Credentials of a normal user, without "on-behalf-of"
        """
        if user_login is None or user_password is None:
            raise TypeError('user_login and user_password must not be None')
        return AuthCredentials(user_login, user_password)

    @staticmethod
    def create_on_behalf_of_credentials(admin_user, admin_password, on_behalf_of_user):
        """
        Credentials of a privileged user, who exports in the name of another user.
        Only the login name of that user is needed.
        If both users are the same, the credentials are created without "on-behalf-of".
        """
        if admin_user is None or admin_password is None or on_behalf_of_user is None:
            raise TypeError('admin_user, admin_password and on_behalf_of_user must not be None')
        if admin_user == on_behalf_of_user:
            return SwordExporter.create_auth_credentials(on_behalf_of_user, admin_password)
        return AuthCredentials(admin_user, admin_password, on_behalf_of_user)

    @staticmethod
    def create_token_credentials(api_token):
        """
        Credentials from an API token, as used by Dataverse. The token is the login, the password stays empty.
        """
        if api_token is None:
            raise TypeError('api_token must not be None')
        return AuthCredentials(api_token, '')

    @staticmethod
    def is_service_document_with_subservices(service_document):
        """
        True if some collection of the service document links to a further service, e.g. a DSpace community
        """
        return any(c.sub_services for c in service_document.collections)

    @staticmethod
    def fetch_has_subservices(service_document_url, credentials, client=None):
        """
        Same as :meth:`is_service_document_with_subservices`, but fetches the service document first.
        Errors of the request are raised.
        """
        client = client or SWORDClient()
        service_document = client.get_service_document(service_document_url, credentials)
        return SwordExporter.is_service_document_with_subservices(service_document)

    def __init__(self, credentials, client=None):
        if credentials is None:
            raise TypeError('credentials must not be None')
        self.auth_credentials = credentials
        self.sword_client = client or SWORDClient()
        self._logs = ''

    def __repr__(self):
        return '<{} {!r}>'.format(self.__class__.__name__, self.auth_credentials)

    ### Service document and collections

    def get_service_document(self, service_document_url):
        """
        :returns: :class:`~exporter.sword.client.ServiceDocument` or ``None`` if it is not accessible with the current credentials
        """
        try:
            return self.sword_client.get_service_document(service_document_url, self.auth_credentials)
        except (SwordClientError, SwordError, ProtocolViolationError) as e:
            logger.error('Exception by accessing service document {}: {}: {}'.format(service_document_url, type(e).__name__, e))
            return None

    def is_sword_accessible(self, service_document_url):
        return self.get_service_document(service_document_url) is not None

    def fetch_content(self, url):
        """
        Raw content of a sub-service, same as ``curl -H "Accept: application/atom+xml" --user ...``
        """
        content = self.sword_client.get_content(
            url,
            MIME_FORMAT_ATOM_XML,
            UriRegistry.PACKAGE_SIMPLE_ZIP,
            self.auth_credentials
        )
        return content.content

    def get_hierarchy_resolver(self):
        return HierarchyResolver(self.fetch_content, logger)

    def create_hierarchy(self, service_document):
        """
        The tree of services and collections reachable from the service document.
        Sub-services are fetched with the current credentials.

        :returns: root :class:`~exporter.sword.hierarchy.HierarchyNode`
        """
        if service_document is None:
            raise TypeError('service_document must not be None')
        return self.get_hierarchy_resolver().resolve(service_document)

    def create_hierarchy_object(self, url):
        """
        The tree below a single sub-service.

        :returns: :class:`~exporter.sword.hierarchy.HierarchyNode` or ``None`` in case of error
        """
        if url is None:
            raise TypeError('url must not be None')
        return self.get_hierarchy_resolver().resolve_sub_service(url)

    def get_collections(self, service_document):
        """
        All collections available with the service document, including those inside sub-services.

        :returns: dict where key = collection URL, value = collection title
        """
        return flatten_collections(self.create_hierarchy(service_document))

    def get_service_collections(self, url):
        """
        All collections inside a sub-service (e.g. a DSpace community).

        :returns: dict where key = collection URL, value = collection title, or ``None`` in case of error
        """
        hierarchy = self.create_hierarchy_object(url)
        if hierarchy is None:
            return None
        return flatten_collections(hierarchy)

    def get_collections_with_hierarchy(self, service_document, separator=None):
        """
        All collections, with the titles of the services above them.

        :param separator: put between the titles, defaults to ``settings.HIERARCHY_SEPARATOR``
        :returns: dict where key = collection URL, value = e.g. ``"Community->Sub-community->Collection"``
        """
        if separator is None:
            separator = settings.HIERARCHY_SEPARATOR
        return flatten_with_path(self.create_hierarchy(service_document), separator)

    ### Export

    def export_element(self, export_url, request_type, mime_format, package_format,
                       file_path=None, metadata=None, in_progress=None):
        """
        Exports either a file or metadata, multipart is not supported.

        :param export_url: URL of a collection (from the service document) or edit URL of an entry
        :param request_type: :class:`SwordRequestType`
        :param mime_format: e.g. ``"application/atom+xml"`` or ``"application/zip"``
        :param package_format: ``UriRegistry.PACKAGE_SIMPLE_ZIP``, ``UriRegistry.PACKAGE_BINARY`` or ``None`` for metadata
        :param file_path: path to the file to export
        :param metadata: dict mapping metadata terms to lists of values
        :param in_progress: value of the "In-Progress" header, defaults to ``settings.DEFAULT_IN_PROGRESS``
        :returns: :class:`~exporter.sword.client.DepositReceipt` for deposits, else :class:`~exporter.sword.client.SwordResponse`.
            For replacements, only the status code is reliable.
        :raises ExportError: if not exactly one of file and metadata is given
        """
        if export_url is None or request_type is None:
            raise TypeError('export_url and request_type must not be None')
        if (file_path is None) == (metadata is None):
            raise ExportError('Exactly one of file and metadata must be given')
        if in_progress is None:
            in_progress = settings.DEFAULT_IN_PROGRESS

        deposit = Deposit(mime_type=mime_format, packaging=package_format, in_progress=in_progress)
        if metadata is not None:
            deposit.entry_part = EntryPart.from_metadata(metadata)

        f = None
        try:
            if file_path is not None:
                f = open(file_path, 'rb')
                deposit.file = f
                deposit.filename = os.path.basename(file_path)

            self.log('### {} request to {}'.format(request_type, export_url))
            if request_type == SwordRequestType.DEPOSIT:
                response = self.sword_client.deposit(export_url, deposit, self.auth_credentials)
            elif request_type == SwordRequestType.REPLACE:
                if deposit.entry_part is not None:
                    response = self.sword_client.replace(export_url, deposit, self.auth_credentials)
                else:
                    response = self.sword_client.replace_media(export_url, deposit, self.auth_credentials)
            else:
                logger.error('Wrong SWORD request type: {}: Supported types are: {}, {}'.format(
                    request_type, SwordRequestType.DEPOSIT, SwordRequestType.REPLACE))
                raise ValueError('Wrong SWORD request type: {}'.format(request_type))
            self.log_response(response)
            return response
        finally:
            if f is not None:
                f.close()

    def replace_metadata_entry(self, entry_url, metadata, in_progress=None):
        """
        Replaces the metadata of an existing entry.

        :param entry_url: edit URL of the entry, contains "/swordv2/edit/"
        :param metadata: dict mapping metadata terms to lists of values
        :raises SwordClientError: in case of any error
        """
        try:
            self.export_element(entry_url, SwordRequestType.REPLACE, MIME_FORMAT_ATOM_XML, None,
                                metadata=metadata, in_progress=in_progress)
        except (OSError, ProtocolViolationError, SwordError) as e:
            raise SwordClientError('Exception by replacing of metadata via metadata dict: {}: {}'.format(
                type(e).__name__, e)) from e

    def get_collection_entries(self, collection_url):
        """
        Entries of a collection, e.g. items for DSpace or datasets for Dataverse.

        :param collection_url: collection URL, contains "/swordv2/collection/"
        :returns: dict where key = entry URL (contains "/swordv2/edit/"), value = entry title, or ``None`` in case of error
        """
        raise NotImplementedError(
            'get_collection_entries should be implemented in the SwordExporter instance.')

    def create_entry_with_metadata(self, collection_url, metadata, in_progress=None):
        """
        Exports metadata only to a collection.

        :returns: URL of the new entry, contains "/swordv2/edit/".
            It can be used as it is by :meth:`replace_metadata_entry`.
            For Dataverse, replace "/swordv2/edit/" by "/swordv2/edit-media/" to add files.
        :raises SwordClientError: in case of any error
        """
        raise NotImplementedError(
            'create_entry_with_metadata should be implemented in the SwordExporter instance.')

    def create_entry_with_metadata_and_file(self, collection_url, file_path, unpack_zip, metadata, in_progress=None):
        """
        Exports a file together with metadata to a collection.

        :param unpack_zip: if True, the repository unpacks zip files, else the zip file is stored as it is
        :returns: URL of the new entry, contains "/swordv2/edit/"
        :raises SwordClientError: in case of any error
        """
        raise NotImplementedError(
            'create_entry_with_metadata_and_file should be implemented in the SwordExporter instance.')

    ### Logging utilities
    # Keeps a transcript of the requests made by this exporter,
    # in addition to the module logger.

    @property
    def logs(self):
        return self._logs

    def log(self, line):
        """
        Logs a line in the exporter log.
        """
        logger.debug(line)
        self._logs += line+'\n'

    def log_response(self, response):
        self.log('Status code: {}'.format(response.status_code))
        if response.location:
            self.log('Location: {}'.format(response.location))


class CommonSwordRepository(SwordExporter, ExportRepository):
    """
    Exports to any SWORD v2 repository, using nothing but the SWORD profile.
    """

    def __init__(self, service_document_url, credentials, client=None):
        super().__init__(credentials, client)
        if service_document_url is None:
            raise TypeError('service_document_url must not be None')
        self.service_document_url = service_document_url

    @classmethod
    def for_user(cls, service_document_url, user_name, user_password, **kwargs):
        return cls(service_document_url, cls.create_auth_credentials(user_name, user_password), **kwargs)

    @classmethod
    def on_behalf_of(cls, service_document_url, admin_user, admin_password, standard_user, **kwargs):
        """
        Exports with the admin's login in the name of ``standard_user``
        """
        credentials = cls.create_on_behalf_of_credentials(admin_user, admin_password, standard_user)
        return cls(service_document_url, credentials, **kwargs)

    @classmethod
    def with_token(cls, service_document_url, api_token, **kwargs):
        return cls(service_document_url, cls.create_token_credentials(api_token), **kwargs)

    def get_collection_entries(self, collection_url):
        try:
            content = self.sword_client.get_content(collection_url, MIME_FORMAT_ATOM_XML, None, self.auth_credentials)
            feed = etree.fromstring(content.content)
        except (SwordClientError, SwordError) as e:
            logger.error('Exception by getting entries of {}: {}: {}'.format(collection_url, type(e).__name__, e))
            return None
        except etree.XMLSyntaxError as e:
            logger.error('Invalid XML from {}: {}'.format(collection_url, e))
            return None

        entries = {}
        for entry in feed.findall('atom:entry', namespaces=NSMAP):
            url = None
            for link in entry.findall('atom:link', namespaces=NSMAP):
                if link.get('rel') == 'edit':
                    url = link.get('href')
                    break
            if url is None:
                url = entry.findtext('atom:id', namespaces=NSMAP)
            if url:
                entries[url.strip()] = (entry.findtext('atom:title', namespaces=NSMAP) or '').strip()
        return entries

    def create_entry_with_metadata(self, collection_url, metadata, in_progress=None):
        try:
            receipt = self.export_element(collection_url, SwordRequestType.DEPOSIT, MIME_FORMAT_ATOM_XML, None,
                                          metadata=metadata, in_progress=in_progress)
        except (ProtocolViolationError, SwordError) as e:
            raise SwordClientError('Exception by exporting metadata: {}: {}'.format(type(e).__name__, e)) from e
        return self._get_entry_url(receipt)

    def create_entry_with_metadata_and_file(self, collection_url, file_path, unpack_zip, metadata, in_progress=None):
        """
        Deposits the file first and keeps the entry in progress, then sets the metadata on the new entry.
        """
        file_name = os.path.basename(file_path)
        package_format = self.get_package_format(file_name, unpack_zip)
        if get_file_extension(file_name).lower() == 'zip':
            mime_format = MIME_FORMAT_ZIP
        else:
            mime_format = mimetypes.guess_type(file_name)[0] or MIME_FORMAT_OCTET_STREAM

        try:
            receipt = self.export_element(collection_url, SwordRequestType.DEPOSIT, mime_format, package_format,
                                          file_path=file_path, in_progress=True)
        except (OSError, ProtocolViolationError, SwordError) as e:
            raise SwordClientError('Exception by exporting file: {}: {}'.format(type(e).__name__, e)) from e

        entry_url = self._get_entry_url(receipt)
        self.replace_metadata_entry(entry_url, metadata, in_progress)
        return entry_url

    @staticmethod
    def _get_entry_url(receipt):
        entry_url = receipt.edit_iri or receipt.location
        if not entry_url:
            raise SwordClientError('The deposit receipt contains no URL of the new entry')
        return entry_url

    ### ExportRepository

    def is_repository_accessible(self):
        try:
            self.sword_client.get_status_code(self.service_document_url)
        except SwordClientError as e:
            logger.error('Repository {} is not accessible: {}'.format(self.service_document_url, e))
            return False
        return True

    def has_registered_credentials(self):
        try:
            status_code = self.sword_client.get_status_code(self.service_document_url, self.auth_credentials)
        except SwordClientError as e:
            logger.error('Exception by checking credentials for {}: {}'.format(self.service_document_url, e))
            return False
        return status_code == 200

    def has_assigned_credentials(self):
        return bool(self.get_available_collections())

    def get_available_collections(self):
        service_document = self.get_service_document(self.service_document_url)
        if service_document is None:
            return None
        return self.get_collections(service_document)

    def export_new_entry_with_metadata(self, collection_url, metadata):
        try:
            return self.create_entry_with_metadata(collection_url, metadata)
        except SwordClientError as e:
            logger.error('Exception by exporting metadata to {}: {}'.format(collection_url, e))
            return None

    def export_new_entry_with_metadata_and_file(self, collection_url, metadata, file_path, unpack_file_if_archive):
        try:
            return self.create_entry_with_metadata_and_file(collection_url, file_path, unpack_file_if_archive, metadata)
        except SwordClientError as e:
            logger.error('Exception by exporting file {} to {}: {}'.format(file_path, collection_url, e))
            return None
