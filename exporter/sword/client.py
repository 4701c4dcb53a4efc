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
The few SWORD v2 requests the exporter needs, made with :mod:`requests`.

This is no complete SWORD client: it fetches service documents and
arbitrary content, deposits new entries and replaces the metadata or
media of existing ones. Responses are parsed with :mod:`lxml`.
"""

import hashlib
import logging

from urllib.parse import quote

import requests

from lxml import etree

from exporter import settings


logger = logging.getLogger('sword_exporter.' + __name__)


# Namespaces
APP_NAMESPACE = "http://www.w3.org/2007/app"
ATOM_NAMESPACE = "http://www.w3.org/2005/Atom"
DC_NAMESPACE = "http://purl.org/dc/terms/"
SWORD_NAMESPACE = "http://purl.org/net/sword/terms/"

APP = "{%s}" % APP_NAMESPACE
ATOM = "{%s}" % ATOM_NAMESPACE
DC = "{%s}" % DC_NAMESPACE
SWORD = "{%s}" % SWORD_NAMESPACE

NSMAP = {
    'app' : APP_NAMESPACE,
    'atom' : ATOM_NAMESPACE,
    'dcterms' : DC_NAMESPACE,
    'sword' : SWORD_NAMESPACE,
}

MIME_FORMAT_ATOM_XML = "application/atom+xml"
MIME_FORMAT_ATOM_ENTRY = "application/atom+xml;type=entry"
MIME_FORMAT_ZIP = "application/zip"
MIME_FORMAT_OCTET_STREAM = "application/octet-stream"


class UriRegistry(object):
    """
    Packaging identifiers of the SWORD v2 profile
    """
    PACKAGE_SIMPLE_ZIP = "http://purl.org/net/sword/package/SimpleZip"
    PACKAGE_BINARY = "http://purl.org/net/sword/package/Binary"


class SwordClientError(Exception):
    """
    Raised when a request could not be made at all,
    e.g. connection errors or timeouts.
    """
    pass


class SwordError(Exception):
    """
    Raised when the server answers with an unexpected status code.
    """

    def __init__(self, status_code, body='', message=None):
        if message is None:
            message = 'Unexpected status code {}'.format(status_code)
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ProtocolViolationError(Exception):
    """
    Raised when the server answers something that SWORD does not allow,
    e.g. a service document without ``app:service`` root.
    """
    pass


class AuthCredentials(object):
    """
    Login for the SWORD server. With ``on_behalf_of`` set, the deposit is
    made by ``username`` in the name of another user (mediated deposit).
    """

    def __init__(self, username, password, on_behalf_of=None):
        self.username = username
        self.password = password
        self.on_behalf_of = on_behalf_of

    def __repr__(self):
        return '<AuthCredentials {}{}>'.format(
            self.username,
            ' on behalf of {}'.format(self.on_behalf_of) if self.on_behalf_of else ''
        )

    @property
    def auth(self):
        """
        Basic auth as expected by requests
        """
        return (self.username, self.password)

    @property
    def headers(self):
        if self.on_behalf_of:
            return {'On-Behalf-Of': self.on_behalf_of}
        return {}


class SWORDCollection(object):
    """
    A collection as listed in a service document. If ``sub_services`` is not empty, the
    entry is no real collection but a link to a further service document (e.g. a DSpace community).
    """

    def __init__(self, title='', href='', accept=None, accept_packaging=None, sub_services=None):
        self.title = title
        self.href = href
        self.accept = accept or []
        self.accept_packaging = accept_packaging or []
        self.sub_services = sub_services or []

    def __repr__(self):
        return '<SWORDCollection {}>'.format(self.href)


class SWORDWorkspace(object):

    def __init__(self, title='', collections=None):
        self.title = title
        self.collections = collections or []


class ServiceDocument(object):

    def __init__(self, version=None, max_upload_size=None, workspaces=None):
        self.version = version
        self.max_upload_size = max_upload_size
        self.workspaces = workspaces or []

    @property
    def collections(self):
        """
        All collections of all workspaces, in document order
        """
        return [c for w in self.workspaces for c in w.collections]


class Content(object):
    """
    Body of a GET request on some SWORD resource
    """

    def __init__(self, content, content_type=None, status_code=200, encoding='utf-8'):
        self.content = content
        self.content_type = content_type
        self.status_code = status_code
        self.encoding = encoding

    @property
    def text(self):
        return self.content.decode(self.encoding or 'utf-8', errors='replace')


class SwordResponse(object):

    def __init__(self, status_code, location=None, body=''):
        self.status_code = status_code
        self.location = location
        self.body = body


class DepositReceipt(SwordResponse):
    """
    Response to a deposit. The links are taken from the Atom entry of the
    receipt. Some servers send an empty receipt, then only ``location`` is set.
    """

    def __init__(self, status_code, location=None, body=''):
        super().__init__(status_code, location, body)
        self.edit_iri = None
        self.edit_media_iri = None
        self.splash_url = None
        if body:
            self._parse_links(body)

    def _parse_links(self, body):
        try:
            entry = etree.fromstring(body.encode('utf-8'))
        except etree.XMLSyntaxError:
            logger.warning('Deposit receipt from {} is not valid XML'.format(self.location))
            return
        for link in entry.findall('atom:link', namespaces=NSMAP):
            rel = link.get('rel')
            if rel == 'edit' and self.edit_iri is None:
                self.edit_iri = link.get('href')
            elif rel == 'edit-media' and self.edit_media_iri is None:
                self.edit_media_iri = link.get('href')
            elif rel == 'alternate' and self.splash_url is None:
                self.splash_url = link.get('href')


class Deposit(object):
    """
    Everything that is sent with one deposit or replace request.
    Either ``entry_part`` (metadata) or ``file`` is used, multipart is not supported.
    """

    def __init__(self, file=None, filename=None, mime_type=None, packaging=None,
                 in_progress=False, entry_part=None):
        self.file = file
        self.filename = filename
        self.mime_type = mime_type
        self.packaging = packaging
        self.in_progress = in_progress
        self.entry_part = entry_part

    @property
    def md5(self):
        """
        Hex MD5 of the file. The file is rewound afterwards.
        """
        if self.file is None:
            return None
        checksum = hashlib.md5()
        for chunk in iter(lambda: self.file.read(8192), b''):
            checksum.update(chunk)
        self.file.seek(0)
        return checksum.hexdigest()


def _text(elem, path):
    value = elem.findtext(path, namespaces=NSMAP)
    if value is not None:
        value = value.strip()
    return value


def parse_service_document(content):
    """
    Builds a :class:`ServiceDocument` from the raw XML.

    :param content: bytes of the response
    :raises ProtocolViolationError: if this is not a SWORD service document
    """
    try:
        root = etree.fromstring(content)
    except etree.XMLSyntaxError as e:
        raise ProtocolViolationError('The service document is not valid XML: {}'.format(e))

    if root.tag != APP + 'service':
        raise ProtocolViolationError('The document sent back from the server is not an xml starting with service')

    max_upload_size = _text(root, 'sword:maxUploadSize')
    if max_upload_size is not None:
        try:
            max_upload_size = int(max_upload_size)
        except ValueError:
            raise ProtocolViolationError('maxUploadSize did not contain an integer')

    workspaces = []
    for w in root.findall('app:workspace', namespaces=NSMAP):
        collections = []
        for c in w.findall('app:collection', namespaces=NSMAP):
            collections.append(SWORDCollection(
                title=_text(c, 'atom:title') or '',
                href=c.get('href', ''),
                accept=[(a.text or '').strip() for a in c.findall('app:accept', namespaces=NSMAP)],
                accept_packaging=[(p.text or '').strip() for p in c.findall('sword:acceptPackaging', namespaces=NSMAP)],
                sub_services=[s.text.strip() for s in c.findall('sword:service', namespaces=NSMAP) if s.text and s.text.strip()],
            ))
        workspaces.append(SWORDWorkspace(title=_text(w, 'atom:title') or '', collections=collections))

    return ServiceDocument(
        version=_text(root, 'sword:version'),
        max_upload_size=max_upload_size,
        workspaces=workspaces,
    )


def content_disposition(filename):
    """
    ``Content-Disposition`` header of a file deposit. Names that are not ASCII
    are sent as ``filename*`` (RFC 6266), with an ASCII ``filename`` for older servers.
    """
    if not filename:
        return 'attachment'
    try:
        filename.encode('ascii')
    except UnicodeEncodeError:
        fallback = filename.encode('ascii', 'replace').decode('ascii').replace('?', '_')
        return "attachment; filename={}; filename*=UTF-8''{}".format(fallback, quote(filename))
    return 'attachment; filename={}'.format(filename)


class SWORDClient(object):
    """
    Makes the SWORD requests. The credentials are passed with every call,
    so one client can be shared by several exporters.
    """

    def __init__(self, session=None, timeout=None):
        if session is None:
            session = requests.Session()
            session.headers['User-Agent'] = settings.USER_AGENT
        self.session = session
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT

    def _request(self, method, url, credentials, expected_status_codes=None, headers=None, data=None):
        """
        Makes the request and checks the status code

        :param credentials: :class:`AuthCredentials` or ``None`` for an anonymous request
        :param expected_status_codes: ``None`` accepts any status code
        :raises SwordClientError: if no response was received or the request could not be encoded
        :raises SwordError: if the status code is not in ``expected_status_codes``
        """
        all_headers = dict(credentials.headers) if credentials is not None else {}
        all_headers.update(headers or {})
        logger.debug('{} {}'.format(method, url))
        try:
            r = self.session.request(
                method,
                url,
                auth=credentials.auth if credentials is not None else None,
                headers=all_headers,
                data=data,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise SwordClientError('{} request to {} failed: {}'.format(method, url, e)) from e
        except UnicodeEncodeError as e:
            # http.client sends headers as latin-1
            raise SwordClientError('{} request to {} could not be encoded: {}'.format(method, url, e)) from e

        if expected_status_codes is not None and r.status_code not in expected_status_codes:
            logger.info('{} {} returned status code {}'.format(method, url, r.status_code))
            raise SwordError(
                r.status_code,
                r.text,
                '{} request to {} returned status code {}'.format(method, url, r.status_code)
            )
        return r

    def get_status_code(self, url, credentials=None):
        """
        Status code of a GET on ``url``, whatever it is. Without credentials, the request is anonymous.

        :raises SwordClientError: if the server does not answer
        """
        return self._request('GET', url, credentials).status_code

    def get_service_document(self, url, credentials):
        r = self._request('GET', url, credentials, (200,))
        return parse_service_document(r.content)

    def get_content(self, url, mime_type, packaging, credentials):
        """
        GET on some resource with content negotiation
        """
        headers = {
            'Accept' : mime_type,
        }
        if packaging:
            headers['Accept-Packaging'] = packaging
        r = self._request('GET', url, credentials, (200,), headers=headers)
        return Content(r.content, r.headers.get('Content-Type'), r.status_code, r.encoding)

    def _deposit_headers(self, deposit):
        headers = {
            'In-Progress' : 'true' if deposit.in_progress else 'false',
        }
        if deposit.entry_part is not None:
            headers['Content-Type'] = MIME_FORMAT_ATOM_ENTRY
        else:
            headers['Content-Type'] = deposit.mime_type or MIME_FORMAT_OCTET_STREAM
            # Without filename, DSpace rejects the deposit
            headers['Content-Disposition'] = content_disposition(deposit.filename)
            headers['Content-MD5'] = deposit.md5
            if deposit.packaging:
                headers['Packaging'] = deposit.packaging
        return headers

    @staticmethod
    def _deposit_body(deposit):
        if deposit.entry_part is not None:
            return deposit.entry_part.to_string()
        return deposit.file

    def deposit(self, col_iri, deposit, credentials):
        """
        Creates a new entry in the collection

        :returns: :class:`DepositReceipt`
        """
        if deposit.entry_part is not None and deposit.file is not None:
            raise ValueError('Multipart deposits are not supported')
        r = self._request(
            'POST',
            col_iri,
            credentials,
            (200, 201, 202),
            headers=self._deposit_headers(deposit),
            data=self._deposit_body(deposit),
        )
        return DepositReceipt(r.status_code, r.headers.get('Location'), r.text)

    def replace(self, edit_iri, deposit, credentials):
        """
        Replaces the metadata of an entry with ``deposit.entry_part``
        """
        if deposit.entry_part is None:
            raise ValueError('Nothing to replace, the deposit has no entry part')
        r = self._request(
            'PUT',
            edit_iri,
            credentials,
            (200, 204),
            headers=self._deposit_headers(deposit),
            data=self._deposit_body(deposit),
        )
        return SwordResponse(r.status_code, r.headers.get('Location'), r.text)

    def replace_media(self, edit_media_iri, deposit, credentials):
        """
        Replaces the files of an entry with ``deposit.file``
        """
        if deposit.file is None:
            raise ValueError('Nothing to replace, the deposit has no file')
        r = self._request(
            'PUT',
            edit_media_iri,
            credentials,
            (200, 204),
            headers=self._deposit_headers(deposit),
            data=self._deposit_body(deposit),
        )
        return SwordResponse(r.status_code, r.headers.get('Location'), r.text)
