import pytest
import responses

from requests.exceptions import ConnectionError

from exporter.conftest import SERVICE_DOCUMENT_URL
from exporter.conftest import sub_service_url
from exporter.protocol import ExportError
from exporter.sword.client import MIME_FORMAT_ATOM_XML
from exporter.sword.client import AuthCredentials
from exporter.sword.client import DepositReceipt
from exporter.sword.client import SWORDClient
from exporter.sword.client import SwordClientError
from exporter.sword.client import UriRegistry
from exporter.sword.protocol import CommonSwordRepository
from exporter.sword.protocol import SwordExporter
from exporter.sword.protocol import SwordRequestType


COLLECTION_URL = 'https://dspace.example.org/swordv2/collection/123456789/2'
EDIT_URL = 'https://dspace.example.org/swordv2/edit/8128'

NESTED_COLLECTIONS = {
    'https://dspace.example.org/swordv2/collection/top': 'Top collection',
    'https://dspace.example.org/swordv2/collection/in-a': 'Collection in A',
    'http://x/42': 'C',
    'https://dspace.example.org/swordv2/collection/sibling-collection': 'Sibling collection',
    'https://dspace.example.org/swordv2/collection/deep': 'Deep',
}

METADATA = {
    'title': ['Lesebibliothek für Frauenzimmer'],
    'creator': ['Ridcully, Mustrum'],
}


class TestCredentials:

    def test_auth_credentials(self):
        c = SwordExporter.create_auth_credentials('vetinari', 'psst')
        assert c.auth == ('vetinari', 'psst')
        assert c.on_behalf_of is None

    @pytest.mark.parametrize('login, password', [(None, 'psst'), ('vetinari', None)])
    def test_auth_credentials_none(self, login, password):
        with pytest.raises(TypeError):
            SwordExporter.create_auth_credentials(login, password)

    def test_on_behalf_of_credentials(self):
        c = SwordExporter.create_on_behalf_of_credentials('admin', 'psst', 'vetinari')
        assert c.auth == ('admin', 'psst')
        assert c.on_behalf_of == 'vetinari'

    def test_on_behalf_of_same_user(self):
        c = SwordExporter.create_on_behalf_of_credentials('vetinari', 'psst', 'vetinari')
        assert c.on_behalf_of is None
        assert c.auth == ('vetinari', 'psst')

    def test_on_behalf_of_credentials_none(self):
        with pytest.raises(TypeError):
            SwordExporter.create_on_behalf_of_credentials('admin', 'psst', None)

    def test_token_credentials(self):
        c = SwordExporter.create_token_credentials('0123-abcd')
        assert c.auth == ('0123-abcd', '')

    def test_token_credentials_none(self):
        with pytest.raises(TypeError):
            SwordExporter.create_token_credentials(None)

    def test_exporter_without_credentials(self):
        with pytest.raises(TypeError):
            SwordExporter(None)


class TestServiceDocument:

    def test_get_service_document(self, common_repository, mocked_responses, load_test_data):
        mocked_responses.add(responses.GET, SERVICE_DOCUMENT_URL, body=load_test_data('servicedocument_flat.xml'))
        sd = common_repository.get_service_document(SERVICE_DOCUMENT_URL)
        assert sd.workspaces[0].title == 'DSpace at Unseen University'
        assert common_repository.is_sword_accessible(SERVICE_DOCUMENT_URL)

    def test_unauthorized(self, common_repository, mocked_responses, caplog):
        mocked_responses.add(responses.GET, SERVICE_DOCUMENT_URL, status=401)
        assert common_repository.get_service_document(SERVICE_DOCUMENT_URL) is None
        assert not common_repository.is_sword_accessible(SERVICE_DOCUMENT_URL)
        record = caplog.records[-1]
        assert record.name == 'sword_exporter.exporter.sword.protocol'
        assert record.levelname == 'ERROR'

    def test_no_service_document(self, common_repository, mocked_responses):
        mocked_responses.add(responses.GET, SERVICE_DOCUMENT_URL, body=b'<html><body>Login</body></html>')
        assert common_repository.get_service_document(SERVICE_DOCUMENT_URL) is None

    def test_subservices(self, flat_service_document, nested_service_document):
        assert not SwordExporter.is_service_document_with_subservices(flat_service_document)
        assert SwordExporter.is_service_document_with_subservices(nested_service_document)

    def test_fetch_has_subservices(self, credentials, nested_repository):
        assert SwordExporter.fetch_has_subservices(SERVICE_DOCUMENT_URL, credentials)
        assert SwordExporter.fetch_has_subservices(SERVICE_DOCUMENT_URL, credentials, SWORDClient())

    def test_fetch_content(self, common_repository, mocked_responses):
        mocked_responses.add(responses.GET, sub_service_url('A'), body=b'<service/>')
        assert common_repository.fetch_content(sub_service_url('A')) == b'<service/>'
        headers = mocked_responses.calls[0].request.headers
        assert headers['Accept'] == MIME_FORMAT_ATOM_XML
        assert headers['Accept-Packaging'] == UriRegistry.PACKAGE_SIMPLE_ZIP


class TestCollections:

    def test_flat(self, common_repository, flat_service_document):
        assert common_repository.get_collections(flat_service_document) == {
            COLLECTION_URL: 'Theses',
            'https://dspace.example.org/swordv2/collection/123456789/3': 'Research data',
        }

    def test_nested(self, common_repository, nested_service_document, nested_repository):
        assert common_repository.get_collections(nested_service_document) == NESTED_COLLECTIONS

    def test_with_hierarchy(self, common_repository, nested_service_document, nested_repository):
        assert common_repository.get_collections_with_hierarchy(nested_service_document) == {
            'https://dspace.example.org/swordv2/collection/top': 'Top collection',
            'https://dspace.example.org/swordv2/collection/in-a': 'A->Collection in A',
            'http://x/42': 'A->B->C',
            'https://dspace.example.org/swordv2/collection/sibling-collection': 'Sibling->Sibling collection',
            'https://dspace.example.org/swordv2/collection/deep': 'Sibling->Untitled community->Deep',
        }

    def test_with_hierarchy_separator(self, common_repository, nested_service_document, nested_repository):
        paths = common_repository.get_collections_with_hierarchy(nested_service_document, ' / ')
        assert paths['http://x/42'] == 'A / B / C'

    def test_with_hierarchy_setting(self, common_repository, nested_service_document, nested_repository, monkeypatch):
        monkeypatch.setattr('exporter.settings.HIERARCHY_SEPARATOR', ' > ')
        paths = common_repository.get_collections_with_hierarchy(nested_service_document)
        assert paths['http://x/42'] == 'A > B > C'

    def test_failed_branch_is_logged(self, common_repository, nested_service_document, nested_repository, caplog):
        hierarchy = common_repository.create_hierarchy(nested_service_document)
        broken = hierarchy.children[1]
        assert broken.failed
        assert broken.locator == sub_service_url('broken')
        errors = [r for r in caplog.records if r.levelname == 'ERROR']
        assert len(errors) == 1
        assert sub_service_url('broken') in errors[0].getMessage()

    def test_create_hierarchy_none(self, common_repository):
        with pytest.raises(TypeError):
            common_repository.create_hierarchy(None)

    def test_service_collections(self, common_repository, nested_repository):
        assert common_repository.get_service_collections(sub_service_url('A')) == {
            'https://dspace.example.org/swordv2/collection/in-a': 'Collection in A',
            'http://x/42': 'C',
        }

    def test_service_collections_failed(self, common_repository, nested_repository):
        assert common_repository.get_service_collections(sub_service_url('broken')) is None

    def test_create_hierarchy_object(self, common_repository, nested_repository):
        node = common_repository.create_hierarchy_object(sub_service_url('B'))
        assert node.title == 'Workspace of B'
        assert node.locator == sub_service_url('B')

    def test_available_collections(self, common_repository, nested_repository):
        assert common_repository.get_available_collections() == NESTED_COLLECTIONS

    def test_available_collections_inaccessible(self, common_repository, mocked_responses):
        mocked_responses.add(responses.GET, SERVICE_DOCUMENT_URL, status=403)
        assert common_repository.get_available_collections() is None


class TestExportElement:

    def test_neither_file_nor_metadata(self, common_repository):
        with pytest.raises(ExportError):
            common_repository.export_element(COLLECTION_URL, SwordRequestType.DEPOSIT, MIME_FORMAT_ATOM_XML, None)

    def test_file_and_metadata(self, common_repository, tmp_path):
        path = tmp_path / 'spam.txt'
        path.write_bytes(b'spam')
        with pytest.raises(ExportError):
            common_repository.export_element(COLLECTION_URL, SwordRequestType.DEPOSIT, MIME_FORMAT_ATOM_XML, None,
                                             file_path=str(path), metadata=METADATA)

    def test_no_url(self, common_repository):
        with pytest.raises(TypeError):
            common_repository.export_element(None, SwordRequestType.DEPOSIT, MIME_FORMAT_ATOM_XML, None, metadata=METADATA)

    def test_delete_not_supported(self, common_repository, caplog):
        with pytest.raises(ValueError):
            common_repository.export_element(EDIT_URL, SwordRequestType.DELETE, MIME_FORMAT_ATOM_XML, None, metadata=METADATA)
        assert caplog.records[-1].levelname == 'ERROR'

    def test_deposit_metadata(self, common_repository, mocked_responses, load_test_data):
        mocked_responses.add(responses.POST, COLLECTION_URL, status=201,
                             body=load_test_data('deposit_receipt.xml'), headers={'Location': EDIT_URL})
        receipt = common_repository.export_element(COLLECTION_URL, SwordRequestType.DEPOSIT, MIME_FORMAT_ATOM_XML, None,
                                                   metadata=METADATA)
        assert isinstance(receipt, DepositReceipt)
        assert receipt.edit_iri == EDIT_URL
        assert mocked_responses.calls[0].request.headers['In-Progress'] == 'false'
        assert common_repository.logs == (
            '### DEPOSIT request to {}\nStatus code: 201\nLocation: {}\n'.format(COLLECTION_URL, EDIT_URL))

    def test_replace_media(self, common_repository, mocked_responses, tmp_path):
        url = 'https://dspace.example.org/swordv2/edit-media/8128'
        mocked_responses.add(responses.PUT, url, status=204)
        path = tmp_path / 'article.pdf'
        path.write_bytes(b'%PDF-1.4')
        response = common_repository.export_element(url, SwordRequestType.REPLACE, 'application/pdf',
                                                    UriRegistry.PACKAGE_BINARY, file_path=str(path))
        assert response.status_code == 204
        headers = mocked_responses.calls[0].request.headers
        assert headers['Content-Disposition'] == 'attachment; filename=article.pdf'
        assert headers['Packaging'] == UriRegistry.PACKAGE_BINARY


class TestReplaceMetadataEntry:

    def test_replace(self, common_repository, mocked_responses):
        mocked_responses.add(responses.PUT, EDIT_URL, status=200)
        common_repository.replace_metadata_entry(EDIT_URL, METADATA, in_progress=True)
        request = mocked_responses.calls[0].request
        assert request.headers['In-Progress'] == 'true'
        assert b'Ridcully, Mustrum' in request.body

    def test_refused(self, common_repository, mocked_responses):
        mocked_responses.add(responses.PUT, EDIT_URL, status=403)
        with pytest.raises(SwordClientError):
            common_repository.replace_metadata_entry(EDIT_URL, METADATA)


class TestCommonSwordRepository:

    def test_constructors(self):
        assert CommonSwordRepository.for_user(SERVICE_DOCUMENT_URL, 'vetinari', 'psst').auth_credentials.auth == ('vetinari', 'psst')
        repo = CommonSwordRepository.on_behalf_of(SERVICE_DOCUMENT_URL, 'admin', 'psst', 'vetinari')
        assert repo.auth_credentials.on_behalf_of == 'vetinari'
        assert CommonSwordRepository.with_token(SERVICE_DOCUMENT_URL, 'abcd').auth_credentials.auth == ('abcd', '')

    def test_no_service_document_url(self, credentials):
        with pytest.raises(TypeError):
            CommonSwordRepository(None, credentials)

    def test_str(self, common_repository):
        assert str(CommonSwordRepository) == 'CommonSwordRepository'
        assert str(common_repository) == 'CommonSwordRepository'

    def test_assigned_credentials(self, common_repository, nested_repository):
        assert common_repository.has_assigned_credentials()

    def test_assigned_credentials_unauthorized(self, common_repository, mocked_responses):
        mocked_responses.add(responses.GET, SERVICE_DOCUMENT_URL, status=401)
        assert not common_repository.has_assigned_credentials()

    def test_assigned_credentials_no_collections(self, common_repository, mocked_responses):
        mocked_responses.add(responses.GET, SERVICE_DOCUMENT_URL,
                             body=b'<service xmlns="http://www.w3.org/2007/app"><workspace/></service>')
        assert not common_repository.has_assigned_credentials()

    def test_repository_accessible(self, common_repository, mocked_responses):
        mocked_responses.add(responses.GET, SERVICE_DOCUMENT_URL, status=401)
        assert common_repository.is_repository_accessible()
        assert 'Authorization' not in mocked_responses.calls[0].request.headers

    def test_repository_not_accessible(self, common_repository, mocked_responses, caplog):
        mocked_responses.add(responses.GET, SERVICE_DOCUMENT_URL, body=ConnectionError('refused'))
        assert not common_repository.is_repository_accessible()
        assert caplog.records[-1].levelname == 'ERROR'

    def test_registered_credentials(self, common_repository, nested_repository):
        assert common_repository.has_registered_credentials()
        assert nested_repository.calls[0].request.headers['Authorization'].startswith('Basic ')

    def test_unregistered_credentials(self, common_repository, mocked_responses):
        mocked_responses.add(responses.GET, SERVICE_DOCUMENT_URL, status=401)
        assert not common_repository.has_registered_credentials()

    def test_registered_credentials_no_answer(self, common_repository, mocked_responses):
        mocked_responses.add(responses.GET, SERVICE_DOCUMENT_URL, body=ConnectionError('refused'))
        assert not common_repository.has_registered_credentials()

    def test_non_ascii_file_name(self, common_repository, mocked_responses, load_test_data, tmp_path):
        mocked_responses.add(responses.POST, COLLECTION_URL, status=201, body=load_test_data('deposit_receipt.xml'))
        mocked_responses.add(responses.PUT, EDIT_URL, status=200)
        path = tmp_path / '论文.pdf'
        path.write_bytes(b'%PDF-1.4')

        assert common_repository.export_new_entry_with_metadata_and_file(COLLECTION_URL, METADATA, str(path), False) == EDIT_URL

        disposition = mocked_responses.calls[0].request.headers['Content-Disposition']
        disposition.encode('latin-1')
        assert disposition == "attachment; filename=__.pdf; filename*=UTF-8''%E8%AE%BA%E6%96%87.pdf"

    def test_collection_entries(self, common_repository, mocked_responses, load_test_data):
        mocked_responses.add(responses.GET, COLLECTION_URL, body=load_test_data('collection_feed.xml'))
        assert common_repository.get_collection_entries(COLLECTION_URL) == {
            EDIT_URL: 'Lesebibliothek für Frauenzimmer',
            'https://dspace.example.org/swordv2/edit/8129': 'God of the labyrinth',
        }

    def test_collection_entries_failed(self, common_repository, mocked_responses):
        mocked_responses.add(responses.GET, COLLECTION_URL, status=404)
        assert common_repository.get_collection_entries(COLLECTION_URL) is None

    def test_create_entry_with_metadata(self, common_repository, mocked_responses, load_test_data):
        mocked_responses.add(responses.POST, COLLECTION_URL, status=201, body=load_test_data('deposit_receipt.xml'))
        assert common_repository.create_entry_with_metadata(COLLECTION_URL, METADATA) == EDIT_URL

    def test_create_entry_location_only(self, common_repository, mocked_responses):
        mocked_responses.add(responses.POST, COLLECTION_URL, status=201, headers={'Location': EDIT_URL})
        assert common_repository.create_entry_with_metadata(COLLECTION_URL, METADATA) == EDIT_URL

    def test_create_entry_without_url(self, common_repository, mocked_responses):
        mocked_responses.add(responses.POST, COLLECTION_URL, status=202)
        with pytest.raises(SwordClientError):
            common_repository.create_entry_with_metadata(COLLECTION_URL, METADATA)

    def test_create_entry_refused(self, common_repository, mocked_responses):
        mocked_responses.add(responses.POST, COLLECTION_URL, status=400)
        with pytest.raises(SwordClientError):
            common_repository.create_entry_with_metadata(COLLECTION_URL, METADATA)

    def test_create_entry_with_metadata_and_file(self, common_repository, mocked_responses, load_test_data, tmp_path):
        mocked_responses.add(responses.POST, COLLECTION_URL, status=201, body=load_test_data('deposit_receipt.xml'))
        mocked_responses.add(responses.PUT, EDIT_URL, status=200)
        path = tmp_path / 'package.zip'
        path.write_bytes(b'PK spam')

        assert common_repository.create_entry_with_metadata_and_file(COLLECTION_URL, str(path), True, METADATA) == EDIT_URL

        deposit, replace = mocked_responses.calls
        assert deposit.request.headers['Content-Type'] == 'application/zip'
        assert deposit.request.headers['Packaging'] == UriRegistry.PACKAGE_SIMPLE_ZIP
        assert deposit.request.headers['In-Progress'] == 'true'
        assert replace.request.headers['Content-Type'] == 'application/atom+xml;type=entry'
        assert replace.request.headers['In-Progress'] == 'false'

    def test_zip_kept_packed(self, common_repository, mocked_responses, load_test_data, tmp_path):
        mocked_responses.add(responses.POST, COLLECTION_URL, status=201, body=load_test_data('deposit_receipt.xml'))
        mocked_responses.add(responses.PUT, EDIT_URL, status=200)
        path = tmp_path / 'package.zip'
        path.write_bytes(b'PK spam')
        common_repository.create_entry_with_metadata_and_file(COLLECTION_URL, str(path), False, METADATA)
        assert mocked_responses.calls[0].request.headers['Packaging'] == UriRegistry.PACKAGE_BINARY

    def test_missing_file(self, common_repository, tmp_path):
        with pytest.raises(SwordClientError):
            common_repository.create_entry_with_metadata_and_file(
                COLLECTION_URL, str(tmp_path / 'missing.pdf'), False, METADATA)

    def test_export_new_entry_with_metadata(self, common_repository, mocked_responses, load_test_data):
        mocked_responses.add(responses.POST, COLLECTION_URL, status=201, body=load_test_data('deposit_receipt.xml'))
        assert common_repository.export_new_entry_with_metadata(COLLECTION_URL, METADATA) == EDIT_URL

    def test_export_new_entry_failed(self, common_repository, mocked_responses, caplog):
        mocked_responses.add(responses.POST, COLLECTION_URL, status=500)
        assert common_repository.export_new_entry_with_metadata(COLLECTION_URL, METADATA) is None
        assert caplog.records[-1].levelname == 'ERROR'

    def test_export_new_entry_with_file_failed(self, common_repository, tmp_path):
        assert common_repository.export_new_entry_with_metadata_and_file(
            COLLECTION_URL, METADATA, str(tmp_path / 'missing.pdf'), True) is None


class TestSwordExporter:

    @pytest.mark.parametrize('method, args', [
        ('get_collection_entries', (COLLECTION_URL,)),
        ('create_entry_with_metadata', (COLLECTION_URL, METADATA)),
        ('create_entry_with_metadata_and_file', (COLLECTION_URL, 'spam.zip', True, METADATA)),
    ])
    def test_not_implemented(self, method, args):
        exporter = SwordExporter(AuthCredentials('vetinari', 'psst'))
        with pytest.raises(NotImplementedError):
            getattr(exporter, method)(*args)

    def test_file_helpers(self):
        assert SwordExporter.get_file_extension('thesis.final.pdf') == 'pdf'
        assert SwordExporter.get_package_format('data.ZIP') == UriRegistry.PACKAGE_SIMPLE_ZIP
