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

class ExportError(Exception):
    """
    The exception to raise when an export can not
    be done with the given arguments
    """
    pass


class ExportRepositoryMeta(type):
    """
    Metaclass for ExportRepository, so that the classes (not only the objects) print their name.
    """

    def __repr__(cls):
        return cls.__name__

    def __str__(cls):
        return cls.__name__


class ExportRepository(object, metaclass=ExportRepositoryMeta):
    """
    A repository where entries can be exported to, as seen by applications.
    Actual implementations should inherit from this class.

    The methods are not expected to raise: they log what went wrong
    and return ``None`` instead.
    """

    def __repr__(self):
        return self.__class__.__name__

    def __str__(self):
        return self.__class__.__name__

    def is_repository_accessible(self):
        """
        :returns: True if the repository answers at all, with or without credentials
        """
        raise NotImplementedError(
            'is_repository_accessible should be implemented in the ExportRepository instance.')

    def has_registered_credentials(self):
        """
        :returns: True if the repository accepts the credentials
        """
        raise NotImplementedError(
            'has_registered_credentials should be implemented in the ExportRepository instance.')

    def has_assigned_credentials(self):
        """
        :returns: True if at least one collection is available with the credentials
        """
        raise NotImplementedError(
            'has_assigned_credentials should be implemented in the ExportRepository instance.')

    def get_available_collections(self):
        """
        Collections the current user can export to.

        :returns: dict with collection URL as key and title as value, or ``None`` in case of error
        """
        raise NotImplementedError(
            'get_available_collections should be implemented in the ExportRepository instance.')

    def export_new_entry_with_metadata(self, collection_url, metadata):
        """
        Creates a new entry with metadata only.

        :param collection_url: URL of the collection to export to
        :param metadata: dict mapping metadata terms to lists of values
        :returns: URL of the new entry or ``None`` in case of error
        """
        raise NotImplementedError(
            'export_new_entry_with_metadata should be implemented in the ExportRepository instance.')

    def export_new_entry_with_metadata_and_file(self, collection_url, metadata, file_path, unpack_file_if_archive):
        """
        Creates a new entry with metadata and a file.

        :param collection_url: URL of the collection to export to
        :param metadata: dict mapping metadata terms to lists of values
        :param file_path: path to the file to export
        :param unpack_file_if_archive: if True, the repository unpacks zip files
        :returns: URL of the new entry or ``None`` in case of error
        """
        raise NotImplementedError(
            'export_new_entry_with_metadata_and_file should be implemented in the ExportRepository instance.')
