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

from exporter.sword.client import UriRegistry


def get_file_extension(file_name):
    """
    Returns the extension of a file name without the dot, e.g. "zip" or "txt".
    Names without a dot, or with the dot as first character only, have no extension.
    """
    i = file_name.rfind('.')
    if i > 0:
        return file_name[i+1:]
    return ''


def get_package_format(file_name, unpack_zip=True):
    """
    Returns the SWORD packaging for a file, based on its name (not a full path).

    :param file_name: name of the file to export
    :param unpack_zip: if False, zip files are exported as they are instead of being unpacked by the repository
    :returns: ``UriRegistry.PACKAGE_SIMPLE_ZIP`` or ``UriRegistry.PACKAGE_BINARY``
    """
    if get_file_extension(file_name).lower() == 'zip' and unpack_zip:
        return UriRegistry.PACKAGE_SIMPLE_ZIP
    return UriRegistry.PACKAGE_BINARY
