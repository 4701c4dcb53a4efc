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
Settings for the SWORD exporter.

Every value can be overridden from the environment, see the
``SWORD_EXPORTER_*`` variables below.
"""

import logging.config
import os


# Seconds before a SWORD request is given up
REQUEST_TIMEOUT = 20

USER_AGENT = 'sword-exporter'

# Used between service titles when collections are listed with their hierarchy
HIERARCHY_SEPARATOR = '->'

# For DSpace "In-Progress: true" keeps the new item in the user's workspace,
# "false" sends it straight to the workflow.
DEFAULT_IN_PROGRESS = False

LOG_LEVEL = 'INFO'

if 'SWORD_EXPORTER_TIMEOUT' in os.environ:
    REQUEST_TIMEOUT = float(os.environ['SWORD_EXPORTER_TIMEOUT'])

if 'SWORD_EXPORTER_SEPARATOR' in os.environ:
    HIERARCHY_SEPARATOR = os.environ['SWORD_EXPORTER_SEPARATOR']

if 'SWORD_EXPORTER_LOG_LEVEL' in os.environ:
    LOG_LEVEL = os.environ['SWORD_EXPORTER_LOG_LEVEL']

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'console': {
            'format': '%(asctime)s %(levelname)s %(name)s:%(lineno)s  %(message)s',
            'datefmt': '%Y-%m-%d %H:%M:%S',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'console',
        },
    },
    'loggers': {
    # root logger, includes also third party packages like urllib3
        '': {
            'level': 'WARNING',
            'handlers': ['console'],
        },
        'sword_exporter': {
            'level': LOG_LEVEL,
            'handlers': ['console'],
            'propagate': False,
        },
    },
}


def configure_logging(level=None):
    """
    Applies ``LOGGING``. If ``level`` is given, it replaces the level of the exporter logger.
    """
    config = dict(LOGGING)
    if level is not None:
        config['loggers'] = dict(LOGGING['loggers'])
        config['loggers']['sword_exporter'] = dict(LOGGING['loggers']['sword_exporter'], level=level)
    logging.config.dictConfig(config)
