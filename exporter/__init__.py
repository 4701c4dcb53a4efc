"""
This package exports entries (metadata and files) to SWORD v2 repositories
such as DSpace or Dataverse.

It is built around :class:`~sword.protocol.SwordExporter`, which holds the
credentials of one user and knows how to talk to one SWORD server through a
:class:`~sword.client.SWORDClient`. Collections of a repository are discovered
from its service document. Repositories like DSpace nest collections inside
communities, which only show up as ``<service>`` links and need further
requests: :mod:`~sword.hierarchy` resolves them into a tree.

:class:`~protocol.ExportRepository` is the interface seen by applications that
do not care about SWORD at all, :class:`~sword.protocol.CommonSwordRepository`
implements it for generic SWORD servers.
"""
