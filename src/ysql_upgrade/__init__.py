"""
ysql-upgrade - catalog migrations for every database of a YSQL cluster.

Manifesto:
    A cluster holds many databases, each cloned at a different point in
    the catalog's history.  Upgrading them must be deterministic,
    resumable, and must never let one database race ahead while another
    is left behind.

Packages
--------
core        errors, logging, settings, transport
migrations  version model, registry, discovery, tracker, applier, scheduler
cli         typer application (``ysql-upgrade``)

Tags:
    ysql, migrations, catalog, upgrade, cluster

Doc-Types:
    package-overview
"""

__version__ = "0.3.0"
