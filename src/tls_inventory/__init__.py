"""
tls_inventory — TLS certificate inventory.

Stores TLS certificates submitted by users or collected by scanners,
decodes their X.509 metadata, and serves filtered, permission-scoped
listings from PostgreSQL.

Built on the Railway-Oriented Programming (ROP) framework for
explicit, composable, functional error handling.
"""

__version__ = "0.1.0"
