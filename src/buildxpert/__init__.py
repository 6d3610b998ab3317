"""
BuildXpert database tooling.

Ordered, ledger-tracked schema migrations for the BuildXpert services
marketplace, guarded by a database advisory lock.

- buildxpert.core: errors, Result, logging, settings, Database capability
- buildxpert.migrations: units, registry, ledger, lock gate, runner
- buildxpert.cli: the ``buildxpert-migrate`` command
"""

__version__ = "0.1.0"
