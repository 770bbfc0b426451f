"""
Unit tests for the ORM mappings.

Services always load movements with explicit selects, so neither model
carries a relationship that could issue its own queries.
"""

from sqlalchemy import inspect

from ledger_kernel.models.account import Account
from ledger_kernel.models.movement import Movement


class TestMappings:
    def test_no_relationships(self):
        assert list(inspect(Account).relationships) == []
        assert list(inspect(Movement).relationships) == []

    def test_movement_references_account_by_foreign_key(self):
        (fk,) = Movement.__table__.c.account_id.foreign_keys
        assert fk.target_fullname == "accounts.id"

    def test_both_models_are_versioned(self):
        assert inspect(Account).version_id_col is Account.__table__.c.version
        assert inspect(Movement).version_id_col is Movement.__table__.c.version
