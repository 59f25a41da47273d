from bank_admin.models.bank import BankEligibilityHistory, ChangeType
from bank_admin.services.bank_service import bank_service
from bank_admin.services.eligibility_fields import (
    ELIGIBILITY_FIELDS, ROI_FIELDS, create_default_eligibility_data, with_defaults,
)


def _create(db, user_id=None, **data):
    payload = {"bank_name": "State Bank", "classification": "PSU"}
    payload.update(data)
    return bank_service.create_bank(db, payload, user_id)


def _history(db, bank_id):
    return bank_service.get_bank_history(db, bank_id)


def test_default_eligibility_data_covers_every_field():
    data = create_default_eligibility_data()
    assert all(data[field] == "No" for field in ELIGIBILITY_FIELDS)
    assert all(data[field] == 0 for field in ROI_FIELDS)


def test_with_defaults_keeps_given_values():
    data = with_defaults({"Personal Loan": "Yes", "Custom": "x"})
    assert data["Personal Loan"] == "Yes"
    assert data["Custom"] == "x"
    assert data["Business Loan"] == "No"


def test_create_writes_create_history(db, make_user):
    user = make_user()
    bank = _create(db, user.id, eligibility_data={"Personal Loan": "Yes"})

    assert bank.id is not None
    assert bank.is_deleted is False
    assert bank.created_by == user.id
    assert bank.eligibility_data["Personal Loan"] == "Yes"
    assert bank.eligibility_data["Business Loan"] == "No"

    history = _history(db, bank.id)
    assert len(history) == 1
    assert history[0].change_type == ChangeType.CREATE
    assert history[0].changed_fields == ["ALL"]
    assert history[0].created_by == user.id


def test_create_defaults_classification(db):
    bank = bank_service.create_bank(db, {"bank_name": "Coop Bank"})
    assert bank.classification == "UNKNOWN"


def test_update_records_only_changed_fields(db):
    bank = _create(db, maximum_pl_amount=500000.0)
    eligibility = {**bank.eligibility_data, "Personal Loan": "Yes"}

    updated = bank_service.update_bank(db, bank.id, {
        "bank_name": "State Bank",
        "maximum_pl_amount": 750000.0,
        "eligibility_data": eligibility,
    })

    assert updated.maximum_pl_amount == 750000.0
    latest = _history(db, bank.id)[0]
    assert latest.change_type == ChangeType.UPDATE
    assert sorted(latest.changed_fields) == ["eligibility_data", "maximum_pl_amount"]
    # The history row is a snapshot after the change
    assert latest.maximum_pl_amount == 750000.0
    assert latest.eligibility_data["Personal Loan"] == "Yes"


def test_update_without_changes_writes_no_history(db):
    bank = _create(db)
    # Same content, different key order
    reordered = dict(reversed(list(bank.eligibility_data.items())))

    result = bank_service.update_bank(db, bank.id, {
        "bank_name": "State Bank",
        "eligibility_data": reordered,
    })

    assert result.id == bank.id
    assert len(_history(db, bank.id)) == 1


def test_update_ignores_non_editable_fields(db):
    bank = _create(db)
    bank_service.update_bank(db, bank.id, {"is_deleted": True, "id": 99})
    assert bank_service.get_bank_by_id(db, bank.id).is_deleted is False
    assert len(_history(db, bank.id)) == 1


def test_update_missing_bank(db):
    assert bank_service.update_bank(db, 404, {"bank_name": "x"}) is None


def test_soft_delete_and_restore(db):
    bank = _create(db)

    deleted = bank_service.soft_delete_bank(db, bank.id)
    assert deleted.is_deleted is True
    assert deleted.deleted_at is not None
    assert bank_service.get_all_banks(db) == []
    assert [b.id for b in bank_service.get_all_banks(db, include_deleted=True)] == [bank.id]

    # A deleted bank cannot be deleted again
    assert bank_service.soft_delete_bank(db, bank.id) is None

    restored = bank_service.restore_bank(db, bank.id)
    assert restored.is_deleted is False
    assert restored.deleted_at is None

    change_types = [row.change_type for row in _history(db, bank.id)]
    assert change_types == [ChangeType.RESTORE, ChangeType.DELETE, ChangeType.CREATE]
    assert _history(db, bank.id)[0].changed_fields == ["is_deleted"]


def test_restore_active_bank_is_a_no_op(db):
    bank = _create(db)
    assert bank_service.restore_bank(db, bank.id).is_deleted is False
    assert len(_history(db, bank.id)) == 1
    assert bank_service.restore_bank(db, 404) is None


def test_banks_are_listed_by_name(db):
    _create(db, bank_name="Zeta Bank")
    _create(db, bank_name="Alpha Bank")
    assert [b.bank_name for b in bank_service.get_all_banks(db)] == ["Alpha Bank", "Zeta Bank"]


def test_history_limit(db):
    bank = _create(db)
    for amount in (1.0, 2.0, 3.0, 4.0, 5.0, 6.0):
        bank_service.update_bank(db, bank.id, {"maximum_bl_amount": amount})

    recent = bank_service.get_bank_history(db, bank.id, limit=5)
    assert len(recent) == 5
    assert recent[0].maximum_bl_amount == 6.0
    assert db.query(BankEligibilityHistory).count() == 7
