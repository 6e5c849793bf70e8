import os

import pytest

from database import Database, parse_positive_int, parse_user_id


class TestDatabaseInit:

    def test_creates_all_documents(self, tmp_path):
        Database(str(tmp_path))
        for name in ("items.json", "activity.json", "inventory.json", "user-balance.json",
                     "user-stats.json", "referrals.json", "payment-requests.json"):
            assert os.path.exists(tmp_path / name)

    @pytest.mark.parametrize("value, expected", [
        (5, 5), ("17", 17), (0, None), (-3, None), ("abc", None), (None, None), (True, None),
    ])
    def test_parse_user_id(self, value, expected):
        assert parse_user_id(value) == expected
        assert parse_positive_int(value) == expected


class TestLedgerStore:

    def test_unknown_user_has_zero_balance(self, database):
        assert database.ledger.get_balance(123) == 0

    def test_set_balance_overwrites(self, database):
        database.ledger.set_balance(1, 100, "alice")
        database.ledger.set_balance(1, 40, "alice")
        assert database.ledger.get_balance(1) == 40
        assert database.ledger.get_balance("1") == 40

    def test_negative_balance_is_refused(self, database):
        with pytest.raises(ValueError):
            database.ledger.set_balance(1, -1, "alice")


class TestCatalogStore:

    def test_ids_are_assigned_from_max(self, database, add_item):
        assert add_item() == 1
        assert add_item() == 2
        database.catalog.remove(1)
        assert add_item() == 3

    def test_list_fills_default_prices(self, database, add_item):
        add_item(price=2)
        item = database.catalog.list_items()[0]
        assert item["prices"] == {"TON": 2, "STARS": 200, "RUB": 600}
        assert item["description"] == ""

    def test_update_merges_fields(self, database, add_item):
        item_id = add_item(name="Old", stock=4)
        assert database.catalog.update(item_id, {"name": "New", "id": 99}) is True

        item = database.catalog.get_item(item_id)
        assert item["name"] == "New"
        assert item["stock"] == 4

    def test_update_and_remove_unknown_item(self, database):
        assert database.catalog.update(5, {"name": "x"}) is False
        assert database.catalog.remove(5) is False

    def test_decrement_to_zero_removes_item(self, database, add_item):
        item_id = add_item(stock=2)
        assert database.catalog.decrement_stock(item_id) == 1
        assert database.catalog.get_item(item_id)["stock"] == 1

        assert database.catalog.decrement_stock(item_id) == 0
        assert database.catalog.list_items() == []

    def test_update_to_zero_stock_delists_item(self, database, add_item):
        first = add_item(stock=2)
        second = add_item(stock=2)

        assert database.catalog.update(second, {"stock": 0}) is True

        assert [item["id"] for item in database.catalog.list_items()] == [first]
        assert database.catalog.get_item(second) is None

    def test_decrement_unknown_item(self, database):
        assert database.catalog.decrement_stock(42) is None


class TestInventoryStore:

    def _record(self, user_id, **extra):
        record = {"id": 1, "name": "Plush Pepe", "image": "🐸", "price": 5,
                  "userId": user_id, "username": "alice", "owner": "@alice"}
        record.update(extra)
        return record

    @pytest.mark.parametrize("user_id", [0, -5, "abc", None, ""])
    def test_invalid_owner_returns_empty(self, database, user_id):
        database.inventory.append(self._record(1))
        assert database.inventory.list_by_owner(user_id) == []

    def test_records_are_partitioned_by_owner(self, database):
        database.inventory.append(self._record(1))
        database.inventory.append(self._record(2))
        database.inventory.append(self._record(1, name="Durov Cap"))

        assert [r["name"] for r in database.inventory.list_by_owner(1)] == ["Plush Pepe", "Durov Cap"]
        assert len(database.inventory.list_by_owner(2)) == 1

    def test_append_assigns_unique_ids_and_defaults(self, database):
        first = database.inventory.append(self._record(1))
        second = database.inventory.append(self._record(1))

        assert first["inventoryId"] != second["inventoryId"]
        assert first["status"] == "Редкий"
        assert first["convertedPrice"] == 5
        assert first["createdAt"]

    def test_remove_requires_matching_owner(self, database):
        record = database.inventory.append(self._record(1))

        assert database.inventory.remove(record["inventoryId"], 2) is True
        assert len(database.inventory.list_by_owner(1)) == 1

        database.inventory.remove(record["inventoryId"], 1)
        assert database.inventory.list_by_owner(1) == []

    def test_find_owned_falls_back_to_id_and_name(self, database):
        record = database.inventory.append(self._record(1))

        assert database.inventory.find_owned(1, record["inventoryId"])["inventoryId"] == record["inventoryId"]
        assert database.inventory.find_owned(1, "stale-id", 1, "Plush Pepe")["inventoryId"] == record["inventoryId"]
        assert database.inventory.find_owned(1, "stale-id", 1, "Other") is None
        assert database.inventory.find_owned(2, record["inventoryId"]) is None

    def test_backfill_username_replaces_placeholder_only(self, database):
        database.inventory.append(self._record(7, username="user_7"))
        database.inventory.append(self._record(7, username="bob"))

        assert database.inventory.backfill_username(7, "carol") == 1
        assert sorted(r["username"] for r in database.inventory.list_by_owner(7)) == ["bob", "carol"]


class TestActivityLog:

    def test_newest_first_with_date_and_time(self, database):
        database.activity.append({"id": 1, "name": "First"})
        database.activity.append({"id": 2, "name": "Second"})

        activity = database.activity.list()
        assert [a["name"] for a in activity] == ["Second", "First"]
        assert len(activity[0]["date"]) == len("19.10.2026")
        assert len(activity[0]["time"]) == len("12:30")

    def test_list_is_capped_but_count_uses_full_log(self, database):
        database.activity.doc.save([{"id": 1, "name": "Pepe"} for _ in range(130)])

        assert len(database.activity.list()) == 100
        assert database.activity.count_by_item(1) == 130
        assert database.activity.count_by_item(2) == 0

    def test_explicit_zero_limit(self, database):
        database.activity.append({"id": 1, "name": "First"})
        assert database.activity.list(limit=0) == []
        assert len(database.activity.list(limit=None)) == 1


class TestStatsStore:

    def test_unknown_user_gets_zeroes(self, database):
        assert database.stats.get(5) == {
            "totalPurchases": 0, "totalSpent": 0, "referralCount": 0,
            "referralEarnings": 0, "username": "",
        }

    def test_record_purchase_accumulates(self, database):
        database.stats.record_purchase(5, "alice", 100)
        database.stats.record_purchase(5, "alice", 50)

        stats = database.stats.get(5)
        assert stats["totalPurchases"] == 2
        assert stats["totalSpent"] == 150
        assert stats["username"] == "alice"


class TestReferralStore:

    def test_first_referrer_wins(self, database):
        assert database.referrals.register(10, 20) is True
        assert database.referrals.register(11, 20) is False
        assert database.referrals.referrer_of(20) == 10

    def test_self_referral_is_ignored(self, database):
        assert database.referrals.register(10, 10) is False
        assert database.referrals.referrer_of(10) is None


class TestPaymentRequestStore:

    def test_ids_are_unique_and_requests_start_pending(self, database):
        first = database.payment_requests.create({"type": "stars_topup", "userId": 1, "amount": 10})
        second = database.payment_requests.create({"type": "stars_topup", "userId": 1, "amount": 20})

        assert first != second
        assert [r["id"] for r in database.payment_requests.list_pending()] == [first, second]

    def test_terminal_request_is_not_pending(self, database):
        request_id = database.payment_requests.create({"type": "stars_topup", "userId": 1, "amount": 10})
        database.payment_requests.set_status(request_id, "approved")

        assert database.payment_requests.get_pending(request_id) is None
        assert database.payment_requests.get(request_id)["status"] == "approved"
        assert database.payment_requests.list_pending() == []

    def test_get_pending_checks_type(self, database):
        request_id = database.payment_requests.create({"type": "stars_topup", "userId": 1, "amount": 10})
        assert database.payment_requests.get_pending(request_id, "item_purchase") is None
        assert database.payment_requests.get_pending(request_id, "stars_topup")["amount"] == 10
