"""Tests for bonus accrual: ledger arithmetic, direction dispatch and the save trigger."""

from unittest.mock import patch

import pytest
from django.db import OperationalError
from django.test import override_settings

from refbonus.exceptions import ImmutableBonusItem, PersistenceError
from refbonus.models import BonusHistory, BonusItem, EntitlementGrant, ReferralRecord
from refbonus.services import AccrualResult, AccrualService, ReferralChange
from refbonus.signals import bonus_accrued

DAY = 86400


def change(**fields):
    state = {
        "uid": "u1",
        "referred_by_uid": "r1",
        "bonus_condition": 1,
        "bonus_direction": 3,
        "bonus_type": 2,
        "level": 0,
        "is_integrated_purchase_service": False,
        "created_at": 1700000000,
    }
    state.update(fields)
    return ReferralChange(after=state)


def history_uids():
    return set(BonusHistory.objects.values_list("uid", flat=True))


@pytest.mark.django_db(transaction=True)
class TestCreditUser:
    """Tests for AccrualService.credit_user."""

    def test_first_accrual_creates_history(self):
        item = AccrualService.credit_user("u1", 2, 1700000000)

        history = BonusHistory.objects.get(uid="u1")
        assert history.expired_at == 3 * DAY
        assert history.created_at > 0
        assert history.updated_at == history.created_at
        assert history.bonuses.count() == 1

        assert item.position == 0
        assert item.referraled_at == 1700000000
        assert item.started_at == history.updated_at
        assert item.bonus_type == 2
        assert item.expire_time == 3 * DAY

    def test_accruals_stack_and_append_in_order(self):
        AccrualService.credit_user("u1", 1, 100)
        AccrualService.credit_user("u1", 3, 200)
        AccrualService.credit_user("u1", 7, 300)

        history = BonusHistory.objects.get(uid="u1")
        assert history.expired_at == DAY + 7 * DAY + 315360000

        items = list(history.bonuses.all())
        assert [i.position for i in items] == [0, 1, 2]
        assert [i.bonus_type for i in items] == [1, 3, 7]
        assert [i.referraled_at for i in items] == [100, 200, 300]
        assert [i.expire_time for i in items] == [DAY, 7 * DAY, 315360000]

    def test_histories_are_per_user(self):
        AccrualService.credit_user("u1", 1, 100)
        AccrualService.credit_user("u2", 4, 100)

        assert BonusHistory.objects.get(uid="u1").expired_at == DAY
        assert BonusHistory.objects.get(uid="u2").expired_at == 30 * DAY

    def test_unknown_bonus_type_writes_nothing(self):
        from refbonus.exceptions import InvalidPayload

        with pytest.raises(InvalidPayload):
            AccrualService.credit_user("u1", 42, 100)
        assert BonusHistory.objects.count() == 0

    def test_bonus_items_are_immutable(self):
        item = AccrualService.credit_user("u1", 1, 100)

        item.expire_time = 1
        with pytest.raises(ImmutableBonusItem):
            item.save()
        with pytest.raises(ImmutableBonusItem):
            item.delete()

        item.refresh_from_db()
        assert item.expire_time == DAY

    def test_transient_error_is_retried(self):
        original = AccrualService._append_bonus
        calls = []

        def flaky(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                raise OperationalError("database is locked")
            return original(*args, **kwargs)

        with patch.object(AccrualService, "_append_bonus", side_effect=flaky):
            item = AccrualService.credit_user("u1", 1, 100)

        assert len(calls) == 2
        assert item.position == 0
        assert BonusHistory.objects.get(uid="u1").expired_at == DAY

    @override_settings(REFBONUS_ACCRUAL_RETRIES=2)
    def test_retries_exhausted(self):
        with patch.object(AccrualService, "_append_bonus", side_effect=OperationalError("locked")) as mocked:
            with pytest.raises(PersistenceError):
                AccrualService.credit_user("u1", 1, 100)
        assert mocked.call_count == 2

    def test_integrated_user_gets_grant(self, entitlement_requests):
        item = AccrualService.credit_user("u1", 3, 100, integrated=True)

        grant = EntitlementGrant.objects.get(uid="u1")
        assert grant.bonus_item_id == item.pk
        assert grant.duration == "weekly"
        assert grant.status == EntitlementGrant.Status.SENT
        assert len(entitlement_requests) == 1

    def test_non_integrated_user_gets_no_grant(self, entitlement_requests):
        AccrualService.credit_user("u1", 3, 100)
        assert EntitlementGrant.objects.count() == 0
        assert entitlement_requests == []


@pytest.mark.django_db(transaction=True)
class TestHandleChange:
    """Tests for direction dispatch in AccrualService.handle_change."""

    def test_direction_uid_only(self):
        result = AccrualService.handle_change(change(bonus_direction=1))
        assert result.credited == ["u1"]
        assert history_uids() == {"u1"}

    def test_direction_referrer_only(self):
        result = AccrualService.handle_change(change(bonus_direction=2))
        assert result.credited == ["r1"]
        assert history_uids() == {"r1"}

    def test_direction_both(self):
        result = AccrualService.handle_change(change(bonus_direction=3))
        assert result.credited == ["u1", "r1"]
        assert history_uids() == {"u1", "r1"}

    @pytest.mark.parametrize("code", [0, 9, None, "x"])
    def test_unknown_direction_credits_both(self, code):
        result = AccrualService.handle_change(change(bonus_direction=code))
        assert result.credited == ["u1", "r1"]

    def test_worked_example(self):
        """three_day, bidirectional: both users get an identical fresh ledger."""
        AccrualService.handle_change(change(bonus_type=2, bonus_direction=3))

        for uid in ("u1", "r1"):
            history = BonusHistory.objects.get(uid=uid)
            assert history.expired_at == 259200
            items = list(history.bonuses.all())
            assert len(items) == 1
            assert items[0].expire_time == 259200
            assert items[0].referraled_at == 1700000000

    def test_organic_user_skips_empty_referrer(self):
        result = AccrualService.handle_change(change(referred_by_uid="", bonus_direction=3))
        assert result.credited == ["u1"]
        assert result.failed == {}
        assert history_uids() == {"u1"}

    def test_invalid_bonus_type_logged_not_raised(self):
        result = AccrualService.handle_change(change(bonus_type=99))
        assert result.items == []
        assert "u1" in result.failed
        assert BonusHistory.objects.count() == 0

    def test_missing_event_timestamp_uses_now(self):
        result = AccrualService.handle_change(change(created_at=None, bonus_direction=1))
        assert result.items[0].referraled_at > 1700000000

    def test_failure_for_one_user_does_not_stop_the_other(self):
        original = AccrualService.credit_user

        def failing_for_u1(uid, *args, **kwargs):
            if uid == "u1":
                raise PersistenceError("db down")
            return original(uid, *args, **kwargs)

        with patch.object(AccrualService, "credit_user", side_effect=failing_for_u1):
            result = AccrualService.handle_change(change(bonus_direction=3))

        assert result.failed == {"u1": "db down"}
        assert result.credited == ["r1"]
        assert history_uids() == {"r1"}

    def test_integration_flag_read_from_new_state(self, entitlement_requests):
        c = change(bonus_direction=1, is_integrated_purchase_service=True)
        c.before = {"is_integrated_purchase_service": False}
        AccrualService.handle_change(c)
        assert EntitlementGrant.objects.filter(uid="u1").count() == 1

    def test_bonus_accrued_signal(self):
        received = []

        def handler(sender, item, history, **kwargs):
            received.append((history.uid, item.expire_time))

        bonus_accrued.connect(handler)
        try:
            AccrualService.handle_change(change(bonus_type=1))
        finally:
            bonus_accrued.disconnect(handler)

        assert received == [("u1", DAY), ("r1", DAY)]


@pytest.mark.django_db(transaction=True)
class TestSaveTrigger:
    """Tests for the post_save receiver on ReferralRecord."""

    def test_created_record_accrues(self):
        ReferralRecord.objects.create(uid="u1", referred_by_uid="r1", bonus_type=4, created_at=1700000000)

        for uid in ("u1", "r1"):
            history = BonusHistory.objects.get(uid=uid)
            assert history.expired_at == 30 * DAY
            assert history.bonuses.get().referraled_at == 1700000000

    def test_updated_record_accrues_again(self):
        record = ReferralRecord.objects.create(uid="u1", referred_by_uid="r1", bonus_type=1, bonus_direction=1)
        record.bonus_type = 3
        record.save()

        history = BonusHistory.objects.get(uid="u1")
        assert history.expired_at == DAY + 7 * DAY
        assert list(history.bonuses.values_list("bonus_type", flat=True)) == [1, 3]

    def test_prior_state_is_captured(self):
        captured = []

        def capture(c):
            captured.append(c)
            return AccrualResult()

        record = ReferralRecord.objects.create(uid="u1", referred_by_uid="r1", bonus_type=1, bonus_direction=1)

        with patch.object(AccrualService, "handle_change", side_effect=capture):
            record.bonus_type = 5
            record.save()

        assert captured[0].before["bonus_type"] == 1
        assert captured[0].after["bonus_type"] == 5

    @override_settings(REFBONUS_ACCRUE_ON_SAVE=False)
    def test_accrual_on_save_can_be_disabled(self):
        ReferralRecord.objects.create(uid="u1", referred_by_uid="r1", bonus_type=1)
        assert BonusHistory.objects.count() == 0

    def test_record_survives_accrual_failure(self):
        with patch.object(AccrualService, "credit_user", side_effect=PersistenceError("db down")):
            ReferralRecord.objects.create(uid="u1", referred_by_uid="r1", bonus_type=1)

        assert ReferralRecord.objects.filter(uid="u1").exists()
        assert BonusHistory.objects.count() == 0


@pytest.mark.django_db(transaction=True)
@pytest.mark.asyncio
class TestBonusHistoryAPI:
    """Tests for GET /bonus-history/{uid}."""

    async def test_history_in_insertion_order(self, api_client):
        await AccrualService.acredit_user("u1", 2, 100)
        await AccrualService.acredit_user("u1", 1, 200)

        res = await api_client.get("/bonus-history/u1")
        assert res.status_code == 200
        data = res.json()
        assert data["uid"] == "u1"
        assert data["expired_at"] == 3 * DAY + DAY
        assert [b["bonus_type"] for b in data["bonuses"]] == [2, 1]
        assert [b["referraled_at"] for b in data["bonuses"]] == [100, 200]

    async def test_missing_history_is_zero_value(self, api_client):
        res = await api_client.get("/bonus-history/nobody")
        assert res.status_code == 200
        assert res.json() == {
            "uid": "nobody",
            "created_at": 0,
            "updated_at": 0,
            "expired_at": 0,
            "bonuses": [],
        }
