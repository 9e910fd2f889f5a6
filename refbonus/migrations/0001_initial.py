import uuid

import django.db.models.deletion
from django.db import migrations, models

import refbonus.models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="ReferralRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("uid", models.CharField(help_text="Identifier of the user who owns this record", max_length=128, unique=True, verbose_name="UID")),
                ("referred_by_uid", models.CharField(blank=True, db_index=True, default="", help_text="Identifier of the referring user; empty for organic users", max_length=128, verbose_name="Referred By")),
                ("bonus_condition", models.PositiveSmallIntegerField(choices=[(1, "Immediately"), (2, "On time")], default=1, verbose_name="Bonus Condition")),
                ("bonus_direction", models.PositiveSmallIntegerField(choices=[(1, "Referee only (uid)"), (2, "Referrer only (referred_by_uid)"), (3, "Both")], default=3, verbose_name="Bonus Direction")),
                ("bonus_type", models.PositiveSmallIntegerField(choices=[(1, "Daily"), (2, "Three days"), (3, "Weekly"), (4, "Monthly"), (5, "Six months"), (6, "Yearly"), (7, "Lifetime")], verbose_name="Bonus Type")),
                ("level", models.BigIntegerField(default=0, help_text="Reserved", verbose_name="Level")),
                ("is_integrated_purchase_service", models.BooleanField(default=False, help_text="If True, accruals are also pushed to the external entitlement service", verbose_name="Integrated Purchase Service")),
                ("created_at", models.BigIntegerField(default=refbonus.models.epoch_now, verbose_name="Created At (epoch)")),
                ("updated_at", models.BigIntegerField(default=refbonus.models.epoch_now, verbose_name="Updated At (epoch)")),
            ],
            options={
                "verbose_name": "Referral Record",
                "verbose_name_plural": "Referral Records",
                "db_table": "refbonus_referral_records",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="BonusHistory",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("uid", models.CharField(max_length=128, unique=True, verbose_name="UID")),
                ("created_at", models.BigIntegerField(default=0, verbose_name="Created At (epoch)")),
                ("updated_at", models.BigIntegerField(default=0, verbose_name="Updated At (epoch)")),
                ("expired_at", models.BigIntegerField(default=0, help_text="Sum of all granted durations", verbose_name="Cumulative Bonus Seconds")),
            ],
            options={
                "verbose_name": "Bonus History",
                "verbose_name_plural": "Bonus Histories",
                "db_table": "refbonus_bonus_history",
                "ordering": ["-updated_at"],
            },
        ),
        migrations.CreateModel(
            name="BonusItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("position", models.PositiveIntegerField(verbose_name="Position")),
                ("referraled_at", models.BigIntegerField(help_text="Timestamp of the referral event that triggered this bonus", verbose_name="Referral Event At (epoch)")),
                ("started_at", models.BigIntegerField(verbose_name="Processed At (epoch)")),
                ("bonus_type", models.PositiveSmallIntegerField(choices=[(1, "Daily"), (2, "Three days"), (3, "Weekly"), (4, "Monthly"), (5, "Six months"), (6, "Yearly"), (7, "Lifetime")], verbose_name="Bonus Type")),
                ("expire_time", models.BigIntegerField(verbose_name="Granted Seconds")),
                ("history", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="bonuses", to="refbonus.bonushistory", verbose_name="Bonus History")),
            ],
            options={
                "verbose_name": "Bonus Item",
                "verbose_name_plural": "Bonus Items",
                "db_table": "refbonus_bonus_items",
                "ordering": ["history", "position"],
                "constraints": [
                    models.UniqueConstraint(fields=("history", "position"), name="refbonus_item_history_position_uniq"),
                ],
            },
        ),
        migrations.CreateModel(
            name="EntitlementGrant",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid7, editable=False, primary_key=True, serialize=False)),
                ("uid", models.CharField(db_index=True, max_length=128, verbose_name="UID")),
                ("bonus_type", models.PositiveSmallIntegerField(choices=[(1, "Daily"), (2, "Three days"), (3, "Weekly"), (4, "Monthly"), (5, "Six months"), (6, "Yearly"), (7, "Lifetime")], verbose_name="Bonus Type")),
                ("duration", models.CharField(max_length=32, verbose_name="Duration")),
                ("status", models.CharField(choices=[("PENDING", "Pending"), ("SENT", "Sent"), ("FAILED", "Failed")], default="PENDING", max_length=20, verbose_name="Status")),
                ("attempts", models.PositiveIntegerField(default=0, verbose_name="Attempts")),
                ("last_error", models.TextField(blank=True, default="", verbose_name="Last Error")),
                ("response_status", models.PositiveSmallIntegerField(blank=True, null=True, verbose_name="Response Status")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="Created At")),
                ("sent_at", models.DateTimeField(blank=True, null=True, verbose_name="Sent At")),
                ("bonus_item", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="entitlement_grants", to="refbonus.bonusitem", verbose_name="Bonus Item")),
            ],
            options={
                "verbose_name": "Entitlement Grant",
                "verbose_name_plural": "Entitlement Grants",
                "db_table": "refbonus_entitlement_grants",
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(fields=["status", "attempts"], name="refbonus_eg_status_idx"),
                ],
            },
        ),
    ]
