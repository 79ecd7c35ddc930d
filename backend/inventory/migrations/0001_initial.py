from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="StockMovement",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("product_ref", models.CharField(db_index=True, max_length=64)),
                ("quantity_delta", models.IntegerField()),
                (
                    "reason",
                    models.CharField(
                        choices=[("SALE", "Sale"), ("RETURN", "Return"), ("ADJUSTMENT", "Manual Adjustment")],
                        max_length=20,
                    ),
                ),
                ("ticket_id", models.UUIDField(blank=True, db_index=True, null=True)),
                ("ticket_item_id", models.BigIntegerField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "verbose_name": "Stock Movement",
                "verbose_name_plural": "Stock Movements",
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["product_ref", "created_at"], name="stock_product_created_idx"),
                ],
            },
        ),
    ]
