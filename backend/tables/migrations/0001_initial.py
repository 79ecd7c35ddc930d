from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Table",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("number", models.PositiveIntegerField(unique=True)),
                ("name", models.CharField(blank=True, max_length=100)),
                ("seats", models.PositiveIntegerField(default=4)),
                (
                    "state",
                    models.CharField(
                        choices=[("FREE", "Free"), ("OCCUPIED", "Occupied"), ("OUT_OF_SERVICE", "Out of Service")],
                        default="FREE",
                        max_length=20,
                    ),
                ),
                (
                    "occupied_since",
                    models.DateTimeField(
                        blank=True, help_text="When the table last went from FREE to OCCUPIED.", null=True
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Table",
                "verbose_name_plural": "Tables",
                "ordering": ["number"],
                "indexes": [models.Index(fields=["state"], name="table_state_idx")],
            },
        ),
    ]
