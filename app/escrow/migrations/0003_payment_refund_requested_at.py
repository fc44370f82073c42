from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("escrow", "0002_add_escrow_schedules"),
    ]

    operations = [
        migrations.AddField(
            model_name="payment",
            name="refund_requested_at",
            field=models.DateTimeField(
                blank=True,
                help_text="When a gateway refund was claimed. Blocks release while set on a held payment",
                null=True,
            ),
        ),
    ]
