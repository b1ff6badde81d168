import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("core", "0001_initial"),
        ("enrollments", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="GradeSnapshot",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("current_total", models.DecimalField(blank=True, decimal_places=2, max_digits=5, null=True)),
                ("percentage", models.DecimalField(blank=True, decimal_places=2, max_digits=5, null=True)),
                ("grade_letter", models.CharField(blank=True, max_length=2)),
                ("breakdown", models.JSONField(blank=True, default=dict)),
                ("has_all_marks", models.BooleanField(default=False)),
                ("total_weight_completed", models.DecimalField(decimal_places=2, default=0, max_digits=5)),
                ("computed_at", models.DateTimeField()),
                ("classroom", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="grade_snapshots", to="core.classroom")),
                ("student", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="grade_snapshots", to="enrollments.student")),
            ],
            options={
                "ordering": ["classroom", "-current_total"],
                "unique_together": {("student", "classroom")},
            },
        ),
    ]
