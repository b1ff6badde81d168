import django.core.validators
import django.db.models.deletion
import assessments.validators
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("core", "0001_initial"),
        ("enrollments", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="AssessmentType",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=64)),
                ("weight", models.DecimalField(decimal_places=2, max_digits=5, validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(100)])),
                ("max_score", models.DecimalField(decimal_places=2, default=Decimal("20.00"), max_digits=5, validators=[django.core.validators.MinValueValidator(Decimal("0.01"))])),
                ("display_order", models.PositiveSmallIntegerField(default=0)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("classroom", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="assessment_types", to="core.classroom")),
            ],
            options={
                "ordering": ["classroom", "display_order", "id"],
                "unique_together": {("classroom", "name")},
            },
        ),
        migrations.CreateModel(
            name="Mark",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("assessment_date", models.DateField()),
                ("score", models.DecimalField(decimal_places=2, max_digits=5, validators=[assessments.validators.validate_score_range])),
                ("max_score", models.DecimalField(decimal_places=2, default=Decimal("20.00"), max_digits=5)),
                ("teacher_comment", models.TextField(blank=True)),
                ("status", models.CharField(choices=[("draft", "Draft"), ("published", "Published")], default="published", max_length=16)),
                ("entered_at", models.DateTimeField(auto_now_add=True)),
                ("modified_at", models.DateTimeField(auto_now=True)),
                ("change_log", models.JSONField(blank=True, default=list)),
                ("assessment_type", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="marks", to="assessments.assessmenttype")),
                ("entered_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="entered_marks", to=settings.AUTH_USER_MODEL)),
                ("student", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="marks", to="enrollments.student")),
            ],
            options={
                "ordering": ["-assessment_date", "-entered_at"],
                "unique_together": {("student", "assessment_type", "assessment_date")},
            },
        ),
        migrations.CreateModel(
            name="AssessmentWeightHistory",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("old_weight", models.DecimalField(decimal_places=2, max_digits=5)),
                ("new_weight", models.DecimalField(decimal_places=2, max_digits=5)),
                ("changed_at", models.DateTimeField(auto_now_add=True)),
                ("assessment_type", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="weight_history", to="assessments.assessmenttype")),
                ("changed_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="weight_changes", to=settings.AUTH_USER_MODEL)),
                ("classroom", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="weight_history", to="core.classroom")),
            ],
            options={
                "ordering": ["-changed_at", "-id"],
            },
        ),
    ]
