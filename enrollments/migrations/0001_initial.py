import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("core", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Student",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("matricule", models.CharField(max_length=32, unique=True)),
                ("last_name", models.CharField(max_length=64)),
                ("first_name", models.CharField(max_length=64)),
                ("dob", models.DateField(blank=True, null=True)),
                ("classroom", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="students", to="core.classroom")),
                ("parents", models.ManyToManyField(blank=True, related_name="children", to=settings.AUTH_USER_MODEL)),
                ("user", models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="student", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["last_name", "first_name"],
            },
        ),
    ]
