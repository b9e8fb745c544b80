from __future__ import annotations

from django.db import migrations


def seed(apps, schema_editor) -> None:
    from identity.seed import seed_permissions

    seed_permissions(
        permission_model=apps.get_model("identity", "Permission"),
        grant_model=apps.get_model("identity", "RolePermissionGrant"),
    )


def unseed(apps, schema_editor) -> None:
    apps.get_model("identity", "RolePermissionGrant").objects.filter(
        custom_role__isnull=True
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("identity", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(seed, unseed),
    ]
