import uuid

from django.db import models


class Agency(models.Model):
    """An ERP customer. Each agency owns an isolated database."""
    PLAN_CHOICES = [
        ('free', 'Free'),
        ('starter', 'Starter'),
        ('professional', 'Professional'),
        ('enterprise', 'Enterprise'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    domain = models.CharField(max_length=255, unique=True)
    database_name = models.CharField(max_length=63, unique=True)
    subscription_plan = models.CharField(max_length=20, choices=PLAN_CHOICES, default='free')
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} ({self.database_name})"

    def save(self, *args, **kwargs):
        from .db import validate_database_name
        self.database_name = validate_database_name(self.database_name)
        self.domain = self.domain.strip().lower()
        super().save(*args, **kwargs)

    class Meta:
        db_table = 'agencies'
        ordering = ['name']
        verbose_name_plural = 'agencies'
        indexes = [
            models.Index(fields=['database_name'], name='agencies_databas_5b1f0e_idx'),
            models.Index(fields=['is_active'], name='agencies_is_acti_8c3d2a_idx'),
        ]


class AgencyScopedModel(models.Model):
    """Base for rows stored in an agency database.

    ``agency_id`` is a plain UUID column rather than a foreign key because the
    agency registry lives in the main database.
    """
    agency_id = models.UUIDField(null=True, blank=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True
