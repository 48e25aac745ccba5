import logging

from django.contrib.auth.models import AbstractUser
from django.db import models

logger = logging.getLogger("accounts")


class User(AbstractUser):
    """
    Voter identity as seen by the voting core: a role and an
    email-verification flag. Credentials stay with Django's auth machinery.
    """

    class Role(models.TextChoices):
        VOTER = "voter", "Voter"
        ADMIN = "admin", "Admin"

    role = models.CharField(max_length=10, choices=Role.choices, default=Role.VOTER)
    is_email_verified = models.BooleanField(default=False)

    def __str__(self):
        return self.username

    @property
    def is_admin(self):
        return self.role == self.Role.ADMIN

    def save(self, *args, **kwargs):
        if self.pk and User.objects.filter(pk=self.pk).exists():
            logger.info(f"Login updated for user -> {self.username}")
        else:
            logger.info(f"Saving user: {self.username} ({self.role})")
        super().save(*args, **kwargs)
