from django.db import models
from timezone_field import TimeZoneField


class Utility(models.Model):
    """
    Represents a water utility (the client that publishes tariffs).

    Calculation dates ("today" for seasonal rates and rule windows) are taken
    in the utility's timezone.
    """

    name = models.CharField(max_length=200, unique=True, help_text="Name of the water utility")
    timezone = TimeZoneField(
        default="Asia/Jakarta", help_text="IANA timezone for this utility's service area"
    )

    class Meta:
        verbose_name_plural = "Utilities"
        ordering = ["name"]

    def __str__(self):
        return self.name
