import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="VotingSession",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("session_id", models.SlugField(max_length=100, unique=True)),
                ("title", models.CharField(max_length=100)),
                ("description", models.CharField(blank=True, default="", max_length=500)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("upcoming", "Upcoming"),
                            ("active", "Active"),
                            ("completed", "Completed"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="upcoming",
                        max_length=10,
                    ),
                ),
                ("voting_start_time", models.DateTimeField()),
                ("voting_end_time", models.DateTimeField()),
                ("result_announcement_time", models.DateTimeField()),
                (
                    "is_results_public",
                    models.BooleanField(
                        default=False, help_text="Reveal results to everyone before the announcement time"
                    ),
                ),
                ("allow_vote_change", models.BooleanField(default=False)),
                ("max_votes_per_user", models.PositiveSmallIntegerField(default=1)),
                ("show_real_time_results", models.BooleanField(default=False)),
                ("show_voter_count", models.BooleanField(default=True)),
                ("require_email_verification", models.BooleanField(default=True)),
                ("allow_abstain", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "created_by",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="voting_sessions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status"], name="elections_v_status_6c1f0a_idx"),
                    models.Index(
                        fields=["voting_start_time", "voting_end_time"], name="elections_v_voting__a2b7d4_idx"
                    ),
                    models.Index(fields=["result_announcement_time"], name="elections_v_result__e91c3b_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("voting_start_time__lt", models.F("voting_end_time"))),
                        name="voting_session_start_before_end",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Candidate",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("key", models.CharField(help_text="Candidate id as recorded on ballots", max_length=50)),
                ("name", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True, default="")),
                ("image_url", models.CharField(blank=True, default="", max_length=500)),
                ("position", models.PositiveIntegerField(default=0)),
                (
                    "voting_session",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="candidates",
                        to="elections.votingsession",
                    ),
                ),
            ],
            options={
                "ordering": ["position"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("voting_session", "key"), name="unique_candidate_key_per_session"
                    ),
                ],
            },
        ),
    ]
