# talkpair/calls/models.py
import uuid
from django.db import models
from talkpair.users.models import User


class Call(models.Model):
    TYPE_CHOICES = (
        ("random", "random"),
        ("direct", "direct"),
    )
    STATUS_CHOICES = (
        ("waiting", "waiting"),
        ("active", "active"),
        ("ended", "ended"),
    )

    call_id = models.UUIDField(default=uuid.uuid4, unique=True, db_index=True)
    type = models.CharField(max_length=10, choices=TYPE_CHOICES)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default="waiting")

    start_time = models.DateTimeField(null=True, blank=True)
    end_time = models.DateTimeField(null=True, blank=True)
    duration_seconds = models.IntegerField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.call_id} ({self.type}/{self.status})"


class CallParticipant(models.Model):
    call = models.ForeignKey(Call, on_delete=models.CASCADE, related_name="participants")
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="call_participations")

    # 참여 순서: 0번이 offer를 먼저 보내는 쪽
    position = models.PositiveSmallIntegerField(default=0)
    joined_at = models.DateTimeField(null=True, blank=True)
    left_at = models.DateTimeField(null=True, blank=True)

    # 통화 종료 후 참여자별 평가 / 기록 숨김
    rating = models.PositiveSmallIntegerField(null=True, blank=True)
    comment = models.TextField(blank=True, default="")
    feedback_at = models.DateTimeField(null=True, blank=True)
    hidden = models.BooleanField(default=False)

    class Meta:
        ordering = ["position"]
        unique_together = ("call", "user")


class CallTranscriptLine(models.Model):
    call = models.ForeignKey(Call, on_delete=models.CASCADE, related_name="transcript_lines")
    speaker = models.ForeignKey(User, on_delete=models.CASCADE, related_name="+")
    text = models.TextField()
    timestamp = models.DateTimeField()
    confidence = models.FloatField(null=True, blank=True)
    order = models.IntegerField(default=0)

    class Meta:
        ordering = ["order"]


class GrammarFeedback(models.Model):
    call = models.OneToOneField(Call, on_delete=models.CASCADE, related_name="grammar_feedback")
    original_text = models.TextField(blank=True, default="")
    corrected_text = models.TextField(blank=True, default="")
    # [{"original","corrected","explanation","position":{"start","end"}}]
    mistakes = models.JSONField(default=list, blank=True)
    overall_score = models.IntegerField(null=True, blank=True)
    suggestions = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
