# talkpair/calls/serializers.py
from rest_framework import serializers

from talkpair.users.serializers import ParticipantSerializer
from .models import Call, CallParticipant, CallTranscriptLine, GrammarFeedback


class CallParticipantSerializer(serializers.ModelSerializer):
    user = ParticipantSerializer(read_only=True)
    joinedAt = serializers.DateTimeField(source="joined_at", read_only=True)
    leftAt = serializers.DateTimeField(source="left_at", read_only=True)

    class Meta:
        model = CallParticipant
        fields = ["user", "joinedAt", "leftAt", "rating", "comment"]


class TranscriptLineSerializer(serializers.ModelSerializer):
    speakerId = serializers.IntegerField(source="speaker_id", read_only=True)

    class Meta:
        model = CallTranscriptLine
        fields = ["speakerId", "text", "timestamp", "confidence"]


class GrammarFeedbackSerializer(serializers.ModelSerializer):
    originalText = serializers.CharField(source="original_text", read_only=True)
    correctedText = serializers.CharField(source="corrected_text", read_only=True)
    overallScore = serializers.IntegerField(source="overall_score", read_only=True)

    class Meta:
        model = GrammarFeedback
        fields = ["originalText", "correctedText", "mistakes", "overallScore", "suggestions"]


class CallSummarySerializer(serializers.ModelSerializer):
    callId = serializers.UUIDField(source="call_id", read_only=True)
    startTime = serializers.DateTimeField(source="start_time", read_only=True)
    endTime = serializers.DateTimeField(source="end_time", read_only=True)
    durationSeconds = serializers.IntegerField(source="duration_seconds", read_only=True)
    participants = CallParticipantSerializer(many=True, read_only=True)

    class Meta:
        model = Call
        fields = [
            "callId",
            "type",
            "status",
            "startTime",
            "endTime",
            "durationSeconds",
            "participants",
        ]


class CallDetailSerializer(CallSummarySerializer):
    transcript = TranscriptLineSerializer(source="transcript_lines", many=True, read_only=True)
    grammarFeedback = serializers.SerializerMethodField()

    class Meta(CallSummarySerializer.Meta):
        fields = CallSummarySerializer.Meta.fields + ["transcript", "grammarFeedback"]

    def get_grammarFeedback(self, obj: Call):
        feedback = getattr(obj, "grammar_feedback", None)
        if feedback is None:
            return None
        return GrammarFeedbackSerializer(feedback).data


class ParticipantFeedbackSerializer(serializers.Serializer):
    rating = serializers.IntegerField(min_value=1, max_value=5, required=False, allow_null=True)
    comment = serializers.CharField(required=False, allow_blank=True, max_length=2000)
