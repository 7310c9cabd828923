from rest_framework import serializers

from .models import BloodType, Recipient


class FindMatchesSerializer(serializers.Serializer):
    recipient_id = serializers.CharField()
    # Optional overrides; the stored recipient values are used when absent
    organ_type = serializers.CharField(required=False)
    blood_type = serializers.ChoiceField(choices=BloodType.choices, required=False)
    urgency_level = serializers.ChoiceField(choices=Recipient.Urgency.choices, required=False)


class EnhancedMatchesSerializer(serializers.Serializer):
    recipient_id = serializers.CharField()


class PredictSuccessSerializer(serializers.Serializer):
    recipient_id = serializers.CharField()
    donor_id = serializers.CharField()


class CreateRequestSerializer(serializers.Serializer):
    recipient_id = serializers.CharField()
    donor_id = serializers.CharField()
    donor_hospital_id = serializers.CharField()
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class RespondSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=["accepted", "rejected", "accept", "reject"])
    response_notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class CompleteTransplantSerializer(serializers.Serializer):
    recipient_id = serializers.CharField()
    donor_id = serializers.CharField()
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class RankedMatchSerializer(serializers.Serializer):
    """
    Read-only view of matching.scoring.RankedMatch.
    """
    donor_id = serializers.CharField()
    donor_name = serializers.CharField()
    blood_type = serializers.CharField()
    organs = serializers.ListField(child=serializers.CharField())
    hospital_id = serializers.CharField()
    hospital_name = serializers.CharField()
    city = serializers.CharField(allow_null=True)
    state = serializers.CharField(source="region", allow_null=True)

    match_score = serializers.FloatField()
    compatibility_score = serializers.IntegerField(source="breakdown.blood_compatibility")
    urgency_score = serializers.IntegerField(source="breakdown.urgency")
    distance_score = serializers.IntegerField(source="breakdown.proximity")
    distance_category = serializers.CharField(source="breakdown.proximity_tier.value")
    time_score = serializers.IntegerField(source="breakdown.wait_time")
    medical_risk_score = serializers.IntegerField(source="breakdown.medical_risk")

    explanation = serializers.CharField()
    policy_applied = serializers.BooleanField()
    applied_policies = serializers.ListField(child=serializers.CharField())


class AllocationRequestSerializer(serializers.Serializer):
    """
    Read-only view of allocation.models.AllocationRequest.
    """
    request_id = serializers.CharField(source="id")
    from_hospital_id = serializers.CharField(source="origin_hospital_id")
    to_hospital_id = serializers.CharField(source="target_hospital_id")
    recipient_id = serializers.CharField()
    donor_id = serializers.CharField()
    status = serializers.CharField(source="status.value")
    notes = serializers.CharField(source="request_notes")
    response_notes = serializers.CharField(allow_null=True)
    created_at = serializers.DateTimeField()
    updated_at = serializers.DateTimeField()
    viewed = serializers.BooleanField()


class SuccessPredictionSerializer(serializers.Serializer):
    """
    Read-only view of matching.compatibility.SuccessPrediction.
    """
    success_probability = serializers.IntegerField(source="probability")
    risk_factors = serializers.ListField(child=serializers.CharField())
    recommendations = serializers.ListField(child=serializers.CharField())
