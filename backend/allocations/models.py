from django.db import models
from django.utils import timezone


class BloodType(models.TextChoices):
    O_NEG = "O-", "O-"
    O_POS = "O+", "O+"
    A_NEG = "A-", "A-"
    A_POS = "A+", "A+"
    B_NEG = "B-", "B-"
    B_POS = "B+", "B+"
    AB_NEG = "AB-", "AB-"
    AB_POS = "AB+", "AB+"


class Hospital(models.Model):
    """
    A transplant centre. City / region / country feed the proximity tiers.
    """
    hospital_id = models.CharField(max_length=64, primary_key=True)
    name = models.CharField(max_length=255)
    city = models.CharField(max_length=120, blank=True)
    region = models.CharField(max_length=120, blank=True, help_text="State / province")
    country = models.CharField(max_length=120, blank=True)

    def __str__(self):
        return self.name


class Recipient(models.Model):
    """
    Waiting-list patient. Status is only ever moved by the allocation state machine.
    """
    class Urgency(models.TextChoices):
        LOW = "Low", "Low"
        MEDIUM = "Medium", "Medium"
        HIGH = "High", "High"
        CRITICAL = "Critical", "Critical"

    class Status(models.TextChoices):
        WAITING = "Waiting", "Waiting"
        IN_PROGRESS = "In Progress", "In Progress"
        MATCHED = "Matched", "Matched"
        COMPLETED = "Completed", "Completed"

    recipient_id = models.CharField(max_length=64, primary_key=True)
    hospital = models.ForeignKey(Hospital, on_delete=models.CASCADE, related_name="recipients")
    full_name = models.CharField(max_length=255, blank=True)
    organ_needed = models.CharField(max_length=50)
    blood_type = models.CharField(max_length=3, choices=BloodType.choices)
    urgency = models.CharField(max_length=10, choices=Urgency.choices, default=Urgency.MEDIUM)
    age = models.PositiveSmallIntegerField()
    gender = models.CharField(max_length=10, blank=True)

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.WAITING)
    is_active = models.BooleanField(default=True)

    # Weak references: the donor row may be deleted independently.
    matched_donor_id = models.CharField(max_length=64, blank=True, null=True)
    matched_hospital_id = models.CharField(max_length=64, blank=True, null=True)

    registered_at = models.DateTimeField(default=timezone.now)
    status_updated_at = models.DateTimeField(blank=True, null=True)
    completed_at = models.DateTimeField(blank=True, null=True)

    def __str__(self):
        return f"{self.full_name or self.recipient_id} ({self.organ_needed})"


class Donor(models.Model):
    class Status(models.TextChoices):
        AVAILABLE = "Available", "Available"
        MATCHED = "Matched", "Matched"
        DONATED = "Donated", "Donated"

    donor_id = models.CharField(max_length=64, primary_key=True)
    hospital = models.ForeignKey(Hospital, on_delete=models.CASCADE, related_name="donors")
    full_name = models.CharField(max_length=255, blank=True)
    blood_type = models.CharField(max_length=3, choices=BloodType.choices)
    # Structure: ["kidney", "liver"]
    organs = models.JSONField(default=list)
    age = models.PositiveSmallIntegerField()
    gender = models.CharField(max_length=10, blank=True)

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.AVAILABLE)
    is_active = models.BooleanField(default=True)

    matched_recipient_id = models.CharField(max_length=64, blank=True, null=True)
    matched_hospital_id = models.CharField(max_length=64, blank=True, null=True)

    registered_at = models.DateTimeField(default=timezone.now)
    status_updated_at = models.DateTimeField(blank=True, null=True)
    donated_at = models.DateTimeField(blank=True, null=True)

    def __str__(self):
        return f"{self.full_name or self.donor_id} ({self.blood_type})"


class AllocationRequest(models.Model):
    """
    Tracks lifecycle: pending -> accepted / rejected, accepted -> completed.
    Recipient and donor are stored by id only so either can be deleted on its own.
    """
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        ACCEPTED = "accepted", "Accepted"
        REJECTED = "rejected", "Rejected"
        COMPLETED = "completed", "Completed"

    request_id = models.CharField(max_length=64, primary_key=True)
    origin_hospital = models.ForeignKey(Hospital, on_delete=models.CASCADE, related_name="outgoing_requests")
    target_hospital = models.ForeignKey(Hospital, on_delete=models.CASCADE, related_name="incoming_requests")
    recipient_id = models.CharField(max_length=64)
    donor_id = models.CharField(max_length=64)

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    request_notes = models.TextField(blank=True)
    response_notes = models.TextField(blank=True, null=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)
    viewed = models.BooleanField(default=False)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.request_id} [{self.status}]"


class GovernancePolicy(models.Model):
    class Status(models.TextChoices):
        VOTING = "voting", "Voting"
        ACTIVE = "active", "Active"
        WITHDRAWN = "withdrawn", "Withdrawn"
        SUSPENDED = "suspended", "Suspended"

    policy_id = models.CharField(max_length=64, primary_key=True)
    title = models.CharField(max_length=255)
    content = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.VOTING)

    votes_for = models.PositiveIntegerField(default=0)
    votes_against = models.PositiveIntegerField(default=0)
    paused_for_matching = models.BooleanField(default=False)

    organ = models.CharField(max_length=50, blank=True, null=True)
    # e.g. {"blood_compatibility": 0.5, "urgency_level": 0.2, ...}
    criteria_weights = models.JSONField(blank=True, null=True)
    # e.g. [{"type": "same_location", "organ": "kidney", "city_bonus": 15}]
    rules = models.JSONField(default=list, blank=True)

    proposed_by = models.CharField(max_length=64, blank=True, null=True)
    created_at = models.DateTimeField(default=timezone.now)

    def __str__(self):
        return self.title


class Notification(models.Model):
    hospital = models.ForeignKey(Hospital, on_delete=models.CASCADE, related_name="notifications")
    type = models.CharField(max_length=30)
    title = models.CharField(max_length=255)
    message = models.TextField()
    related_id = models.CharField(max_length=64, blank=True, null=True)
    metadata = models.JSONField(default=dict, blank=True)
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.type}: {self.title}"
