from django.contrib import admin

from .models import AllocationRequest, Donor, GovernancePolicy, Hospital, Notification, Recipient


@admin.register(Hospital)
class HospitalAdmin(admin.ModelAdmin):
    list_display = ("hospital_id", "name", "city", "region", "country")


@admin.register(Recipient)
class RecipientAdmin(admin.ModelAdmin):
    list_display = ("recipient_id", "full_name", "organ_needed", "blood_type", "urgency", "status", "hospital")
    list_filter = ("status", "urgency", "organ_needed")


@admin.register(Donor)
class DonorAdmin(admin.ModelAdmin):
    list_display = ("donor_id", "full_name", "blood_type", "status", "is_active", "hospital")
    list_filter = ("status", "blood_type")


@admin.register(AllocationRequest)
class AllocationRequestAdmin(admin.ModelAdmin):
    list_display = ("request_id", "origin_hospital", "target_hospital", "status", "created_at")
    list_filter = ("status",)
    # status only moves through the allocation state machine
    readonly_fields = ("status",)


@admin.register(GovernancePolicy)
class GovernancePolicyAdmin(admin.ModelAdmin):
    list_display = ("policy_id", "title", "status", "votes_for", "votes_against", "paused_for_matching")


admin.site.register(Notification)
