# sterile_core/admin.py

from django.contrib import admin

from .models import (
    AuditRecord,
    ForwardingRequest,
    GroupMembership,
    InstrumentGroup,
    Item,
    SerialSequence,
    StaffProfile,
    StorageSlot,
)


@admin.register(StaffProfile)
class StaffProfileAdmin(admin.ModelAdmin):
    list_display = ("user", "role", "home_location", "created_at")
    list_filter = ("role", "home_location")
    search_fields = ("user__username",)


@admin.register(Item)
class ItemAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "location", "status", "created_at")
    list_filter = ("location", "status", "type_code")
    search_fields = ("id", "name", "company_prefix")
    ordering = ("-created_at",)
    # Status and location only change through the engines.
    readonly_fields = ("location", "status")


class GroupMembershipInline(admin.TabularInline):
    model = GroupMembership
    extra = 0
    readonly_fields = ("item", "added_at")
    can_delete = False


@admin.register(InstrumentGroup)
class InstrumentGroupAdmin(admin.ModelAdmin):
    list_display = ("name", "location", "created_at")
    list_filter = ("location",)
    search_fields = ("name",)
    readonly_fields = ("location",)
    inlines = [GroupMembershipInline]


@admin.register(ForwardingRequest)
class ForwardingRequestAdmin(admin.ModelAdmin):
    list_display = ("id", "group", "item", "from_location", "to_location", "status", "created_at")
    list_filter = ("status", "to_location")
    readonly_fields = [f.name for f in ForwardingRequest._meta.fields]

    def has_add_permission(self, request):
        return False


@admin.register(StorageSlot)
class StorageSlotAdmin(admin.ModelAdmin):
    list_display = ("position", "subject_type", "subject_name", "subject_id", "created_at")
    search_fields = ("position", "subject_id", "subject_name")


@admin.register(SerialSequence)
class SerialSequenceAdmin(admin.ModelAdmin):
    list_display = ("company_prefix", "type_code", "last_serial")


@admin.register(AuditRecord)
class AuditRecordAdmin(admin.ModelAdmin):
    list_display = ("timestamp", "subject_id", "action", "from_location", "to_location", "actor_username", "actor_role")
    list_filter = ("action", "actor_role")
    search_fields = ("subject_id", "subject_name", "actor_username")
    ordering = ("-timestamp",)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
