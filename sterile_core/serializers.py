# sterile_core/serializers.py
from __future__ import annotations

from typing import Any, Dict, Optional

from rest_framework import serializers

from .models import AuditRecord, ForwardingRequest, InstrumentGroup, Item, StorageSlot


# ===============================================================
# Read serializers
# ===============================================================

class ItemSerializer(serializers.ModelSerializer):
    group_id = serializers.SerializerMethodField()

    class Meta:
        model = Item
        fields = [
            "id",
            "company_prefix",
            "type_code",
            "serial_number",
            "name",
            "location",
            "status",
            "group_id",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_group_id(self, obj) -> Optional[str]:
        membership = getattr(obj, "membership", None)
        return str(membership.group_id) if membership is not None else None


class GroupMemberSerializer(serializers.ModelSerializer):
    class Meta:
        model = Item
        fields = ["id", "name", "status", "location"]
        read_only_fields = fields


class InstrumentGroupSerializer(serializers.ModelSerializer):
    items = serializers.SerializerMethodField()
    status = serializers.SerializerMethodField()

    class Meta:
        model = InstrumentGroup
        fields = [
            "id",
            "name",
            "location",
            "status",
            "items",
            "created_by_id",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def _members(self, obj):
        return [m.item for m in obj.memberships.all()]

    def get_items(self, obj):
        return GroupMemberSerializer(self._members(obj), many=True).data

    def get_status(self, obj) -> Optional[str]:
        """
        Shared status of the members, or None when they have diverged.
        """
        statuses = {i.status for i in self._members(obj)}
        return statuses.pop() if len(statuses) == 1 else None


class ForwardingRequestSerializer(serializers.ModelSerializer):
    subject_id = serializers.CharField(read_only=True)
    subject_type = serializers.CharField(read_only=True)

    class Meta:
        model = ForwardingRequest
        fields = [
            "id",
            "subject_id",
            "subject_type",
            "from_location",
            "to_location",
            "status",
            "rejection_reason",
            "requested_by_id",
            "requested_by_username",
            "resolved_by_id",
            "resolved_by_username",
            "resolved_at",
            "created_at",
        ]
        read_only_fields = fields


class AuditRecordSerializer(serializers.ModelSerializer):
    class Meta:
        model = AuditRecord
        fields = [
            "id",
            "subject_id",
            "subject_name",
            "company_prefix",
            "type_code",
            "group_id",
            "action",
            "from_location",
            "to_location",
            "actor_id",
            "actor_username",
            "actor_role",
            "details",
            "timestamp",
        ]
        read_only_fields = fields


class StorageSlotSerializer(serializers.ModelSerializer):
    class Meta:
        model = StorageSlot
        fields = [
            "id",
            "subject_id",
            "subject_type",
            "subject_name",
            "position",
            "assigned_by_id",
            "assigned_by_username",
            "created_at",
        ]
        read_only_fields = fields


# ===============================================================
# Command payloads
# ===============================================================
# Shape checks only; domain rules (thresholds, step order, locations)
# are enforced by the core and reported through the exception handler.

class SubjectIdsField(serializers.ListField):
    child = serializers.CharField(max_length=64)

    def __init__(self, **kwargs):
        kwargs.setdefault("allow_empty", False)
        super().__init__(**kwargs)


class RegisterItemsSerializer(serializers.Serializer):
    company_prefix = serializers.CharField(max_length=10)
    type_code = serializers.CharField(max_length=10)
    quantity = serializers.IntegerField(default=1)


class SterilizationParametersSerializer(serializers.Serializer):
    temperature = serializers.FloatField()
    pressure = serializers.FloatField()
    duration = serializers.FloatField()


class AdvanceStatusSerializer(serializers.Serializer):
    subject_ids = SubjectIdsField()
    target = serializers.CharField(max_length=64)
    parameters = SterilizationParametersSerializer(required=False)


class SteamSterilizeSerializer(SterilizationParametersSerializer):
    subject_ids = SubjectIdsField()

    def parameters(self) -> Dict[str, Any]:
        data = self.validated_data
        return {k: data[k] for k in ("temperature", "pressure", "duration")}


class SubjectIdsSerializer(serializers.Serializer):
    subject_ids = SubjectIdsField()


class CreateGroupSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)
    item_ids = SubjectIdsField()


class GroupItemsSerializer(serializers.Serializer):
    item_ids = SubjectIdsField()


class ForwardingCreateSerializer(serializers.Serializer):
    subject_id = serializers.CharField(max_length=64)
    to_location = serializers.CharField(max_length=64)


class ForwardingRejectSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")


class StorageAssignSerializer(serializers.Serializer):
    subject_id = serializers.CharField(max_length=64)
    position = serializers.CharField(max_length=8)
