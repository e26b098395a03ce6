# sterile_core/filters.py
import django_filters as df
from django.db.models import Q

from .models import AuditRecord, ForwardingRequest, InstrumentGroup, Item, StorageSlot
from .workflows import (
    Action,
    Location,
    RequestStatus,
    normalize_location,
    normalize_status,
)


class LocationFilter(df.CharFilter):
    """
    Location filter that accepts display spellings ("Surgery Room 2").
    """

    def filter(self, qs, value):
        if value in (None, ""):
            return qs
        return super().filter(qs, normalize_location(value))


class StatusFilter(df.CharFilter):
    def filter(self, qs, value):
        if value in (None, ""):
            return qs
        return super().filter(qs, normalize_status(value))


class ItemFilter(df.FilterSet):
    location = LocationFilter(field_name="location")
    status = StatusFilter(field_name="status")
    company_prefix = df.CharFilter(field_name="company_prefix")
    type_code = df.CharFilter(field_name="type_code")
    name = df.CharFilter(field_name="name", lookup_expr="icontains")
    grouped = df.BooleanFilter(method="filter_grouped")
    include_removed = df.BooleanFilter(method="filter_include_removed")

    class Meta:
        model = Item
        fields = ["location", "status", "company_prefix", "type_code", "name"]

    def filter_grouped(self, qs, name, value):
        if value is None:
            return qs
        return qs.filter(membership__isnull=not value)

    def filter_include_removed(self, qs, name, value):
        # applied in filter_queryset
        return qs

    def filter_queryset(self, queryset):
        qs = super().filter_queryset(queryset)
        data = self.form.cleaned_data
        # Removed items are hidden unless asked for or filtered on directly.
        if not data.get("include_removed") and not data.get("location"):
            qs = qs.exclude(location=Location.REMOVED)
        return qs


class GroupFilter(df.FilterSet):
    location = LocationFilter(field_name="location")
    name = df.CharFilter(field_name="name", lookup_expr="icontains")

    class Meta:
        model = InstrumentGroup
        fields = ["location", "name"]


class ForwardingRequestFilter(df.FilterSet):
    status = df.ChoiceFilter(field_name="status", choices=RequestStatus.choices)
    from_location = LocationFilter(field_name="from_location")
    to_location = LocationFilter(field_name="to_location")
    pending_only = df.BooleanFilter(method="filter_pending_only")
    group = df.UUIDFilter(field_name="group_id")
    item = df.CharFilter(field_name="item_id")

    class Meta:
        model = ForwardingRequest
        fields = ["status", "from_location", "to_location"]

    def filter_pending_only(self, qs, name, value):
        if value:
            return qs.filter(status=RequestStatus.PENDING)
        return qs


class AuditRecordFilter(df.FilterSet):
    subject = df.CharFilter(field_name="subject_id")
    group = df.CharFilter(field_name="group_id")
    action = df.ChoiceFilter(field_name="action", choices=Action.choices)
    actor = df.CharFilter(method="filter_actor")
    company_prefix = df.CharFilter(field_name="company_prefix")
    type_code = df.CharFilter(field_name="type_code")
    location = df.CharFilter(method="filter_location")
    since = df.IsoDateTimeFilter(field_name="timestamp", lookup_expr="gte")
    until = df.IsoDateTimeFilter(field_name="timestamp", lookup_expr="lte")

    class Meta:
        model = AuditRecord
        fields = ["subject", "action", "company_prefix", "type_code"]

    def filter_actor(self, qs, name, value):
        if not value:
            return qs
        return qs.filter(Q(actor_id=value) | Q(actor_username=value))

    def filter_location(self, qs, name, value):
        if not value:
            return qs
        loc = normalize_location(value)
        return qs.filter(Q(from_location=loc) | Q(to_location=loc))


class StorageSlotFilter(df.FilterSet):
    subject_type = df.ChoiceFilter(field_name="subject_type", choices=StorageSlot.SUBJECT_TYPES)
    position = df.CharFilter(field_name="position", lookup_expr="istartswith")

    class Meta:
        model = StorageSlot
        fields = ["subject_type", "position"]
