# sterile_core/views.py
"""
Thin transport adapter: resolve the actor, check payload shape, call the
core, serialize the result. Domain errors are turned into HTTP responses by
sterile_core.exceptions.api_exception_handler.
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from . import selectors
from .actors import Actor
from .filters import (
    AuditRecordFilter,
    ForwardingRequestFilter,
    GroupFilter,
    ItemFilter,
    StorageSlotFilter,
)
from .permissions import HasStaffRole
from .serializers import (
    AdvanceStatusSerializer,
    AuditRecordSerializer,
    CreateGroupSerializer,
    ForwardingCreateSerializer,
    ForwardingRejectSerializer,
    ForwardingRequestSerializer,
    GroupItemsSerializer,
    InstrumentGroupSerializer,
    ItemSerializer,
    RegisterItemsSerializer,
    SteamSterilizeSerializer,
    StorageAssignSerializer,
    StorageSlotSerializer,
    SubjectIdsSerializer,
)
from .services import forwarding, grouping, registry, storage
from .workflows import executor, workflow_definition

logger = logging.getLogger(__name__)


# ===============================================================
# Base
# ===============================================================

class ActorMixin:
    permission_classes = [HasStaffRole]

    # Queryset builder from selectors, called with the actor.
    selector = None

    def get_queryset(self):
        if getattr(self, "swagger_fake_view", False):
            return self.serializer_class.Meta.model.objects.none()
        return self.selector(self.get_actor())

    def get_actor(self) -> Actor:
        if not hasattr(self, "_actor"):
            self._actor = Actor.from_user(self.request.user)
        return self._actor

    def page_response(self, page, serializer_class):
        return Response(
            {
                **page,
                "results": serializer_class(page["results"], many=True).data,
            }
        )


def _validated(serializer_class, request):
    serializer = serializer_class(data=request.data)
    serializer.is_valid(raise_exception=True)
    return serializer


# ===============================================================
# Workflow definition
# ===============================================================

class WorkflowDefinitionView(ActorMixin, APIView):
    @extend_schema(tags=["Workflow"])
    def get(self, request):
        return Response(workflow_definition())


# ===============================================================
# Items
# ===============================================================

class ItemViewSet(ActorMixin, viewsets.ReadOnlyModelViewSet):
    serializer_class = ItemSerializer
    filterset_class = ItemFilter

    selector = staticmethod(selectors.items_queryset)

    @extend_schema(tags=["Items"])
    def retrieve(self, request, pk=None):
        item = selectors.get_item(self.get_actor(), pk)
        return Response(ItemSerializer(item).data)

    @extend_schema(tags=["Items"], request=RegisterItemsSerializer, responses=ItemSerializer(many=True))
    @action(detail=False, methods=["post"])
    def register(self, request):
        data = _validated(RegisterItemsSerializer, request).validated_data
        items = registry.register_items(
            data["company_prefix"],
            data["type_code"],
            data["quantity"],
            self.get_actor(),
        )
        return Response(ItemSerializer(items, many=True).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Items"], responses=ItemSerializer)
    def destroy(self, request, pk=None):
        item = registry.remove_item(pk, self.get_actor())
        return Response(ItemSerializer(item).data)

    @extend_schema(tags=["Items"], responses=AuditRecordSerializer(many=True))
    @action(detail=True, methods=["get"])
    def history(self, request, pk=None):
        page = selectors.item_history(self.get_actor(), pk, request.query_params)
        return self.page_response(page, AuditRecordSerializer)

    @extend_schema(tags=["Maintenance"], request=None)
    @action(detail=False, methods=["post"], url_path="clear-all")
    def clear_all(self, request):
        return Response(registry.clear_all(self.get_actor()))


# ===============================================================
# Sterilization steps
# ===============================================================

class AdvanceStatusView(ActorMixin, APIView):
    """
    POST → move items/groups to the next sterilization step.

      {"subject_ids": ["123456-001-00001"], "target": "washing_by_hand"}

    Entering cooling also needs "parameters": {temperature, pressure, duration}.
    """

    @extend_schema(tags=["Sterilization"], request=AdvanceStatusSerializer)
    def post(self, request):
        data = _validated(AdvanceStatusSerializer, request).validated_data
        result = executor.advance_status(
            data["subject_ids"],
            data["target"],
            self.get_actor(),
            parameters=data.get("parameters"),
        )
        return Response(result.as_dict())


class SteamSterilizeView(ActorMixin, APIView):
    @extend_schema(tags=["Sterilization"], request=SteamSterilizeSerializer)
    def post(self, request):
        serializer = _validated(SteamSterilizeSerializer, request)
        result = executor.steam_sterilize(
            serializer.validated_data["subject_ids"],
            serializer.parameters(),
            self.get_actor(),
        )
        return Response(result.as_dict())


class MarkUnsterilizedView(ActorMixin, APIView):
    @extend_schema(tags=["Sterilization"], request=SubjectIdsSerializer)
    def post(self, request):
        data = _validated(SubjectIdsSerializer, request).validated_data
        result = executor.mark_unsterilized(data["subject_ids"], self.get_actor())
        return Response(result.as_dict())


class ValidateCoolingView(ActorMixin, APIView):
    @extend_schema(tags=["Sterilization"], request=SubjectIdsSerializer)
    def post(self, request):
        data = _validated(SubjectIdsSerializer, request).validated_data
        return Response(executor.validate_cooling(data["subject_ids"], actor=self.get_actor()))


# ===============================================================
# Groups
# ===============================================================

class InstrumentGroupViewSet(ActorMixin, viewsets.ReadOnlyModelViewSet):
    serializer_class = InstrumentGroupSerializer
    filterset_class = GroupFilter

    selector = staticmethod(selectors.groups_queryset)

    def _group_response(self, group, code=status.HTTP_200_OK):
        group = selectors.get_group(self.get_actor(), group.pk)
        return Response(InstrumentGroupSerializer(group).data, status=code)

    @extend_schema(tags=["Groups"])
    def retrieve(self, request, pk=None):
        group = selectors.get_group(self.get_actor(), pk)
        return Response(InstrumentGroupSerializer(group).data)

    @extend_schema(tags=["Groups"], request=CreateGroupSerializer)
    def create(self, request):
        data = _validated(CreateGroupSerializer, request).validated_data
        group = grouping.create_group(data["name"], data["item_ids"], self.get_actor())
        return self._group_response(group, status.HTTP_201_CREATED)

    @extend_schema(tags=["Groups"], request=None)
    def destroy(self, request, pk=None):
        return Response(grouping.dissolve_group(pk, self.get_actor()))

    @extend_schema(tags=["Groups"], request=GroupItemsSerializer)
    @action(detail=True, methods=["post"], url_path="items")
    def add_items(self, request, pk=None):
        data = _validated(GroupItemsSerializer, request).validated_data
        group = grouping.add_items(pk, data["item_ids"], self.get_actor())
        return self._group_response(group)

    @extend_schema(tags=["Groups"], request=None)
    @action(detail=True, methods=["delete"], url_path=r"items/(?P<item_id>[^/]+)")
    def remove_item(self, request, pk=None, item_id=None):
        return Response(grouping.remove_item(pk, item_id, self.get_actor()))


# ===============================================================
# Forwarding
# ===============================================================

class ForwardingRequestViewSet(ActorMixin, viewsets.ReadOnlyModelViewSet):
    serializer_class = ForwardingRequestSerializer
    filterset_class = ForwardingRequestFilter

    selector = staticmethod(selectors.requests_queryset)

    @extend_schema(tags=["Forwarding"], request=ForwardingCreateSerializer)
    def create(self, request):
        data = _validated(ForwardingCreateSerializer, request).validated_data
        req = forwarding.create_request(data["subject_id"], data["to_location"], self.get_actor())
        return Response(ForwardingRequestSerializer(req).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Forwarding"])
    @action(detail=False, methods=["get"])
    def pending(self, request):
        page = selectors.list_requests(self.get_actor(), request.query_params, pending_only=True)
        return self.page_response(page, ForwardingRequestSerializer)

    @extend_schema(tags=["Forwarding"], request=None)
    @action(detail=True, methods=["post"])
    def accept(self, request, pk=None):
        req = forwarding.accept(pk, self.get_actor())
        return Response(ForwardingRequestSerializer(req).data)

    @extend_schema(tags=["Forwarding"], request=ForwardingRejectSerializer)
    @action(detail=True, methods=["post"])
    def reject(self, request, pk=None):
        data = _validated(ForwardingRejectSerializer, request).validated_data
        req = forwarding.reject(pk, self.get_actor(), data.get("reason", ""))
        return Response(ForwardingRequestSerializer(req).data)


# ===============================================================
# Audit records (READ-ONLY)
# ===============================================================

class AuditRecordViewSet(ActorMixin, viewsets.ReadOnlyModelViewSet):
    serializer_class = AuditRecordSerializer
    filterset_class = AuditRecordFilter

    selector = staticmethod(selectors.audit_queryset)


# ===============================================================
# Storage slots
# ===============================================================

class StorageSlotViewSet(ActorMixin, viewsets.ReadOnlyModelViewSet):
    serializer_class = StorageSlotSerializer
    filterset_class = StorageSlotFilter
    lookup_field = "subject_id"
    lookup_value_regex = "[^/]+"

    selector = staticmethod(selectors.storage_slots_queryset)

    @extend_schema(tags=["Storage"], request=StorageAssignSerializer)
    def create(self, request):
        data = _validated(StorageAssignSerializer, request).validated_data
        slot = storage.assign_slot(data["subject_id"], data["position"], self.get_actor())
        return Response(StorageSlotSerializer(slot).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Storage"], request=None)
    def destroy(self, request, subject_id=None):
        storage.release_slot(subject_id, self.get_actor())
        return Response(status=status.HTTP_204_NO_CONTENT)
