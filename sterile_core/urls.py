# sterile_core/urls.py

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import (
    AdvanceStatusView,
    AuditRecordViewSet,
    ForwardingRequestViewSet,
    InstrumentGroupViewSet,
    ItemViewSet,
    MarkUnsterilizedView,
    SteamSterilizeView,
    StorageSlotViewSet,
    ValidateCoolingView,
    WorkflowDefinitionView,
)

app_name = "sterile_core"

router = DefaultRouter()
router.register(r"items", ItemViewSet, basename="item")
router.register(r"groups", InstrumentGroupViewSet, basename="group")
router.register(r"forwarding", ForwardingRequestViewSet, basename="forwarding")
router.register(r"audit-records", AuditRecordViewSet, basename="audit-record")
router.register(r"storage", StorageSlotViewSet, basename="storage-slot")

urlpatterns = [
    # -------------------------------------------------
    # Workflow definition (static metadata)
    # -------------------------------------------------
    path("workflow/", WorkflowDefinitionView.as_view(), name="workflow-definition"),

    # -------------------------------------------------
    # Sterilization steps
    # -------------------------------------------------
    path("sterilization/advance/", AdvanceStatusView.as_view(), name="sterilization-advance"),
    path("sterilization/steam/", SteamSterilizeView.as_view(), name="sterilization-steam"),
    path("sterilization/unsterilize/", MarkUnsterilizedView.as_view(), name="sterilization-unsterilize"),
    path(
        "sterilization/validate-cooling/",
        ValidateCoolingView.as_view(),
        name="sterilization-validate-cooling",
    ),

    # -------------------------------------------------
    # Resources
    # -------------------------------------------------
    path("", include(router.urls)),
]
