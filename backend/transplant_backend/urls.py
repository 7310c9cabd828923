from django.contrib import admin
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from allocations.views import AllocationRequestViewSet, MatchingViewSet

router = DefaultRouter()
router.register(r"matching", MatchingViewSet, basename="matching")
router.register(r"requests", AllocationRequestViewSet, basename="request")

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/v1/", include(router.urls)),
]
