from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", include("accounts.urls")),
    path("api/", include("core.urls")),
    path("api/", include("enrollments.urls")),
    path("api/", include("assessments.urls")),
    path("api/", include("grading.urls")),
    path("api/", include("analytics.urls")),
]
