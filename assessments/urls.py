from rest_framework.routers import DefaultRouter
from .views import AssessmentTypeViewSet, MarkViewSet

router = DefaultRouter()  # trailing slash par défaut
router.register(r"assessment-types", AssessmentTypeViewSet, basename="assessment-types")
router.register(r"marks", MarkViewSet, basename="marks")
urlpatterns = router.urls
