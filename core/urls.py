from rest_framework.routers import DefaultRouter
from .views import ClassroomViewSet

router = DefaultRouter()
router.register(r"classes", ClassroomViewSet, basename="classes")
urlpatterns = router.urls
