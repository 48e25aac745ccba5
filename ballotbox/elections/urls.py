from rest_framework.routers import DefaultRouter

from .views import VotingSessionViewSet

app_name = "elections"

router = DefaultRouter()
router.register(r"sessions", VotingSessionViewSet, basename="session")

urlpatterns = router.urls
