from rest_framework.views import APIView
from rest_framework.response import Response


class ApiHomeView(APIView):
    authentication_classes = []
    permission_classes = []

    def get(self, request):
        return Response(
            {
                "message": "Welcome to LabTrack LIMS API",
                "endpoints": {
                    "admin": "/admin/",
                    "token_obtain": "/api/token/",
                    "token_refresh": "/api/token/refresh/",
                    "schema": "/api/schema/",
                    "swagger": "/api/schema/swagger-ui/",
                    "redoc": "/api/schema/redoc/",
                    "health": "/lims/health/",
                    "requirements": "/lims/requirements/",
                    "samples": "/lims/samples/",
                    "analyses": "/lims/analyses/",
                    "storage": "/lims/storage/",
                    "qr_events": "/lims/qr/events/",
                },
            }
        )
